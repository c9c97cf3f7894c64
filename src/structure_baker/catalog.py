"""
Model Catalog: Static Block-Model Definition Tables

This module loads and indexes the three definition tables a conversion needs:
- blocks_models.json: model name -> {parent, textures, elements}
- blocks_states.json: block name -> {variants: {state key -> variant}}
- texture_aliases.json: raw texture name -> canonical texture name

The catalog is built once and is read-only afterwards. Lookups are lenient
about naming: the literal name, the lowercased name, a "block/" prefixed name
and a namespaced name are tried in that order, so "stone", "block/stone" and
"minecraft:block/stone" all reach the same definition.
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import json
import logging
import re

from .errors import LoadError

logger = logging.getLogger(__name__)


NAMESPACE = "minecraft"

MODELS_FILE = "blocks_models.json"
STATES_FILE = "blocks_states.json"
ALIASES_FILE = "texture_aliases.json"

# Face order used everywhere: down, up, north, south, west, east
FACE_DIRECTIONS = ("down", "up", "north", "south", "west", "east")

_PATH_SEGMENTS = ("block/", "blocks/", "item/", "items/")
_BRACKET_FRAGMENT = re.compile(r"\[.*$")


def strip_name(raw: str) -> str:
    """
    Normalize a block, model or texture name.

    Strips bracket notation ("stone[foo=bar]"), the known namespace prefix
    and a leading block/blocks/item/items path segment.

    Args:
        raw: Name as it appears in a definition table or structure palette

    Returns:
        Normalized name
    """
    name = _BRACKET_FRAGMENT.sub("", raw.strip())
    if name.startswith(NAMESPACE + ":"):
        name = name[len(NAMESPACE) + 1:]
    for segment in _PATH_SEGMENTS:
        if name.startswith(segment):
            name = name[len(segment):]
            break
    return name


def canonical_block_name(raw: str) -> str:
    """Canonical form of a block type name ("minecraft:Stone" -> "stone")."""
    return strip_name(raw).lower()


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def make_state_key(properties: Optional[Mapping[str, Any]]) -> str:
    """
    Build the canonical state string for a property set.

    Values are stringified (booleans as "true"/"false"), pairs are sorted by
    property name and joined with commas. No properties yields "".

    Args:
        properties: State property mapping

    Returns:
        Canonical state key, e.g. "age=2,waterlogged=false"
    """
    if not properties:
        return ""
    return ",".join(
        f"{key}={_stringify(properties[key])}" for key in sorted(properties)
    )


def parse_state_key(key: str) -> Dict[str, str]:
    """
    Inverse of make_state_key.

    Parts without "=" (such as the legacy "normal" key) are ignored.
    """
    properties = {}
    for part in key.split(","):
        name, sep, value = part.partition("=")
        if sep and name.strip():
            properties[name.strip()] = value.strip()
    return properties


def _as_tuple(value: Any) -> tuple:
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return ()


def _as_number(value: Any, default: float = 0) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value


@dataclass(frozen=True)
class FaceSpec:
    """One face of a cube element."""
    texture: Optional[str]
    uv: Optional[Tuple[float, ...]] = None
    rotation: int = 0
    cullface: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FaceSpec":
        uv = _as_tuple(data.get("uv")) or None
        texture = data.get("texture")
        return cls(
            texture=texture if isinstance(texture, str) else None,
            uv=uv,
            rotation=int(_as_number(data.get("rotation"), 0)),
            cullface=data.get("cullface"),
        )


def is_valid_uv(uv) -> bool:
    return (
        uv is not None
        and len(uv) == 4
        and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in uv)
    )


def default_face_uv(direction: str, lo: Sequence[float], hi: Sequence[float]) -> Tuple[float, ...]:
    """UV rectangle the format derives from element bounds when uv is absent."""
    (x0, y0, z0), (x1, y1, z1) = lo, hi
    return {
        "down": (x0, 16 - z1, x1, 16 - z0),
        "up": (x0, z0, x1, z1),
        "north": (16 - x1, 16 - y1, 16 - x0, 16 - y0),
        "south": (x0, 16 - y1, x1, 16 - y0),
        "west": (z0, 16 - y1, z1, 16 - y0),
        "east": (16 - z1, 16 - y1, 16 - z0, 16 - y0),
    }[direction]


@dataclass(frozen=True)
class ElementRotation:
    """Element-level rotation about a pivot in 0-16 model space."""
    origin: Tuple[float, ...]
    axis: str
    angle: float
    rescale: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ElementRotation":
        return cls(
            origin=_as_tuple(data.get("origin", (8, 8, 8))),
            axis=str(data.get("axis", "y")).lower(),
            angle=_as_number(data.get("angle"), 0),
            rescale=bool(data.get("rescale", False)),
        )


@dataclass(frozen=True)
class CubeElement:
    """
    One axis-aligned cuboid of a model.

    Coordinates are kept as given; the geometry baker validates them so a
    single malformed element never prevents the catalog from loading.
    """
    from_: Tuple[float, ...]
    to: Tuple[float, ...]
    faces: Mapping[str, FaceSpec] = field(default_factory=dict)
    rotation: Optional[ElementRotation] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CubeElement":
        faces = {}
        for direction, face in (data.get("faces") or {}).items():
            if direction not in FACE_DIRECTIONS or not isinstance(face, dict):
                logger.debug("Ignoring face %r", direction)
                continue
            faces[direction] = FaceSpec.from_dict(face)

        rotation = data.get("rotation")
        return cls(
            from_=_as_tuple(data.get("from")),
            to=_as_tuple(data.get("to")),
            faces=faces,
            rotation=ElementRotation.from_dict(rotation) if isinstance(rotation, dict) else None,
        )


@dataclass(frozen=True)
class ModelDefinition:
    """A named model: optional parent, texture slots and elements."""
    name: str
    parent: Optional[str] = None
    textures: Mapping[str, str] = field(default_factory=dict)
    elements: Tuple[CubeElement, ...] = ()

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "ModelDefinition":
        if not isinstance(data, dict):
            raise LoadError(f"Model {name!r} is not an object")

        textures = {
            slot: value for slot, value in (data.get("textures") or {}).items()
            if isinstance(value, str)
        }
        elements = tuple(
            CubeElement.from_dict(element)
            for element in (data.get("elements") or [])
            if isinstance(element, dict)
        )
        parent = data.get("parent")
        return cls(
            name=name,
            parent=parent if isinstance(parent, str) and parent else None,
            textures=textures,
            elements=elements,
        )


@dataclass(frozen=True)
class VariantSpec:
    """Model choice and whole-model rotation for one state combination."""
    model: str
    x: float = 0
    y: float = 0
    uvlock: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VariantSpec":
        return cls(
            model=str(data["model"]),
            x=_as_number(data.get("x"), 0),
            y=_as_number(data.get("y"), 0),
            uvlock=bool(data.get("uvlock", False)),
        )


@dataclass(frozen=True)
class BlockStateEntry:
    """
    Variants of one block type keyed by canonical state string.

    Weighted alternatives for a key are reduced to the first one.
    """
    name: str
    variants: Mapping[str, VariantSpec] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "BlockStateEntry":
        if not isinstance(data, dict):
            raise LoadError(f"Block state entry {name!r} is not an object")

        variants = {}
        for raw_key, spec in (data.get("variants") or {}).items():
            if isinstance(spec, list):
                if not spec:
                    continue
                spec = spec[0]
            if not isinstance(spec, dict) or "model" not in spec:
                logger.warning("Skipping variant %r of %r: no model", raw_key, name)
                continue
            key = make_state_key(parse_state_key(raw_key))
            # First occurrence wins when two raw keys canonicalize alike
            variants.setdefault(key, VariantSpec.from_dict(spec))

        return cls(name=name, variants=variants)


def _lookup_candidates(name: str) -> List[str]:
    stripped = strip_name(name)
    candidates = [
        name,
        name.lower(),
        f"block/{name}",
        f"{NAMESPACE}:{name}",
        stripped,
        f"block/{stripped}",
        f"{NAMESPACE}:block/{stripped}",
    ]
    return list(dict.fromkeys(candidates))


def _read_table(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise LoadError(f"Definition table not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise LoadError(f"Cannot parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise LoadError(f"{path} must contain a JSON object")
    return data


class ModelCatalog:
    """
    Read-only index of model definitions, block states and texture aliases.

    Build it once with ModelCatalog.load() (files) or ModelCatalog.from_dict()
    (in-memory tables); nothing mutates it afterwards.
    """

    def __init__(
        self,
        models: Mapping[str, ModelDefinition],
        block_states: Mapping[str, BlockStateEntry],
        texture_aliases: Mapping[str, str]
    ):
        self._models = MappingProxyType(dict(models))
        self._block_states = MappingProxyType(dict(block_states))
        self._texture_aliases = MappingProxyType(dict(texture_aliases))

    @classmethod
    def load(
        cls,
        assets_dir: Union[str, Path],
        models_file: str = MODELS_FILE,
        states_file: str = STATES_FILE,
        aliases_file: str = ALIASES_FILE
    ) -> "ModelCatalog":
        """
        Load the three definition tables from an assets directory.

        Args:
            assets_dir: Directory containing the tables
            models_file: Model definition table file name
            states_file: Block state table file name
            aliases_file: Texture alias table file name

        Returns:
            The loaded catalog

        Raises:
            LoadError: If a table is missing or not well-formed
        """
        assets_dir = Path(assets_dir)
        if not assets_dir.is_dir():
            raise LoadError(f"Assets directory not found: {assets_dir}")

        catalog = cls.from_dict(
            models=_read_table(assets_dir / models_file),
            block_states=_read_table(assets_dir / states_file),
            texture_aliases=_read_table(assets_dir / aliases_file),
        )
        logger.info(
            "Loaded catalog from %s: %d models, %d block states, %d aliases",
            assets_dir, len(catalog._models), len(catalog._block_states),
            len(catalog._texture_aliases)
        )
        return catalog

    @classmethod
    def from_dict(
        cls,
        models: Mapping[str, Any],
        block_states: Optional[Mapping[str, Any]] = None,
        texture_aliases: Optional[Mapping[str, str]] = None
    ) -> "ModelCatalog":
        """
        Build a catalog from already-parsed tables.

        Args:
            models: Model name -> raw model definition
            block_states: Block name -> raw block state entry
            texture_aliases: Raw texture name -> canonical texture name

        Returns:
            The catalog
        """
        parsed_models = {
            name: ModelDefinition.from_dict(name, data)
            for name, data in models.items()
        }
        parsed_states = {
            name: BlockStateEntry.from_dict(name, data)
            for name, data in (block_states or {}).items()
        }
        aliases = {}
        for raw, target in (texture_aliases or {}).items():
            if not isinstance(target, str):
                raise LoadError(f"Texture alias {raw!r} must map to a string")
            aliases[raw] = strip_name(target)
        # Stripped names are reachable too; explicit entries take precedence
        for raw in list(aliases):
            aliases.setdefault(strip_name(raw), aliases[raw])
        return cls(parsed_models, parsed_states, aliases)

    @staticmethod
    def _find(table: Mapping[str, Any], name: str) -> Optional[Any]:
        for candidate in _lookup_candidates(name):
            if candidate in table:
                return table[candidate]
        return None

    def get_model_definition(self, name: str) -> Optional[ModelDefinition]:
        """Look up a model definition; None when no naming variant matches."""
        return self._find(self._models, name)

    def get_block_state_entry(self, block_type: str) -> Optional[BlockStateEntry]:
        """Look up the block state entry of a block type; None on a miss."""
        return self._find(self._block_states, block_type)

    def canonicalize_texture_name(self, raw: str) -> str:
        """
        Normalize a texture path to the name used by the atlas.

        "minecraft:block/oak_planks" -> "oak_planks", then the alias table
        is applied.
        """
        stripped = strip_name(raw)
        alias = self._texture_aliases.get(raw)
        if alias is None:
            alias = self._texture_aliases.get(stripped)
        return alias if alias is not None else stripped

    @property
    def block_names(self) -> List[str]:
        return list(self._block_states)

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, name: str) -> bool:
        return self.get_model_definition(name) is not None
