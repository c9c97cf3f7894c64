"""
Model Resolver

Turns a block type plus its state properties into a ResolvedModel:

1. Canonicalize the block name and build the canonical state key
2. Pick the blockstate variant (exact key, else the most specific matching
   variant, else the base variant)
3. Walk the model's parent chain with a visited set (cycles are fatal)
4. Merge root-to-leaf: child elements replace, texture slots merge
5. Dereference every #slot to a literal, canonical texture name
6. Point every face at its resolved texture (placeholder when missing)
7. Attach the variant's whole-model rotation

Results are cached per StateKey for the lifetime of the resolver, which is
one conversion run.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple
import logging
import threading

from .atlas import MISSING_TEXTURE
from .catalog import (
    BlockStateEntry,
    CubeElement,
    FaceSpec,
    ModelCatalog,
    ModelDefinition,
    VariantSpec,
    FACE_DIRECTIONS,
    canonical_block_name,
    make_state_key,
    parse_state_key,
    strip_name,
)
from .diagnostics import Degradation, DegradationLog
from .errors import CyclicModelError, ModelNotFoundError, UnresolvedTextureError
from .special_cases import SPECIAL_CASES, SpecialCaseBuilder

logger = logging.getLogger(__name__)


# Backstop for parent chains, independent of the visited-set check
MAX_PARENT_DEPTH = 32

# Maximum #slot indirections followed for one texture
MAX_TEXTURE_HOPS = 32

# Slots preferred for texturing the fallback cube, in order
FALLBACK_TEXTURE_SLOTS = ("all", "side", "particle")


class StateKey(NamedTuple):
    """Canonical cache key: (block type, sorted state string)."""
    block_type: str
    state: str


@dataclass(frozen=True)
class ResolvedModel:
    """
    A model with inheritance and texture references fully resolved.

    Every face texture is a canonical texture name (or MISSING_TEXTURE);
    x and y are the whole-model rotation in degrees.
    """
    name: str
    textures: Mapping[str, str] = field(default_factory=dict)
    elements: Tuple[CubeElement, ...] = ()
    x: float = 0
    y: float = 0

    @property
    def texture_names(self) -> List[str]:
        """Distinct face textures in first-use order."""
        names = {}
        for element in self.elements:
            for face in element.faces.values():
                if face.texture:
                    names[face.texture] = None
        return list(names)

    @property
    def face_count(self) -> int:
        return sum(len(element.faces) for element in self.elements)


def dereference_texture(
    textures: Mapping[str, str],
    value: str,
    max_hops: int = MAX_TEXTURE_HOPS
) -> str:
    """
    Follow #slot indirections until a literal texture path is reached.

    Args:
        textures: Merged texture slot map
        value: Slot value or face reference ("#side" or a literal path)
        max_hops: Maximum number of indirections to follow

    Returns:
        The literal texture path

    Raises:
        UnresolvedTextureError: On a dangling slot, a cycle or too many hops
    """
    seen = set()
    hops = 0
    while value.startswith("#"):
        slot = value[1:]
        if slot in seen:
            raise UnresolvedTextureError(value, "reference cycle")
        if slot not in textures:
            raise UnresolvedTextureError(value, "dangling reference")
        if hops >= max_hops:
            raise UnresolvedTextureError(value, f"more than {max_hops} hops")
        seen.add(slot)
        value = textures[slot]
        hops += 1
    return value


def _full_cube(texture: str) -> CubeElement:
    face = FaceSpec(texture=texture, uv=(0, 0, 16, 16))
    return CubeElement(
        from_=(0, 0, 0),
        to=(16, 16, 16),
        faces={direction: face for direction in FACE_DIRECTIONS},
    )


class ModelResolver:
    """
    Resolves (block type, state) pairs into ResolvedModels.

    Special-case block families are dispatched through a table mapping
    canonical block names to builders; every other block goes through the
    generic blockstate -> model -> parent chain path.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        degradations: Optional[DegradationLog] = None,
        special_cases: Optional[Mapping[str, SpecialCaseBuilder]] = None
    ):
        """
        Initialize the resolver.

        Args:
            catalog: Loaded model catalog
            degradations: Shared log for recoverable conditions
            special_cases: Block name -> builder table (default: SPECIAL_CASES)
        """
        self.catalog = catalog
        self.degradations = degradations if degradations is not None else DegradationLog()
        self._special_cases = SPECIAL_CASES if special_cases is None else special_cases
        self._cache: Dict[StateKey, ResolvedModel] = {}
        self._dispatch: Dict[str, Optional[SpecialCaseBuilder]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def state_key(block_type: str, properties: Optional[Mapping[str, Any]] = None) -> StateKey:
        """Build the canonical cache key for a block type and its properties."""
        return StateKey(canonical_block_name(block_type), make_state_key(properties))

    def resolve(
        self,
        block_type: str,
        properties: Optional[Mapping[str, Any]] = None
    ) -> ResolvedModel:
        """
        Resolve the model for a block type in a given state.

        Args:
            block_type: Block type name (namespaced or not)
            properties: State properties (values of any type)

        Returns:
            The resolved model (cached per canonical key)

        Raises:
            CyclicModelError: If the model's parent chain is cyclic
            ModelNotFoundError: If no model exists for the block
        """
        key = self.state_key(block_type, properties)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        model = self._build(key)
        with self._lock:
            return self._cache.setdefault(key, model)

    def dispatch(self, block_type: str) -> Optional[SpecialCaseBuilder]:
        """Return the special-case builder for a canonical block name, if any."""
        if block_type not in self._dispatch:
            builder = self._special_cases.get(block_type)
            with self._lock:
                self._dispatch.setdefault(block_type, builder)
        return self._dispatch[block_type]

    def _build(self, key: StateKey) -> ResolvedModel:
        properties = parse_state_key(key.state)

        builder = self.dispatch(key.block_type)
        if builder is not None:
            model = builder.build(self, key.block_type, properties)
            if model is not None:
                return model
            self.degradations.record(
                Degradation.SPECIAL_CASE_FALLBACK, key.block_type,
                "templates missing, using generic resolution"
            )

        return self._resolve_generic(key, properties)

    def _resolve_generic(self, key: StateKey, properties: Dict[str, str]) -> ResolvedModel:
        entry = self.catalog.get_block_state_entry(key.block_type)
        if entry is not None and entry.variants:
            variant = self.select_variant(entry, key.state, properties)
        else:
            # No blockstate entry: the block name doubles as the model name
            variant = VariantSpec(model=key.block_type)

        definition = self.catalog.get_model_definition(variant.model)
        if definition is None:
            raise ModelNotFoundError(key.block_type, variant.model)

        return self.resolve_definition(definition, variant)

    def select_variant(
        self,
        entry: BlockStateEntry,
        state: str,
        properties: Mapping[str, str]
    ) -> VariantSpec:
        """
        Pick the variant for a canonical state key.

        Unknown or partial combinations degrade to the most specific variant
        whose assignments all hold, then to the base ("") variant, then to
        the first variant. Any non-exact pick is recorded.
        """
        variants = entry.variants
        if state in variants:
            return variants[state]

        best = None
        best_size = -1
        for variant_key, spec in variants.items():
            predicates = parse_state_key(variant_key)
            if len(predicates) <= best_size:
                continue
            if all(properties.get(name) == value for name, value in predicates.items()):
                best, best_size = spec, len(predicates)

        if best is None:
            best = next(iter(variants.values()))

        self.degradations.record(
            Degradation.VARIANT_FALLBACK, f"{entry.name}[{state}]",
            f"using model {best.model}"
        )
        return best

    def resolve_definition(
        self,
        definition: ModelDefinition,
        variant: Optional[VariantSpec] = None,
        name: Optional[str] = None
    ) -> ResolvedModel:
        """
        Flatten a model definition into a ResolvedModel.

        Used by the generic path and by special-case builders that attach
        textures to a template through a synthetic child definition.

        Args:
            definition: Leaf model definition
            variant: Variant supplying the whole-model rotation
            name: Name for the result (default: definition name)

        Returns:
            The resolved model
        """
        chain = self._parent_chain(definition)
        textures, elements = self._merge_chain(chain)
        model_name = name or strip_name(definition.name)

        resolved_textures = self._resolve_textures(textures, model_name)
        if elements:
            elements = self._resolve_faces(elements, resolved_textures, model_name)
        else:
            elements = (self._fallback_cube(resolved_textures, model_name),)

        variant = variant or VariantSpec(model=definition.name)
        return ResolvedModel(
            name=model_name,
            textures=resolved_textures,
            elements=elements,
            x=variant.x,
            y=variant.y,
        )

    def _parent_chain(self, definition: ModelDefinition) -> List[ModelDefinition]:
        """Return the chain leaf-first, failing on cycles."""
        chain = [definition]
        visited = {definition.name}
        current = definition

        while current.parent:
            if len(chain) >= MAX_PARENT_DEPTH:
                raise CyclicModelError([d.name for d in chain] + [current.parent])

            parent = self.catalog.get_model_definition(current.parent)
            if parent is None:
                self.degradations.record(
                    Degradation.MISSING_PARENT, current.parent,
                    f"parent of {current.name}"
                )
                break
            if parent.name in visited:
                raise CyclicModelError([d.name for d in chain] + [parent.name])

            visited.add(parent.name)
            chain.append(parent)
            current = parent

        return chain

    @staticmethod
    def _merge_chain(
        chain: List[ModelDefinition]
    ) -> Tuple[Dict[str, str], Tuple[CubeElement, ...]]:
        textures: Dict[str, str] = {}
        elements: Tuple[CubeElement, ...] = ()
        for definition in reversed(chain):
            textures.update(definition.textures)
            if definition.elements:
                elements = definition.elements
        return textures, elements

    def _resolve_textures(self, textures: Mapping[str, str], model_name: str) -> Dict[str, str]:
        resolved = {}
        for slot, value in textures.items():
            try:
                literal = dereference_texture(textures, value)
            except UnresolvedTextureError as e:
                # Only counted if a face actually uses the slot
                logger.debug("%s: slot %r unresolved: %s", model_name, slot, e)
                continue
            resolved[slot] = self.catalog.canonicalize_texture_name(literal)
        return resolved

    def _resolve_faces(
        self,
        elements: Tuple[CubeElement, ...],
        textures: Mapping[str, str],
        model_name: str
    ) -> Tuple[CubeElement, ...]:
        result = []
        for element in elements:
            faces = {}
            for direction, face in element.faces.items():
                faces[direction] = replace(
                    face, texture=self._face_texture(face.texture, textures, model_name)
                )
            result.append(replace(element, faces=faces))
        return tuple(result)

    def _face_texture(
        self,
        reference: Optional[str],
        textures: Mapping[str, str],
        model_name: str
    ) -> str:
        if reference and not reference.startswith("#"):
            return self.catalog.canonicalize_texture_name(reference)

        if reference and reference[1:] in textures:
            return textures[reference[1:]]

        self.degradations.record(
            Degradation.MISSING_TEXTURE, f"{model_name} {reference or '<none>'}",
            "using placeholder"
        )
        return MISSING_TEXTURE

    def _fallback_cube(self, textures: Mapping[str, str], model_name: str) -> CubeElement:
        """Full cube used when the whole chain defines no elements."""
        texture = None
        for slot in FALLBACK_TEXTURE_SLOTS:
            if slot in textures:
                texture = textures[slot]
                break
        if texture is None and textures:
            texture = next(iter(textures.values()))
        if texture is None:
            self.degradations.record(
                Degradation.MISSING_TEXTURE, f"{model_name} <fallback cube>",
                "model has no textures"
            )
            texture = MISSING_TEXTURE
        logger.debug("%s has no elements, using a full cube textured %s", model_name, texture)
        return _full_cube(texture)

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear(self):
        """Drop cached models (start of a new run)."""
        with self._lock:
            self._cache.clear()
            self._dispatch.clear()
