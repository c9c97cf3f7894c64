"""
Decoded Structure Data

A structure is a palette (index -> block type + properties) plus a flat list
of (palette index, position) pairs. Parsing the raw structure file
format happens elsewhere; this module accepts the decoded form, either in
memory or as JSON:

    {
        "size": [x, y, z],
        "palette": [{"Name": "minecraft:stone", "Properties": {...}}, ...],
        "blocks": [{"state": 0, "pos": [x, y, z]}, ...]
    }

Blocks are grouped per (chunk, block type, state) so each group becomes one
instanced render unit.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union
import json
import logging
import numpy as np

from .catalog import canonical_block_name, make_state_key
from .errors import LoadError

logger = logging.getLogger(__name__)


AIR_BLOCKS = frozenset({"air", "cave_air", "void_air"})

DEFAULT_CHUNK_SIZE = 16


@dataclass(frozen=True)
class PaletteEntry:
    """One palette slot: block type name and its state properties."""
    name: str
    properties: Mapping[str, Any] = field(default_factory=dict)

    @property
    def block_type(self) -> str:
        return canonical_block_name(self.name)

    @property
    def state(self) -> str:
        return make_state_key(self.properties)

    @property
    def is_air(self) -> bool:
        return self.block_type in AIR_BLOCKS

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PaletteEntry":
        name = data.get("Name", data.get("name"))
        if not isinstance(name, str):
            raise LoadError(f"Palette entry without a name: {data!r}")
        properties = data.get("Properties", data.get("properties")) or {}
        return cls(name=name, properties=dict(properties))


class GroupKey(NamedTuple):
    """Identity of one render unit: chunk column plus canonical block state."""
    chunk_x: int
    chunk_z: int
    block_type: str
    state: str


@dataclass
class Structure:
    """
    Palette-indexed block list.

    Attributes:
        palette: Palette entries
        palette_indices: (N,) int array of palette indices
        positions: (N, 3) int array of block positions
    """

    palette: List[PaletteEntry]
    palette_indices: np.ndarray
    positions: np.ndarray
    size: Optional[Tuple[int, int, int]] = None

    def __post_init__(self):
        self.palette_indices = np.asarray(self.palette_indices, dtype=np.int64).reshape(-1)
        self.positions = np.asarray(self.positions, dtype=np.int64).reshape(-1, 3)

        if len(self.palette_indices) != len(self.positions):
            raise ValueError(
                f"{len(self.palette_indices)} palette indices for "
                f"{len(self.positions)} positions"
            )
        if len(self.palette_indices) and (
            self.palette_indices.min() < 0 or self.palette_indices.max() >= len(self.palette)
        ):
            raise ValueError("Palette index out of range")

        if self.size is None:
            if len(self.positions):
                self.size = tuple(int(v) for v in self.positions.max(axis=0) + 1)
            else:
                self.size = (0, 0, 0)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Structure":
        """
        Build a structure from its decoded dictionary form.

        Raises:
            LoadError: If the palette or block list is malformed
        """
        try:
            palette = [PaletteEntry.from_dict(entry) for entry in data["palette"]]
            indices = []
            positions = []
            for block in data["blocks"]:
                indices.append(int(block.get("state", block.get("palette_index"))))
                positions.append([int(v) for v in block.get("pos", block.get("position"))])
            size = data.get("size")
            return cls(
                palette=palette,
                palette_indices=np.array(indices, dtype=np.int64),
                positions=np.array(positions, dtype=np.int64).reshape(-1, 3),
                size=tuple(int(v) for v in size) if size else None,
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise LoadError(f"Malformed structure data: {e}") from e

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Structure":
        """Load a decoded structure from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise LoadError(f"Structure file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise LoadError(f"Cannot parse {path}: {e}") from e
        if not isinstance(data, dict):
            raise LoadError(f"{path} must contain a JSON object")
        return cls.from_dict(data)

    @classmethod
    def from_blocks(
        cls,
        blocks: Iterable[Tuple[str, Mapping[str, Any], Tuple[int, int, int]]]
    ) -> "Structure":
        """
        Build a structure from (name, properties, position) triples.

        Identical (name, properties) pairs share one palette entry.
        """
        palette: List[PaletteEntry] = []
        slots: Dict[Tuple[str, str], int] = {}
        indices = []
        positions = []
        for name, properties, position in blocks:
            entry = PaletteEntry(name=name, properties=dict(properties or {}))
            slot = slots.setdefault((entry.name, entry.state), len(palette))
            if slot == len(palette):
                palette.append(entry)
            indices.append(slot)
            positions.append(position)
        return cls(
            palette=palette,
            palette_indices=np.array(indices, dtype=np.int64),
            positions=np.array(positions, dtype=np.int64).reshape(-1, 3),
        )

    @property
    def solid_mask(self) -> np.ndarray:
        """True for every block that is not air."""
        air = np.array([entry.is_air for entry in self.palette], dtype=bool)
        if not len(air):
            return np.zeros(len(self.palette_indices), dtype=bool)
        return ~air[self.palette_indices]

    def count_blocks(self) -> int:
        """Count non-air blocks."""
        return int(np.sum(self.solid_mask))

    @property
    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Tight (min_xyz, max_xyz exclusive) bounds around non-air blocks."""
        solid = self.positions[self.solid_mask]
        if not len(solid):
            return (np.zeros(3, dtype=np.int64), np.zeros(3, dtype=np.int64))
        return (solid.min(axis=0), solid.max(axis=0) + 1)

    def group_blocks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Dict[GroupKey, np.ndarray]:
        """
        Group non-air block positions per chunk column and canonical state.

        Palette entries that canonicalize to the same block state share a
        group.

        Args:
            chunk_size: Chunk edge length in blocks

        Returns:
            GroupKey -> (K, 3) int array of positions
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")

        collected: Dict[GroupKey, List[np.ndarray]] = {}
        for slot, entry in enumerate(self.palette):
            if entry.is_air:
                continue
            positions = self.positions[self.palette_indices == slot]
            if not len(positions):
                continue

            chunks = np.floor_divide(positions[:, [0, 2]], chunk_size)
            unique_chunks, inverse = np.unique(chunks, axis=0, return_inverse=True)
            inverse = inverse.reshape(-1)
            for i, (chunk_x, chunk_z) in enumerate(unique_chunks):
                key = GroupKey(int(chunk_x), int(chunk_z), entry.block_type, entry.state)
                collected.setdefault(key, []).append(positions[inverse == i])

        groups = {key: np.vstack(parts) for key, parts in collected.items()}
        logger.debug("Grouped %d blocks into %d groups", self.count_blocks(), len(groups))
        return groups
