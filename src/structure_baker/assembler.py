"""
Instance Assembler

Turns one baked geometry plus the positions sharing its (chunk, block type,
state) identity into a RenderUnit: shared geometry, shared material and one
translation per instance. Orientation is already baked into the geometry,
so instances never carry a rotation.

The Scene is the registry the exporters read from. Registering a unit under
an identity that is already present replaces and releases the old unit.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Iterator, List, Optional, Sequence, Tuple
import logging
import numpy as np
from numba import njit

from .geometry import GeometryBuffer

logger = logging.getLogger(__name__)


# Blocks rendered with alpha blending and both faces visible
TRANSLUCENT_BLOCKS = frozenset({"glass", "glass_pane", "ice", "tinted_glass"})
TRANSLUCENT_SUFFIXES = ("_stained_glass", "_stained_glass_pane")

# Light fixtures: block name -> emissive RGB factor
EMISSIVE_BLOCKS = {
    "lantern": (1.0, 0.65, 0.15),
    "soul_lantern": (0.35, 0.85, 0.9),
    "glowstone": (1.0, 0.85, 0.5),
    "sea_lantern": (0.75, 0.9, 0.9),
}


@njit(cache=True)
def _expand_positions(positions, translations):
    """Copy block-local positions once per instance translation."""
    n = positions.shape[0]
    m = translations.shape[0]
    out = np.empty((n * m, 3), dtype=np.float32)
    for i in range(m):
        for j in range(n):
            for k in range(3):
                out[i * n + j, k] = positions[j, k] + translations[i, k]
    return out


@njit(cache=True)
def _expand_indices(indices, vertex_count, instance_count):
    """Repeat triangle indices once per instance with vertex offsets."""
    n = indices.shape[0]
    out = np.empty(n * instance_count, dtype=np.uint32)
    for i in range(instance_count):
        offset = i * vertex_count
        for j in range(n):
            out[i * n + j] = indices[j] + offset
    return out


@dataclass
class Material:
    """Shared material referencing the atlas texture."""
    name: str
    texture: Optional[Any] = None     # PIL image of the atlas
    alpha_mode: str = "MASK"          # OPAQUE, MASK or BLEND
    alpha_cutoff: float = 0.1
    double_sided: bool = False
    emissive_factor: Tuple[float, float, float] = (0.0, 0.0, 0.0)


def material_for_block(block_type: str, texture: Optional[Any] = None) -> Material:
    """
    Pick material settings for a canonical block type.

    Args:
        block_type: Canonical block name
        texture: Atlas image shared by every material

    Returns:
        Material named after the block
    """
    material = Material(name=block_type, texture=texture)
    if block_type in TRANSLUCENT_BLOCKS or block_type.endswith(TRANSLUCENT_SUFFIXES):
        material.alpha_mode = "BLEND"
        material.double_sided = True
    if block_type in EMISSIVE_BLOCKS:
        material.emissive_factor = EMISSIVE_BLOCKS[block_type]
    return material


@dataclass
class RenderUnit:
    """Instanced mesh: one geometry, one material, many translations."""
    identity: Hashable
    name: str
    geometry: GeometryBuffer
    material: Material
    translations: np.ndarray          # (K, 3) float32
    released: bool = field(default=False, repr=False)

    @property
    def instance_count(self) -> int:
        return len(self.translations)

    @property
    def triangle_count(self) -> int:
        """Triangles across all instances."""
        return self.geometry.triangle_count * self.instance_count

    def flatten(self) -> GeometryBuffer:
        """
        Expand the instances into one world-space buffer.

        For formats without instancing support.
        """
        geometry = self.geometry
        count = self.instance_count
        positions = np.ascontiguousarray(geometry.positions, dtype=np.float32)
        translations = np.ascontiguousarray(self.translations, dtype=np.float32)
        indices = np.ascontiguousarray(geometry.indices, dtype=np.uint32)

        return GeometryBuffer(
            positions=_expand_positions(positions, translations),
            normals=np.tile(geometry.normals, (count, 1)).astype(np.float32),
            uvs=np.tile(geometry.uvs, (count, 1)).astype(np.float32),
            indices=_expand_indices(indices, geometry.vertex_count, count),
        )

    def release(self):
        """Mark the unit as no longer part of any scene."""
        self.released = True


class Scene:
    """Registry of render units keyed by identity, in registration order."""

    def __init__(self):
        self._units: Dict[Hashable, RenderUnit] = {}

    def register(self, unit: RenderUnit) -> Optional[RenderUnit]:
        """
        Add a unit, replacing and releasing any unit with the same identity.

        Returns:
            The replaced unit, if any
        """
        previous = self._units.pop(unit.identity, None)
        if previous is not None and previous is not unit:
            previous.release()
            logger.debug("Replaced render unit %s", previous.name)
        self._units[unit.identity] = unit
        return previous

    def remove(self, identity: Hashable) -> Optional[RenderUnit]:
        unit = self._units.pop(identity, None)
        if unit is not None:
            unit.release()
        return unit

    def get(self, identity: Hashable) -> Optional[RenderUnit]:
        return self._units.get(identity)

    @property
    def units(self) -> List[RenderUnit]:
        return list(self._units.values())

    @property
    def instance_count(self) -> int:
        return sum(unit.instance_count for unit in self._units.values())

    @property
    def triangle_count(self) -> int:
        return sum(unit.triangle_count for unit in self._units.values())

    def clear(self):
        for unit in self._units.values():
            unit.release()
        self._units.clear()

    def __len__(self) -> int:
        return len(self._units)

    def __iter__(self) -> Iterator[RenderUnit]:
        return iter(list(self._units.values()))


class InstanceAssembler:
    """
    Builds render units and registers them with a scene.

    Block positions are block-corner integers; geometry is block-centered,
    so each instance is translated to position + 0.5 minus the optional
    structure offset.
    """

    def __init__(self, scene: Scene, offset: Sequence[float] = (0.0, 0.0, 0.0)):
        """
        Initialize the assembler.

        Args:
            scene: Scene that receives the units
            offset: Subtracted from every instance translation (centering)
        """
        self.scene = scene
        self.offset = np.asarray(offset, dtype=np.float64)

    def assemble(
        self,
        geometry: GeometryBuffer,
        material: Material,
        positions: np.ndarray,
        identity: Hashable,
        name: Optional[str] = None
    ) -> RenderUnit:
        """
        Build one render unit and register it.

        Args:
            geometry: Shared block-local geometry
            material: Shared material
            positions: (K, 3) block positions
            identity: Registry key, e.g. a GroupKey
            name: Unit name (default: str(identity))

        Returns:
            The registered unit
        """
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        if not len(positions):
            raise ValueError("Cannot assemble a render unit without instances")

        translations = (positions + 0.5 - self.offset).astype(np.float32)
        unit = RenderUnit(
            identity=identity,
            name=name or str(identity),
            geometry=geometry,
            material=material,
            translations=translations,
        )
        self.scene.register(unit)
        return unit
