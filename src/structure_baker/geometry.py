"""
Geometry Baker

Bakes a ResolvedModel into one merged, atlas-mapped mesh buffer for a single
block instance, centered on the block's origin.

Per element:
1. Convert from/to out of 0-16 model space with coord / 16 - 0.5
2. Emit one quad (two triangles) per face present in the element
3. Apply the element rotation about its origin, converted with the same rule
4. Map face UVs: 0-16 -> 0-1, face rotation, then into the atlas rectangle

After all elements: apply the whole-model x/y rotation to the merged set.

Faces absent from an element produce no geometry; a malformed element is
skipped (and counted) without aborting the rest of the model.
"""

from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple
import logging
import math
import threading
import numpy as np

from .atlas import MISSING_TEXTURE, TextureAtlasMapping
from .catalog import CubeElement, FaceSpec, default_face_uv, is_valid_uv
from .diagnostics import Degradation, DegradationLog
from .errors import MalformedElementError
from .resolver import ResolvedModel, StateKey
from .transforms import (
    AXES,
    model_rotation_matrix,
    rotate_points,
    rotation_matrix,
    to_block_space,
)

logger = logging.getLogger(__name__)


# Element coordinates the format accepts (one block of margin on each side)
COORD_MIN = -16.0
COORD_MAX = 32.0

# Rescale only applies within the format's +-45 degree element rotations
MAX_RESCALE_ANGLE = 45.0

# Normal vectors for each face direction
FACE_NORMALS = {
    "down": (0.0, -1.0, 0.0),
    "up": (0.0, 1.0, 0.0),
    "north": (0.0, 0.0, -1.0),
    "south": (0.0, 0.0, 1.0),
    "west": (-1.0, 0.0, 0.0),
    "east": (1.0, 0.0, 0.0),
}

# Corner selectors (0 = from, 1 = to per axis) in counter-clockwise order as
# seen from outside the face: top-left, bottom-left, bottom-right, top-right
# of the face's texture.
FACE_CORNERS = {
    "down": ((0, 0, 1), (0, 0, 0), (1, 0, 0), (1, 0, 1)),
    "up": ((0, 1, 0), (0, 1, 1), (1, 1, 1), (1, 1, 0)),
    "north": ((1, 1, 0), (1, 0, 0), (0, 0, 0), (0, 1, 0)),
    "south": ((0, 1, 1), (0, 0, 1), (1, 0, 1), (1, 1, 1)),
    "west": ((0, 1, 0), (0, 0, 0), (0, 0, 1), (0, 1, 1)),
    "east": ((1, 1, 1), (1, 0, 1), (1, 0, 0), (1, 1, 0)),
}

# Two triangles per quad
QUAD_INDICES = np.array([0, 1, 2, 0, 2, 3], dtype=np.uint32)


class GeometryBuffer(NamedTuple):
    """Container for baked mesh geometry."""
    positions: np.ndarray    # (N, 3) float32 block-local positions
    normals: np.ndarray      # (N, 3) float32 normals
    uvs: np.ndarray          # (N, 2) float32 atlas-space UVs
    indices: np.ndarray      # (M,) uint32 triangle indices

    @classmethod
    def empty(cls) -> "GeometryBuffer":
        return cls(
            positions=np.zeros((0, 3), dtype=np.float32),
            normals=np.zeros((0, 3), dtype=np.float32),
            uvs=np.zeros((0, 2), dtype=np.float32),
            indices=np.zeros(0, dtype=np.uint32),
        )

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    @property
    def face_count(self) -> int:
        return len(self.positions) // 4


def merge_geometry(parts: Sequence[GeometryBuffer]) -> GeometryBuffer:
    """
    Concatenate buffers in order, offsetting indices.

    Args:
        parts: Buffers to merge

    Returns:
        One buffer holding every part's faces in the original order
    """
    parts = [part for part in parts if part.vertex_count]
    if not parts:
        return GeometryBuffer.empty()

    indices = []
    offset = 0
    for part in parts:
        indices.append(part.indices + offset)
        offset += part.vertex_count

    return GeometryBuffer(
        positions=np.vstack([p.positions for p in parts]).astype(np.float32),
        normals=np.vstack([p.normals for p in parts]).astype(np.float32),
        uvs=np.vstack([p.uvs for p in parts]).astype(np.float32),
        indices=np.concatenate(indices).astype(np.uint32),
    )


def _as_vector(values, label: str) -> np.ndarray:
    values = tuple(values)
    if len(values) != 3 or not all(
        isinstance(v, (int, float)) and not isinstance(v, bool) for v in values
    ):
        raise MalformedElementError(f"{label} must be three numbers, got {values!r}")
    vector = np.asarray(values, dtype=np.float64)
    if not np.all(np.isfinite(vector)):
        raise MalformedElementError(f"{label} is not finite: {values!r}")
    return vector


def element_bounds(element: CubeElement) -> Tuple[np.ndarray, np.ndarray]:
    """
    Validate and return an element's from/to in 0-16 model space.

    Raises:
        MalformedElementError: On wrong arity, non-numbers, inverted bounds
            or coordinates outside the accepted range
    """
    lo = _as_vector(element.from_, "from")
    hi = _as_vector(element.to, "to")
    if np.any(lo > hi):
        raise MalformedElementError(f"from {tuple(lo)} exceeds to {tuple(hi)}")
    if np.any(lo < COORD_MIN) or np.any(hi > COORD_MAX):
        raise MalformedElementError(
            f"bounds {tuple(lo)}-{tuple(hi)} outside [{COORD_MIN}, {COORD_MAX}]"
        )
    return lo, hi


def face_uv_corners(uv: Sequence[float], rotation: int = 0) -> np.ndarray:
    """
    Block-local 0-1 UVs for the four face corners.

    Corners are ordered top-left, bottom-left, bottom-right, top-right. A
    face rotation turns the texture clockwise in 90 degree steps about the
    rectangle's center, which cycles the corner assignment.

    Args:
        uv: [u0, v0, u1, v1] in 0-16 space
        rotation: Face rotation in degrees (rounded to a multiple of 90)

    Returns:
        (4, 2) array of UVs in 0-1 space
    """
    u0, v0, u1, v1 = (float(value) / 16.0 for value in uv)
    corners = np.array([(u0, v0), (u0, v1), (u1, v1), (u1, v0)], dtype=np.float64)
    steps = int(round(rotation / 90.0)) % 4
    return np.roll(corners, -steps, axis=0)


class GeometryBaker:
    """
    Bakes resolved models into GeometryBuffers.

    bake() is a pure function of (model, atlas); bake_cached() memoizes it
    per StateKey for one conversion run (one atlas).
    """

    def __init__(self, degradations: Optional[DegradationLog] = None):
        """
        Initialize the baker.

        Args:
            degradations: Shared log for skipped elements and atlas misses
        """
        self.degradations = degradations if degradations is not None else DegradationLog()
        self._cache: Dict[StateKey, GeometryBuffer] = {}
        self._lock = threading.Lock()

    def bake(self, model: ResolvedModel, atlas: TextureAtlasMapping) -> GeometryBuffer:
        """
        Bake a resolved model into block-centered geometry.

        Args:
            model: Fully resolved model
            atlas: Texture atlas UV mapping

        Returns:
            Merged geometry for one block instance
        """
        parts = []
        for index, element in enumerate(model.elements):
            try:
                parts.append(self._bake_element(element, atlas, model.name))
            except MalformedElementError as e:
                self.degradations.record(
                    Degradation.MALFORMED_ELEMENT, f"{model.name}[{index}]", str(e)
                )

        geometry = merge_geometry(parts)

        if (model.x or model.y) and geometry.vertex_count:
            matrix = model_rotation_matrix(model.x, model.y)
            geometry = geometry._replace(
                positions=(geometry.positions @ matrix.T).astype(np.float32),
                normals=(geometry.normals @ matrix.T).astype(np.float32),
            )

        return geometry

    def bake_cached(
        self,
        key: StateKey,
        model: ResolvedModel,
        atlas: TextureAtlasMapping
    ) -> GeometryBuffer:
        """Bake once per StateKey; later calls return the cached buffer."""
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        geometry = self.bake(model, atlas)
        with self._lock:
            return self._cache.setdefault(key, geometry)

    def _bake_element(
        self,
        element: CubeElement,
        atlas: TextureAtlasMapping,
        model_name: str
    ) -> GeometryBuffer:
        lo, hi = element_bounds(element)
        bounds = np.stack([to_block_space(lo), to_block_space(hi)])

        positions: List[np.ndarray] = []
        normals: List[np.ndarray] = []
        uvs: List[np.ndarray] = []
        indices: List[np.ndarray] = []

        for direction, face in element.faces.items():
            corners = np.array(
                [[bounds[sel[axis], axis] for axis in range(3)] for sel in FACE_CORNERS[direction]],
                dtype=np.float64,
            )
            indices.append(QUAD_INDICES + 4 * len(positions))
            positions.append(corners)
            normals.append(np.tile(FACE_NORMALS[direction], (4, 1)))
            uvs.append(self._face_uvs(direction, face, lo, hi, atlas, model_name))

        if not positions:
            return GeometryBuffer.empty()

        positions_arr = np.vstack(positions)
        normals_arr = np.vstack(normals)

        if element.rotation is not None and element.rotation.angle:
            positions_arr, normals_arr = self._rotate_element(
                element, positions_arr, normals_arr
            )

        return GeometryBuffer(
            positions=positions_arr.astype(np.float32),
            normals=normals_arr.astype(np.float32),
            uvs=np.vstack(uvs).astype(np.float32),
            indices=np.concatenate(indices).astype(np.uint32),
        )

    @staticmethod
    def _rotate_element(
        element: CubeElement,
        positions: np.ndarray,
        normals: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        rotation = element.rotation
        if rotation.axis not in AXES:
            raise MalformedElementError(f"unknown rotation axis {rotation.axis!r}")

        # Same conversion as the element bounds
        origin = to_block_space(_as_vector(rotation.origin, "rotation origin"))
        matrix = rotation_matrix(rotation.axis, rotation.angle)
        positions = rotate_points(positions, matrix, origin)
        normals = normals @ matrix.T

        if rotation.rescale and abs(rotation.angle) > MAX_RESCALE_ANGLE:
            logger.debug("Ignoring rescale for a %s degree rotation", rotation.angle)
        elif rotation.rescale:
            scale = np.ones(3)
            factor = 1.0 / math.cos(math.radians(rotation.angle))
            for axis, name in enumerate(AXES):
                if name != rotation.axis:
                    scale[axis] = factor
            positions = (positions - origin) * scale + origin

        return positions, normals

    def _face_uvs(
        self,
        direction: str,
        face: FaceSpec,
        lo: np.ndarray,
        hi: np.ndarray,
        atlas: TextureAtlasMapping,
        model_name: str
    ) -> np.ndarray:
        uv = face.uv if is_valid_uv(face.uv) else default_face_uv(direction, lo, hi)
        local = face_uv_corners(uv, face.rotation)

        texture = face.texture or MISSING_TEXTURE
        rect = atlas.get(texture)
        if rect is None:
            # MISSING_TEXTURE faces were already counted by the resolver
            if texture != MISSING_TEXTURE:
                self.degradations.record(
                    Degradation.MISSING_ATLAS_ENTRY, texture, f"used by {model_name}"
                )
            rect = atlas.placeholder

        atlas_uv = np.empty_like(local)
        atlas_uv[:, 0] = rect.x + local[:, 0] * rect.width
        atlas_uv[:, 1] = rect.y + local[:, 1] * rect.height
        return atlas_uv

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear(self):
        with self._lock:
            self._cache.clear()
