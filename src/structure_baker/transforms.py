"""
Rotation and Coordinate-System Mathematics

Block models live in a 16-units-per-block integer space. The baker converts
everything to a block-centered unit space (coord / 16 - 0.5) before any
rotation is applied, so element origins and whole-model rotations share one
frame.

Coordinate Systems:
- Minecraft (internal): Right-handed, Y-up (+X East, +Y Up, +Z South)
- glTF: Right-handed, Y-up (identical axes to internal)
- Blender: Right-handed, Z-up (+X Right, +Y Back, +Z Up)

Rotation conventions:
- Element rotations follow the right-hand rule about +axis.
- Blockstate x/y rotations turn the model clockwise when looking down the
  positive axis, i.e. they are right-hand rotations by the negated angle.
"""

from enum import Enum
from typing import Sequence, Tuple
import numpy as np
from scipy.spatial.transform import Rotation


BLOCK_UNITS = 16.0

# Matrix entries smaller than this are snapped to zero so that 90 degree
# rotations stay exact.
_SNAP_EPSILON = 1e-12

AXES = ("x", "y", "z")


class CoordinateSystem(Enum):
    """Target coordinate system for export."""
    MINECRAFT = "minecraft"    # Y-up, right-handed (internal)
    GLTF = "gltf"              # Y-up, right-handed
    BLENDER = "blender"        # Z-up, right-handed


def to_block_space(coords: Sequence[float]) -> np.ndarray:
    """
    Convert 0-16 model coordinates to block-centered unit space.

    Args:
        coords: Sequence of model-space values (any shape)

    Returns:
        Array of the same shape with coord / 16 - 0.5 applied
    """
    return np.asarray(coords, dtype=np.float64) / BLOCK_UNITS - 0.5


def _snap(matrix: np.ndarray) -> np.ndarray:
    matrix = matrix.copy()
    matrix[np.abs(matrix) < _SNAP_EPSILON] = 0.0
    return matrix


def rotation_matrix(axis: str, degrees: float) -> np.ndarray:
    """
    Build a right-hand rotation matrix about a principal axis.

    Args:
        axis: One of "x", "y", "z"
        degrees: Rotation angle in degrees

    Returns:
        3x3 float64 rotation matrix
    """
    axis = axis.lower()
    if axis not in AXES:
        raise ValueError(f"Unknown rotation axis: {axis}")
    if degrees % 360 == 0:
        return np.eye(3, dtype=np.float64)
    matrix = Rotation.from_euler(axis, degrees, degrees=True).as_matrix()
    return _snap(matrix)


def model_rotation_matrix(x: float = 0, y: float = 0) -> np.ndarray:
    """
    Build the whole-model rotation for a blockstate variant.

    X is applied first, then Y, both clockwise-looking-down-the-axis as the
    blockstate format defines them.

    Args:
        x: Variant x rotation in degrees
        y: Variant y rotation in degrees

    Returns:
        3x3 float64 rotation matrix
    """
    return rotation_matrix("y", -y) @ rotation_matrix("x", -x)


def rotate_points(
    points: np.ndarray,
    matrix: np.ndarray,
    origin: Sequence[float] = (0.0, 0.0, 0.0)
) -> np.ndarray:
    """
    Rotate points about an origin: translate by -origin, rotate, translate back.

    Args:
        points: Array of shape (N, 3)
        matrix: 3x3 rotation matrix
        origin: Pivot point in the same space as points

    Returns:
        Rotated points of shape (N, 3)
    """
    origin = np.asarray(origin, dtype=np.float64)
    return (points - origin) @ matrix.T + origin


def rotate_quarter_turns_y(
    x: float,
    z: float,
    quarter_turns: int,
    center: float = BLOCK_UNITS / 2
) -> Tuple[float, float]:
    """
    Rotate an (x, z) point clockwise (looking down) in 90 degree steps.

    Exact integer-friendly rotation used for synthesizing connected geometry
    in 0-16 model space: north maps to east, east to south, and so on.

    Args:
        x, z: Point coordinates
        quarter_turns: Number of clockwise 90 degree turns (may be negative)
        center: Pivot coordinate on both axes

    Returns:
        Rotated (x, z)
    """
    dx, dz = x - center, z - center
    for _ in range(quarter_turns % 4):
        dx, dz = -dz, dx
    return (center + dx, center + dz)


def get_coordinate_transform(
    source: CoordinateSystem,
    target: CoordinateSystem
) -> np.ndarray:
    """
    Get the transformation matrix between coordinate systems.

    Args:
        source: Source coordinate system
        target: Target coordinate system

    Returns:
        3x3 transformation matrix
    """
    if source == target:
        return np.eye(3, dtype=np.float64)

    # Minecraft to glTF: same axes
    minecraft_to_gltf = np.eye(3, dtype=np.float64)

    # Minecraft (Y-up) to Blender (Z-up): (x, y, z) -> (x, -z, y)
    minecraft_to_blender = np.array([
        [1, 0, 0],
        [0, 0, -1],
        [0, 1, 0]
    ], dtype=np.float64)

    transforms = {
        (CoordinateSystem.MINECRAFT, CoordinateSystem.GLTF): minecraft_to_gltf,
        (CoordinateSystem.MINECRAFT, CoordinateSystem.BLENDER): minecraft_to_blender,
    }

    if (source, target) in transforms:
        return transforms[(source, target)]

    if (target, source) in transforms:
        return np.linalg.inv(transforms[(target, source)])

    # Chain through internal
    if source != CoordinateSystem.MINECRAFT and target != CoordinateSystem.MINECRAFT:
        to_internal = get_coordinate_transform(source, CoordinateSystem.MINECRAFT)
        from_internal = get_coordinate_transform(CoordinateSystem.MINECRAFT, target)
        return from_internal @ to_internal

    raise ValueError(f"No transform defined from {source} to {target}")


def transform_vertices(
    vertices: np.ndarray,
    source: CoordinateSystem,
    target: CoordinateSystem
) -> np.ndarray:
    """
    Transform an array of vertices between coordinate systems.

    Args:
        vertices: Array of shape (N, 3) containing vertex positions
        source: Source coordinate system
        target: Target coordinate system

    Returns:
        Transformed vertices array of shape (N, 3)
    """
    matrix = get_coordinate_transform(source, target)
    return (matrix @ vertices.T).T
