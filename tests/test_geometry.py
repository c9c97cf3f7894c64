"""
Unit tests for geometry baking and rotation math.
"""

import math
import sys
from pathlib import Path
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from structure_baker.atlas import MISSING_TEXTURE, AtlasRect, TextureAtlasMapping
from structure_baker.catalog import CubeElement, ElementRotation, FaceSpec, default_face_uv
from structure_baker.diagnostics import Degradation, DegradationLog
from structure_baker.errors import MalformedElementError
from structure_baker.geometry import (
    GeometryBaker,
    GeometryBuffer,
    element_bounds,
    face_uv_corners,
    merge_geometry,
)
from structure_baker.resolver import ModelResolver, ResolvedModel, StateKey
from structure_baker.transforms import (
    CoordinateSystem,
    model_rotation_matrix,
    rotate_quarter_turns_y,
    rotation_matrix,
    to_block_space,
    transform_vertices,
)

from catalog_fixtures import make_catalog


def single_face_model(uv=(0, 0, 16, 16), rotation=0, texture="stone", direction="south"):
    face = FaceSpec(texture=texture, uv=uv, rotation=rotation)
    element = CubeElement(from_=(0, 0, 0), to=(16, 16, 16), faces={direction: face})
    return ResolvedModel(name="single", elements=(element,))


class TestTransforms(unittest.TestCase):
    """Tests for rotation and coordinate helpers."""

    def test_block_space(self):
        np.testing.assert_allclose(to_block_space([0, 8, 16]), [-0.5, 0.0, 0.5])

    def test_right_hand_rotation(self):
        """+90 about Y maps +X to -Z."""
        result = rotation_matrix("y", 90) @ np.array([1.0, 0.0, 0.0])
        np.testing.assert_allclose(result, [0.0, 0.0, -1.0], atol=1e-12)

    def test_quarter_turn_exact(self):
        """Off-axis entries of a 90 degree turn are exactly zero."""
        matrix = rotation_matrix("x", 90)
        assert np.count_nonzero(matrix) == 3
        np.testing.assert_allclose(np.abs(matrix).sum(axis=0), [1.0, 1.0, 1.0])

    def test_identity_for_full_turns(self):
        np.testing.assert_array_equal(rotation_matrix("z", 360), np.eye(3))

    def test_unknown_axis(self):
        with self.assertRaises(ValueError):
            rotation_matrix("w", 90)

    def test_model_rotation_clockwise(self):
        """Variant y=90 turns west-facing geometry to face north."""
        west = np.array([-1.0, 0.0, 0.0])
        np.testing.assert_allclose(model_rotation_matrix(y=90) @ west, [0.0, 0.0, -1.0], atol=1e-12)

    def test_quarter_turns_y(self):
        assert rotate_quarter_turns_y(8, 0, 1) == (16, 8)     # north edge -> east edge
        assert rotate_quarter_turns_y(8, 0, 2) == (8, 16)     # north edge -> south edge
        assert rotate_quarter_turns_y(8, 0, -1) == (0, 8)     # north edge -> west edge

    def test_blender_transform(self):
        up = np.array([[0.0, 1.0, 0.0]])
        np.testing.assert_allclose(
            transform_vertices(up, CoordinateSystem.MINECRAFT, CoordinateSystem.BLENDER),
            [[0.0, 0.0, 1.0]]
        )


class TestFaceUVs(unittest.TestCase):
    """Tests for UV helpers."""

    def test_corners_unrotated(self):
        corners = face_uv_corners((0, 0, 16, 16))
        np.testing.assert_allclose(corners, [(0, 0), (0, 1), (1, 1), (1, 0)])

    def test_corners_rotated(self):
        corners = face_uv_corners((0, 0, 16, 16), 90)
        np.testing.assert_allclose(corners, [(0, 1), (1, 1), (1, 0), (0, 0)])

    def test_full_rotation_is_identity(self):
        np.testing.assert_allclose(
            face_uv_corners((2, 4, 6, 8), 360), face_uv_corners((2, 4, 6, 8))
        )

    def test_default_uv(self):
        lo, hi = np.array([0, 0, 0]), np.array([16, 8, 16])
        assert default_face_uv("up", lo, hi) == (0, 0, 16, 16)
        assert default_face_uv("north", lo, hi) == (0, 8, 16, 16)


class TestElementBounds(unittest.TestCase):
    """Tests for element validation."""

    def test_valid(self):
        lo, hi = element_bounds(CubeElement(from_=(0, 0, 0), to=(16, 16, 16)))
        np.testing.assert_array_equal(hi - lo, [16, 16, 16])

    def test_wrong_arity(self):
        with self.assertRaises(MalformedElementError):
            element_bounds(CubeElement(from_=(0, 0), to=(16, 16, 16)))

    def test_inverted(self):
        with self.assertRaises(MalformedElementError):
            element_bounds(CubeElement(from_=(16, 0, 0), to=(0, 16, 16)))

    def test_out_of_range(self):
        with self.assertRaises(MalformedElementError):
            element_bounds(CubeElement(from_=(0, 0, 0), to=(48, 16, 16)))

    def test_non_numeric(self):
        with self.assertRaises(MalformedElementError):
            element_bounds(CubeElement(from_=("a", 0, 0), to=(16, 16, 16)))


class TestGeometryBaker(unittest.TestCase):
    """Tests for GeometryBaker."""

    def setUp(self):
        self.degradations = DegradationLog()
        self.resolver = ModelResolver(make_catalog(), self.degradations)
        self.baker = GeometryBaker(self.degradations)
        self.atlas = TextureAtlasMapping({
            "stone": AtlasRect(0.0, 0.0, 0.1, 0.1),
            MISSING_TEXTURE: AtlasRect(0.9, 0.9, 0.1, 0.1),
        })

    def test_unit_cube(self):
        """A full element spans exactly [-0.5, 0.5] on every axis."""
        geometry = self.baker.bake(self.resolver.resolve("stone"), self.atlas)
        np.testing.assert_allclose(geometry.positions.min(axis=0), [-0.5, -0.5, -0.5])
        np.testing.assert_allclose(geometry.positions.max(axis=0), [0.5, 0.5, 0.5])

    def test_simple_cube_scenario(self):
        geometry = self.baker.bake(self.resolver.resolve("stone"), self.atlas)
        assert geometry.face_count == 6
        assert geometry.vertex_count == 24
        assert geometry.triangle_count == 12
        assert np.all(geometry.uvs >= 0.0)
        assert np.all(geometry.uvs <= 0.1 + 1e-6)

    def test_uv_into_atlas_rect(self):
        atlas = TextureAtlasMapping({"stone": AtlasRect(0.25, 0.5, 0.0625, 0.0625)})
        geometry = self.baker.bake(single_face_model(), atlas)
        np.testing.assert_allclose(geometry.uvs.min(axis=0), [0.25, 0.5])
        np.testing.assert_allclose(geometry.uvs.max(axis=0), [0.3125, 0.5625])

    def test_partial_uv(self):
        atlas = TextureAtlasMapping({"stone": AtlasRect(0.0, 0.0, 1.0, 1.0)})
        geometry = self.baker.bake(single_face_model(uv=(0, 0, 8, 4)), atlas)
        np.testing.assert_allclose(geometry.uvs.max(axis=0), [0.5, 0.25])

    def test_default_uv_follows_bounds(self):
        """A half-height element maps its side faces to the lower texture half."""
        atlas = TextureAtlasMapping({"stone": AtlasRect(0.0, 0.0, 1.0, 1.0)})
        model = self.resolver.resolve("slab")
        geometry = self.baker.bake(model, atlas)
        directions = list(model.elements[0].faces)
        north = directions.index("north")
        uvs = geometry.uvs[north * 4:(north + 1) * 4]
        np.testing.assert_allclose(uvs[:, 1].min(), 0.5)
        np.testing.assert_allclose(uvs[:, 1].max(), 1.0)

    def test_missing_texture_placeholder(self):
        """A "#missing" face bakes with the placeholder rectangle."""
        geometry = self.baker.bake(self.resolver.resolve("broken"), self.atlas)
        assert geometry.face_count == 2

        north, south = geometry.uvs[:4], geometry.uvs[4:]
        assert np.all(north >= 0.9 - 1e-6)
        assert np.all(south <= 0.1 + 1e-6)
        assert self.degradations.count(Degradation.MISSING_TEXTURE) == 1
        assert self.degradations.count(Degradation.MISSING_ATLAS_ENTRY) == 0

    def test_missing_atlas_entry(self):
        geometry = self.baker.bake(single_face_model(texture="diamond_block"), self.atlas)
        assert np.all(geometry.uvs >= 0.9 - 1e-6)
        assert self.degradations.count(Degradation.MISSING_ATLAS_ENTRY) == 1

    def test_default_placeholder_rect(self):
        """Without a placeholder entry, misses collapse onto the default rect."""
        geometry = self.baker.bake(single_face_model(texture="diamond_block"), TextureAtlasMapping({}))
        np.testing.assert_allclose(geometry.uvs, 0.0)

    def test_malformed_element_skipped(self):
        geometry = self.baker.bake(self.resolver.resolve("malformed"), self.atlas)
        assert geometry.face_count == 6
        assert self.degradations.count(Degradation.MALFORMED_ELEMENT) == 1

    def test_absent_faces_emit_nothing(self):
        model = self.resolver.resolve("override_child")
        geometry = self.baker.bake(model, self.atlas)
        assert geometry.face_count == 1
        np.testing.assert_allclose(geometry.normals, [[0.0, 1.0, 0.0]] * 4)

    def test_outward_winding(self):
        """Every triangle is counter-clockwise seen from outside."""
        geometry = self.baker.bake(self.resolver.resolve("stone"), self.atlas)
        triangles = geometry.indices.reshape(-1, 3)
        p = geometry.positions
        for a, b, c in triangles:
            cross = np.cross(p[b] - p[a], p[c] - p[a])
            assert np.dot(cross, geometry.normals[a]) > 0

    def test_normals_match_face_planes(self):
        geometry = self.baker.bake(self.resolver.resolve("stone"), self.atlas)
        for face in range(geometry.face_count):
            normal = geometry.normals[face * 4]
            axis = int(np.argmax(np.abs(normal)))
            plane = geometry.positions[face * 4:(face + 1) * 4, axis]
            np.testing.assert_allclose(plane, 0.5 * normal[axis])

    def test_element_rotation(self):
        geometry = self.baker.bake(self.resolver.resolve("rotated"), self.atlas)
        extent = 0.5 * math.cos(math.radians(45))
        np.testing.assert_allclose(np.abs(geometry.positions[:, 0]).max(), extent, atol=1e-6)
        np.testing.assert_allclose(np.abs(geometry.positions[:, 2]).max(), extent, atol=1e-6)

    def test_element_rotation_rescale(self):
        geometry = self.baker.bake(self.resolver.resolve("rotated_rescale"), self.atlas)
        np.testing.assert_allclose(np.abs(geometry.positions[:, 0]).max(), 0.5, atol=1e-6)
        np.testing.assert_allclose(np.abs(geometry.positions[:, 1]).max(), 0.5, atol=1e-6)

    def test_model_rotation_x(self):
        """x=180 flips a bottom slab to the top half."""
        slab = self.resolver.resolve("slab")
        flipped = ResolvedModel(name="slab_top", elements=slab.elements, x=180)
        geometry = self.baker.bake(flipped, self.atlas)
        np.testing.assert_allclose(geometry.positions[:, 1].min(), 0.0, atol=1e-6)
        np.testing.assert_allclose(geometry.positions[:, 1].max(), 0.5, atol=1e-6)

    def test_model_rotation_y(self):
        """A west-side door turned y=90 ends up on the north side."""
        model = self.resolver.resolve("oak_door", {"facing": "east", "half": "top"})
        geometry = self.baker.bake(model, self.atlas)
        np.testing.assert_allclose(geometry.positions[:, 2].min(), -0.5, atol=1e-6)
        np.testing.assert_allclose(geometry.positions[:, 2].max(), -0.3125, atol=1e-6)
        np.testing.assert_allclose(geometry.positions[:, 0].min(), -0.5, atol=1e-6)
        np.testing.assert_allclose(geometry.positions[:, 0].max(), 0.5, atol=1e-6)

    def test_element_then_model_rotation(self):
        """An off-center element pivot converts like the bounds and turns before y=90."""
        face = FaceSpec(texture="stone", uv=(0, 0, 16, 16))
        element = CubeElement(
            from_=(0, 0, 0),
            to=(4, 4, 4),
            faces={"south": face},
            rotation=ElementRotation(origin=(0, 0, 0), axis="z", angle=22.5),
        )
        model = ResolvedModel(name="tilted", elements=(element,), y=90)
        geometry = self.baker.bake(model, self.atlas)

        c, s = math.cos(math.radians(22.5)), math.sin(math.radians(22.5))
        # South face corners relative to the pivot at (-0.5, -0.5, -0.5)
        relative = np.array([[0.0, 0.25], [0.0, 0.0], [0.25, 0.0], [0.25, 0.25]])
        tilted_x = relative[:, 0] * c - relative[:, 1] * s
        tilted_y = relative[:, 0] * s + relative[:, 1] * c
        # y=90 maps (x, y, z) onto (-z, y, x)
        expected = np.column_stack([
            np.full(4, 0.25),
            tilted_y - 0.5,
            tilted_x - 0.5,
        ])
        np.testing.assert_allclose(geometry.positions, expected, atol=1e-6)
        np.testing.assert_allclose(geometry.normals, [[-1.0, 0.0, 0.0]] * 4, atol=1e-6)

    def test_rescale_ignored_past_45_degrees(self):
        face = FaceSpec(texture="stone", uv=(0, 0, 16, 16))
        element = CubeElement(
            from_=(0, 0, 0),
            to=(16, 16, 16),
            faces={"south": face},
            rotation=ElementRotation(origin=(8, 8, 8), axis="y", angle=90, rescale=True),
        )
        geometry = self.baker.bake(ResolvedModel(name="turned", elements=(element,)), self.atlas)
        np.testing.assert_allclose(np.abs(geometry.positions).max(), 0.5, atol=1e-6)
        np.testing.assert_allclose(geometry.positions[:, 0], 0.5, atol=1e-6)

    def test_bake_cached(self):
        key = StateKey("stone", "")
        model = self.resolver.resolve("stone")
        first = self.baker.bake_cached(key, model, self.atlas)
        second = self.baker.bake_cached(key, model, self.atlas)
        assert first is second
        assert self.baker.cache_size == 1

    def test_merge_offsets_indices(self):
        part = self.baker.bake(single_face_model(), self.atlas)
        merged = merge_geometry([part, GeometryBuffer.empty(), part])
        assert merged.vertex_count == 8
        np.testing.assert_array_equal(merged.indices[6:], part.indices + 4)


if __name__ == "__main__":
    unittest.main(verbosity=2)
