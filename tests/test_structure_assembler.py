"""
Unit tests for structure grouping, instance assembly and the texture atlas.
"""

import json
import sys
import tempfile
from pathlib import Path
import numpy as np
import unittest
from PIL import Image

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from structure_baker.assembler import InstanceAssembler, Scene, material_for_block
from structure_baker.atlas import (
    MISSING_TEXTURE,
    AtlasRect,
    TextureAtlasBuilder,
    TextureAtlasMapping,
    make_placeholder_tile,
)
from structure_baker.errors import LoadError
from structure_baker.geometry import GeometryBuffer
from structure_baker.structure import GroupKey, PaletteEntry, Structure


def quad_geometry() -> GeometryBuffer:
    return GeometryBuffer(
        positions=np.array([[-0.5, 0.5, 0.5], [-0.5, -0.5, 0.5], [0.5, -0.5, 0.5], [0.5, 0.5, 0.5]],
                           dtype=np.float32),
        normals=np.tile(np.array([0.0, 0.0, 1.0], dtype=np.float32), (4, 1)),
        uvs=np.array([[0, 0], [0, 1], [1, 1], [1, 0]], dtype=np.float32),
        indices=np.array([0, 1, 2, 0, 2, 3], dtype=np.uint32),
    )


class TestStructure(unittest.TestCase):
    """Tests for Structure parsing and grouping."""

    def setUp(self):
        self.data = {
            "size": [32, 2, 1],
            "palette": [
                {"Name": "minecraft:air"},
                {"Name": "minecraft:stone"},
                {"Name": "minecraft:oak_door", "Properties": {"half": "top", "facing": "north"}},
                {"Name": "stone"},
            ],
            "blocks": [
                {"state": 0, "pos": [0, 1, 0]},
                {"state": 1, "pos": [0, 0, 0]},
                {"state": 1, "pos": [1, 0, 0]},
                {"state": 1, "pos": [20, 0, 0]},
                {"state": 2, "pos": [2, 0, 0]},
                {"state": 3, "pos": [3, 0, 0]},
            ],
        }

    def test_from_dict(self):
        structure = Structure.from_dict(self.data)
        assert len(structure.palette) == 4
        assert structure.size == (32, 2, 1)
        assert structure.count_blocks() == 5

    def test_palette_entry(self):
        entry = PaletteEntry.from_dict(self.data["palette"][2])
        assert entry.block_type == "oak_door"
        assert entry.state == "facing=north,half=top"
        assert not entry.is_air
        assert PaletteEntry("minecraft:cave_air").is_air

    def test_grouping(self):
        groups = Structure.from_dict(self.data).group_blocks(16)
        assert set(groups) == {
            GroupKey(0, 0, "stone", ""),
            GroupKey(1, 0, "stone", ""),
            GroupKey(0, 0, "oak_door", "facing=north,half=top"),
        }
        # "minecraft:stone" and "stone" share one group
        assert len(groups[GroupKey(0, 0, "stone", "")]) == 3
        np.testing.assert_array_equal(groups[GroupKey(1, 0, "stone", "")], [[20, 0, 0]])

    def test_negative_chunks(self):
        structure = Structure.from_blocks([("stone", {}, (-1, 0, -17))])
        assert list(structure.group_blocks(16)) == [GroupKey(-1, -2, "stone", "")]

    def test_bounds_ignore_air(self):
        lo, hi = Structure.from_dict(self.data).bounds
        np.testing.assert_array_equal(lo, [0, 0, 0])
        np.testing.assert_array_equal(hi, [21, 1, 1])

    def test_from_blocks_shares_palette(self):
        structure = Structure.from_blocks([
            ("stone", {}, (0, 0, 0)),
            ("stone", None, (1, 0, 0)),
            ("lantern", {"hanging": True}, (0, 1, 0)),
        ])
        assert len(structure.palette) == 2
        assert structure.size == (2, 2, 1)

    def test_malformed(self):
        with self.assertRaises(LoadError):
            Structure.from_dict({"palette": [{"Name": "stone"}]})
        with self.assertRaises(LoadError):
            Structure.from_dict({"palette": [{}], "blocks": []})
        with self.assertRaises(LoadError):
            Structure.from_dict({"palette": [{"Name": "stone"}], "blocks": [[0, 0, 0]]})
        with self.assertRaises(LoadError):
            Structure.from_dict({"palette": ["stone"], "blocks": []})

    def test_index_out_of_range(self):
        with self.assertRaises(ValueError):
            Structure(palette=[PaletteEntry("stone")], palette_indices=[1], positions=[[0, 0, 0]])

    def test_bad_chunk_size(self):
        with self.assertRaises(ValueError):
            Structure.from_dict(self.data).group_blocks(0)

    def test_load(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "structure.json"
            path.write_text(json.dumps(self.data), encoding="utf-8")
            assert Structure.load(path).count_blocks() == 5

            with self.assertRaises(LoadError):
                Structure.load(Path(tmp) / "missing.json")


class TestAssembler(unittest.TestCase):
    """Tests for Scene and InstanceAssembler."""

    def setUp(self):
        self.scene = Scene()
        self.material = material_for_block("stone")

    def test_translations(self):
        assembler = InstanceAssembler(self.scene, offset=(1.0, 0.0, 0.5))
        unit = assembler.assemble(
            quad_geometry(), self.material, np.array([[0, 0, 0], [2, 1, 0]]), identity="a"
        )
        np.testing.assert_allclose(unit.translations, [[-0.5, 0.5, 0.0], [1.5, 1.5, 0.0]])
        assert unit.instance_count == 2
        assert unit.triangle_count == 4
        assert self.scene.get("a") is unit

    def test_replace_releases(self):
        assembler = InstanceAssembler(self.scene)
        first = assembler.assemble(quad_geometry(), self.material, [[0, 0, 0]], identity="a")
        second = assembler.assemble(quad_geometry(), self.material, [[1, 0, 0]], identity="a")

        assert first.released
        assert not second.released
        assert len(self.scene) == 1
        assert self.scene.units[0] is second

    def test_counters(self):
        assembler = InstanceAssembler(self.scene)
        assembler.assemble(quad_geometry(), self.material, [[0, 0, 0], [1, 0, 0]], identity="a")
        assembler.assemble(quad_geometry(), self.material, [[0, 1, 0]], identity="b")
        assert self.scene.instance_count == 3
        assert self.scene.triangle_count == 6

        removed = self.scene.remove("a")
        assert removed.released
        assert len(self.scene) == 1

        self.scene.clear()
        assert len(self.scene) == 0

    def test_empty_positions(self):
        assembler = InstanceAssembler(self.scene)
        with self.assertRaises(ValueError):
            assembler.assemble(quad_geometry(), self.material, np.zeros((0, 3)), identity="a")

    def test_flatten(self):
        assembler = InstanceAssembler(self.scene)
        unit = assembler.assemble(
            quad_geometry(), self.material, [[0, 0, 0], [3, 0, 0]], identity="a"
        )
        flat = unit.flatten()
        assert flat.vertex_count == 8
        assert flat.triangle_count == 4
        np.testing.assert_array_equal(flat.indices[6:], [4, 5, 6, 4, 6, 7])
        np.testing.assert_allclose(flat.positions[4], [3.0, 1.0, 1.0])

    def test_materials(self):
        assert material_for_block("stone").alpha_mode == "MASK"

        glass = material_for_block("red_stained_glass_pane")
        assert glass.alpha_mode == "BLEND"
        assert glass.double_sided

        lantern = material_for_block("lantern")
        assert any(lantern.emissive_factor)


class TestAtlas(unittest.TestCase):
    """Tests for the atlas mapping and builder."""

    def test_mapping_forms(self):
        mapping = TextureAtlasMapping.from_dict({
            "stone": {"x": 0, "y": 0, "width": 0.5, "height": 0.5},
            "dirt": [0.5, 0, 0.5, 0.5],
        })
        assert mapping.rect_for("dirt") == AtlasRect(0.5, 0.0, 0.5, 0.5)
        assert mapping.get("gravel") is None
        assert mapping.rect_for("gravel") == mapping.placeholder

    def test_placeholder_entry(self):
        mapping = TextureAtlasMapping({MISSING_TEXTURE: AtlasRect(0.5, 0.5, 0.5, 0.5)})
        assert mapping.rect_for("gravel") == AtlasRect(0.5, 0.5, 0.5, 0.5)

    def test_malformed_mapping(self):
        with self.assertRaises(LoadError):
            TextureAtlasMapping.from_dict({"stone": {"x": 0}})

    def test_load_mapping(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "atlas.json"
            path.write_text(json.dumps({"stone": [0, 0, 1, 1]}), encoding="utf-8")
            assert "stone" in TextureAtlasMapping.load(path)

    def test_placeholder_tile(self):
        tile = np.asarray(make_placeholder_tile(16))
        assert tile.shape == (16, 16, 4)
        assert tuple(tile[0, 0]) == (248, 0, 248, 255)
        assert tuple(tile[0, 8]) == (0, 0, 0, 255)

    def test_builder(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            Image.new("RGBA", (16, 16), (128, 128, 128, 255)).save(root / "stone.png")
            (root / "block").mkdir()
            # Animated strip: two frames, the first is red
            strip = Image.new("RGBA", (16, 32), (0, 0, 255, 255))
            strip.paste(Image.new("RGBA", (16, 16), (255, 0, 0, 255)), (0, 0))
            strip.save(root / "block" / "lava.png")

            mapping, image = TextureAtlasBuilder(root).build(["stone", "lava", "unknown"])

            assert set(mapping.names) == {MISSING_TEXTURE, "stone", "lava"}
            assert image.size == (32, 32)

            rect = mapping.rect_for("lava")
            px = image.getpixel((int(rect.x * 32), int(rect.y * 32)))
            assert px == (255, 0, 0, 255)
            assert mapping.rect_for("unknown") == mapping.rect_for(MISSING_TEXTURE)

    def test_builder_missing_dir(self):
        with self.assertRaises(FileNotFoundError):
            TextureAtlasBuilder("/nonexistent/textures")


if __name__ == "__main__":
    unittest.main(verbosity=2)
