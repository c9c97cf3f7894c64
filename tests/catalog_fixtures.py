"""
Shared in-memory definition tables for the test suite.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from structure_baker.catalog import FACE_DIRECTIONS, ModelCatalog


def _faces(texture, directions=FACE_DIRECTIONS):
    return {direction: {"texture": texture} for direction in directions}


def _cube(start, end, texture, directions=FACE_DIRECTIONS):
    return {"from": list(start), "to": list(end), "faces": _faces(texture, directions)}


MODELS = {
    "block/cube": {
        "elements": [{
            "from": [0, 0, 0],
            "to": [16, 16, 16],
            "faces": {direction: {"texture": f"#{direction}"} for direction in FACE_DIRECTIONS},
        }]
    },
    "block/cube_all": {
        "parent": "block/cube",
        "textures": {direction: "#all" for direction in FACE_DIRECTIONS},
    },
    "block/stone": {
        "parent": "block/cube_all",
        "textures": {"all": "minecraft:block/stone"},
    },
    "block/aliased": {
        "parent": "block/cube_all",
        "textures": {"all": "block/old_stone"},
    },
    "block/marker_only": {
        "parent": "block/cube_all",
        "textures": {"all": "block/marker"},
    },
    "block/override_child": {
        "parent": "block/cube_all",
        "textures": {"all": "block/dirt"},
        "elements": [
            {"from": [0, 0, 0], "to": [16, 8, 16], "faces": {"up": {"texture": "#all"}}}
        ],
    },
    "block/slab": {
        "textures": {"all": "block/stone"},
        "elements": [_cube((0, 0, 0), (16, 8, 16), "#all")],
    },
    "block/no_elements": {
        "textures": {"all": "block/dirt"},
    },
    "block/door_top": {
        "elements": [_cube((0, 0, 0), (3, 16, 16), "#top")],
    },
    "block/oak_door_top": {
        "parent": "block/door_top",
        "textures": {"top": "block/oak_door_top"},
    },
    "block/oak_door_bottom": {
        "parent": "block/door_top",
        "textures": {"top": "block/oak_door_bottom"},
    },
    "block/cycle_a": {"parent": "block/cycle_b"},
    "block/cycle_b": {"parent": "block/cycle_a"},
    "block/orphan": {
        "parent": "block/nowhere",
        "textures": {"all": "block/stone"},
        "elements": [_cube((0, 0, 0), (16, 16, 16), "#all")],
    },
    "block/deep_chain": {
        "textures": {"a": "#b", "b": "#c", "c": "block/stone"},
        "elements": [_cube((0, 0, 0), (16, 16, 16), "#a", ("up",))],
    },
    "block/self_ref": {
        "textures": {"a": "#a"},
        "elements": [_cube((0, 0, 0), (16, 16, 16), "#a", ("up",))],
    },
    "block/broken_faces": {
        "textures": {"all": "block/stone"},
        "elements": [{
            "from": [0, 0, 0],
            "to": [16, 16, 16],
            "faces": {
                "north": {"texture": "#missing", "uv": [0, 0, 16, 16]},
                "south": {"texture": "#all", "uv": [0, 0, 16, 16]},
            },
        }],
    },
    "block/malformed": {
        "textures": {"all": "block/stone"},
        "elements": [
            _cube((0, 0, 0), (16, 16, 16), "#all"),
            {"from": [0, 0], "to": [16, 16, 16], "faces": _faces("#all")},
        ],
    },
    "block/rotated": {
        "textures": {"all": "block/stone"},
        "elements": [{
            "from": [0, 0, 8],
            "to": [16, 16, 8],
            "rotation": {"origin": [8, 8, 8], "axis": "y", "angle": 45},
            "faces": _faces("#all", ("north", "south")),
        }],
    },
    "block/rotated_rescale": {
        "textures": {"all": "block/stone"},
        "elements": [{
            "from": [0, 0, 8],
            "to": [16, 16, 8],
            "rotation": {"origin": [8, 8, 8], "axis": "y", "angle": 45, "rescale": True},
            "faces": _faces("#all", ("north", "south")),
        }],
    },
    "block/template_lantern": {
        "textures": {"particle": "#lantern"},
        "elements": [
            _cube((5, 0, 5), (11, 7, 11), "#lantern"),
            _cube((6, 7, 6), (10, 9, 10), "#lantern"),
        ],
    },
    "block/template_hanging_lantern": {
        "textures": {"particle": "#lantern"},
        "elements": [
            _cube((5, 1, 5), (11, 8, 11), "#lantern"),
            _cube((6, 8, 6), (10, 10, 10), "#lantern"),
            _cube((6.5, 11, 8), (9.5, 15, 8), "#lantern", ("north", "south")),
        ],
    },
    "block/template_glass_pane_post": {
        "elements": [
            _cube((7, 0, 7), (9, 16, 9), "#edge", ("north", "south", "up", "down")),
        ],
    },
    "block/template_glass_pane_side": {
        "elements": [{
            "from": [7, 0, 0],
            "to": [9, 16, 7],
            "faces": {
                "north": {"texture": "#edge", "cullface": "north"},
                "down": {"texture": "#edge", "cullface": "down"},
                "up": {"texture": "#edge", "cullface": "up"},
                "west": {"texture": "#pane"},
                "east": {"texture": "#pane"},
            },
        }],
    },
    "block/template_glass_pane_noside": {
        "elements": [_cube((7, 0, 7), (9, 16, 9), "#pane", ("north",))],
    },
}

BLOCK_STATES = {
    "stone": {"variants": {"": {"model": "block/stone"}}},
    "legacy_stone": {"variants": {"normal": {"model": "block/stone"}}},
    "mossy": {
        "variants": {
            "": [{"model": "block/stone"}, {"model": "block/cube_all", "weight": 3}]
        }
    },
    "oak_door": {
        "variants": {
            "facing=north,half=top": {"model": "block/oak_door_top"},
            "facing=north,half=bottom": {"model": "block/oak_door_bottom"},
            "half=top,facing=east": {"model": "block/oak_door_top", "y": 90},
        }
    },
    "log": {
        "variants": {
            "axis=x": {"model": "block/stone", "x": 90, "y": 90},
            "axis=y": {"model": "block/stone"},
            "axis=z": {"model": "block/stone", "x": 90},
        }
    },
    "cycle_block": {"variants": {"": {"model": "block/cycle_a"}}},
    "broken": {"variants": {"": {"model": "block/broken_faces"}}},
    "ghost": {"variants": {"": {"model": "block/does_not_exist"}}},
}

TEXTURE_ALIASES = {
    "block/old_stone": "minecraft:block/stone",
}


def make_catalog(models=None, block_states=None, texture_aliases=None) -> ModelCatalog:
    """Catalog over the shared tables (or overrides)."""
    return ModelCatalog.from_dict(
        MODELS if models is None else models,
        BLOCK_STATES if block_states is None else block_states,
        TEXTURE_ALIASES if texture_aliases is None else texture_aliases,
    )


def models_without(*names):
    """Copy of MODELS without the given model names."""
    return {name: data for name, data in MODELS.items() if name not in names}
