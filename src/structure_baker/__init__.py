"""
Structure Baker
===============

Block-model resolution and geometry baking for voxel structures.

This package converts a palette-indexed block structure into an instanced,
textured 3D scene and writes it to standard interchange formats
(.glb, .gltf, .obj).

Key Features:
- Model parent-chain inheritance with cycle detection
- Texture slot indirection resolved against a shared atlas
- Element and whole-model rotations built with SciPy
- Multi-part and connected blocks (lanterns, glass panes)
- One render unit per (chunk, block type, state), instanced per block
- Numba-accelerated flattening for formats without instancing

Example Usage:
    from structure_baker import StructureConverter

    converter = StructureConverter()
    converter.load_catalog("assets/")
    converter.load_structure("house.json")
    converter.set_textures_dir("assets/textures")
    converter.convert()
    converter.export_glb("house.glb")
"""

__version__ = "1.0.0"
__author__ = "Structure Baker Team"

from .errors import (
    StructureBakerError,
    LoadError,
    CyclicModelError,
    UnresolvedTextureError,
    ModelNotFoundError,
    MalformedElementError,
)
from .catalog import ModelCatalog, make_state_key
from .resolver import ModelResolver, ResolvedModel, StateKey
from .geometry import GeometryBaker, GeometryBuffer
from .atlas import AtlasRect, TextureAtlasMapping, TextureAtlasBuilder
from .assembler import InstanceAssembler, RenderUnit, Scene
from .structure import Structure
from .diagnostics import Degradation, DegradationLog
from .converter import StructureConverter, BatchProcessor

__all__ = [
    "StructureConverter",
    "BatchProcessor",
    "ModelCatalog",
    "make_state_key",
    "ModelResolver",
    "ResolvedModel",
    "StateKey",
    "GeometryBaker",
    "GeometryBuffer",
    "AtlasRect",
    "TextureAtlasMapping",
    "TextureAtlasBuilder",
    "InstanceAssembler",
    "RenderUnit",
    "Scene",
    "Structure",
    "Degradation",
    "DegradationLog",
    "StructureBakerError",
    "LoadError",
    "CyclicModelError",
    "UnresolvedTextureError",
    "ModelNotFoundError",
    "MalformedElementError",
]
