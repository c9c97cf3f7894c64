"""
Export modules for baked structures.

Supported formats:
- glTF 2.0 (.glb / .gltf) - Instanced, textured, for game engines
- Wavefront (.obj) - Flattened, universal legacy support
"""

from .gltf_exporter import GLTFExporter
from .obj_exporter import OBJExporter

__all__ = ["GLTFExporter", "OBJExporter"]
