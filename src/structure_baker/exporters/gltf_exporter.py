"""
glTF 2.0 Exporter (.glb binary and .gltf JSON)

Writes a populated Scene:
- One mesh per render unit (POSITION, NORMAL, TEXCOORD_0, indices)
- One material per block type, all sampling the shared atlas image
- Instances either as one child node per translation, or through the
  EXT_mesh_gpu_instancing extension (one node per unit)
- The atlas embedded as PNG with nearest-neighbor sampling

glTF Structure:
- JSON header describing the scene graph
- Binary buffer containing geometry data, instance translations and the
  atlas image, each view aligned to 4 bytes
"""

from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import base64
import json
import logging
import struct
import numpy as np

from ..assembler import Material, RenderUnit, Scene
from ..transforms import CoordinateSystem, transform_vertices

logger = logging.getLogger(__name__)


# glTF constants
GLTF_VERSION = "2.0"
GENERATOR = "StructureBaker"

# Component types
UNSIGNED_SHORT = 5123
UNSIGNED_INT = 5125
FLOAT = 5126

# Buffer view targets
ARRAY_BUFFER = 34962
ELEMENT_ARRAY_BUFFER = 34963

# Primitive modes
TRIANGLES = 4

# Sampler filters / wrapping
NEAREST = 9728
CLAMP_TO_EDGE = 33071

GPU_INSTANCING = "EXT_mesh_gpu_instancing"


class _BufferBuilder:
    """Accumulates aligned buffer views and accessors."""

    def __init__(self):
        self.parts: List[bytes] = []
        self.length = 0
        self.buffer_views: List[Dict[str, Any]] = []
        self.accessors: List[Dict[str, Any]] = []

    def add_view(self, data: bytes, target: Optional[int] = None) -> int:
        view = {"buffer": 0, "byteOffset": self.length, "byteLength": len(data)}
        if target is not None:
            view["target"] = target
        self.parts.append(data)
        self.length += len(data)

        padding = (4 - self.length % 4) % 4
        self.parts.append(b'\x00' * padding)
        self.length += padding

        self.buffer_views.append(view)
        return len(self.buffer_views) - 1

    def add_accessor(
        self,
        array: np.ndarray,
        component_type: int,
        accessor_type: str,
        target: Optional[int] = None,
        with_bounds: bool = False
    ) -> int:
        view = self.add_view(array.tobytes(), target)
        accessor = {
            "bufferView": view,
            "componentType": component_type,
            "count": int(len(array)),
            "type": accessor_type,
        }
        if with_bounds:
            accessor["min"] = array.min(axis=0).tolist()
            accessor["max"] = array.max(axis=0).tolist()
        self.accessors.append(accessor)
        return len(self.accessors) - 1

    def data(self) -> bytes:
        return b''.join(self.parts)


class GLTFExporter:
    """
    Export a Scene to glTF 2.0.

    Features:
    - Texture atlas embedded as PNG
    - Coordinate system conversion
    - Optional GPU instancing extension
    """

    def __init__(
        self,
        coordinate_system: CoordinateSystem = CoordinateSystem.GLTF,
        scale: float = 1.0,
        gpu_instancing: bool = False
    ):
        """
        Initialize the exporter.

        Args:
            coordinate_system: Target coordinate system
            scale: Scale factor for positions and translations
            gpu_instancing: Use EXT_mesh_gpu_instancing instead of one node
                per instance
        """
        self.coordinate_system = coordinate_system
        self.scale = scale
        self.gpu_instancing = gpu_instancing

    def export(self, scene: Scene, output_path: Union[str, Path]):
        """
        Export a scene; the suffix selects .glb (binary) or .gltf (JSON).

        Args:
            scene: Populated scene
            output_path: Output file path
        """
        output_path = Path(output_path)
        gltf, buffer_data = self.build(scene)

        if output_path.suffix.lower() == ".gltf":
            self._write_gltf(output_path, gltf, buffer_data)
        else:
            self._write_glb(output_path, gltf, buffer_data)

        logger.info(
            "Exported %d meshes (%d instances) to %s",
            len(gltf["meshes"]), scene.instance_count, output_path
        )

    def build(self, scene: Scene) -> "tuple[Dict[str, Any], bytes]":
        """
        Build the glTF JSON structure and binary buffer.

        Returns:
            (gltf dict, buffer bytes)
        """
        units = [unit for unit in scene if unit.geometry.vertex_count and unit.instance_count]
        if not units:
            raise ValueError("Cannot export empty scene")

        buffers = _BufferBuilder()
        materials: List[Dict[str, Any]] = []
        material_index: Dict[str, int] = {}
        meshes: List[Dict[str, Any]] = []
        nodes: List[Dict[str, Any]] = [{"name": "Structure", "children": []}]
        textures: List[Dict[str, Any]] = []
        images: List[Dict[str, Any]] = []

        atlas = next((u.material.texture for u in units if u.material.texture is not None), None)
        if atlas is not None:
            png = BytesIO()
            atlas.save(png, format="PNG")
            image_view = buffers.add_view(png.getvalue())
            images.append({"bufferView": image_view, "mimeType": "image/png", "name": "atlas"})
            textures.append({"sampler": 0, "source": 0})

        for unit in units:
            if unit.material.name not in material_index:
                material_index[unit.material.name] = len(materials)
                materials.append(self._build_material(unit.material, bool(textures)))

            meshes.append(self._build_mesh(buffers, unit, material_index[unit.material.name]))
            mesh_id = len(meshes) - 1
            translations = self._convert(unit.translations)

            if self.gpu_instancing:
                accessor = buffers.add_accessor(translations, FLOAT, "VEC3")
                nodes.append({
                    "name": unit.name,
                    "mesh": mesh_id,
                    "extensions": {GPU_INSTANCING: {"attributes": {"TRANSLATION": accessor}}},
                })
                nodes[0]["children"].append(len(nodes) - 1)
            else:
                group = {"name": unit.name, "children": []}
                nodes.append(group)
                nodes[0]["children"].append(len(nodes) - 1)
                for translation in translations:
                    nodes.append({"mesh": mesh_id, "translation": translation.tolist()})
                    group["children"].append(len(nodes) - 1)

        gltf: Dict[str, Any] = {
            "asset": {
                "version": GLTF_VERSION,
                "generator": GENERATOR
            },
            "scene": 0,
            "scenes": [
                {"nodes": [0]}
            ],
            "nodes": nodes,
            "meshes": meshes,
            "materials": materials,
            "accessors": buffers.accessors,
            "bufferViews": buffers.buffer_views,
            "buffers": [
                {"byteLength": buffers.length}
            ]
        }

        if textures:
            gltf["images"] = images
            gltf["textures"] = textures
            gltf["samplers"] = [{
                "magFilter": NEAREST,
                "minFilter": NEAREST,
                "wrapS": CLAMP_TO_EDGE,
                "wrapT": CLAMP_TO_EDGE,
            }]

        if self.gpu_instancing:
            gltf["extensionsUsed"] = [GPU_INSTANCING]

        return gltf, buffers.data()

    def _convert(self, vectors: np.ndarray, scale: bool = True) -> np.ndarray:
        vectors = np.asarray(vectors, dtype=np.float64)
        if scale:
            vectors = vectors * self.scale
        if self.coordinate_system != CoordinateSystem.MINECRAFT:
            vectors = transform_vertices(
                vectors, CoordinateSystem.MINECRAFT, self.coordinate_system
            )
        return vectors.astype(np.float32)

    def _build_mesh(self, buffers: _BufferBuilder, unit: RenderUnit, material: int) -> Dict[str, Any]:
        geometry = unit.geometry

        indices = geometry.indices
        if geometry.vertex_count < 65536:
            index_type = UNSIGNED_SHORT
            indices = indices.astype(np.uint16)
        else:
            index_type = UNSIGNED_INT
            indices = indices.astype(np.uint32)

        index_accessor = buffers.add_accessor(indices, index_type, "SCALAR", ELEMENT_ARRAY_BUFFER)
        position_accessor = buffers.add_accessor(
            self._convert(geometry.positions), FLOAT, "VEC3", ARRAY_BUFFER, with_bounds=True
        )
        normal_accessor = buffers.add_accessor(
            self._convert(geometry.normals, scale=False), FLOAT, "VEC3", ARRAY_BUFFER
        )
        uv_accessor = buffers.add_accessor(
            geometry.uvs.astype(np.float32), FLOAT, "VEC2", ARRAY_BUFFER
        )

        return {
            "primitives": [
                {
                    "attributes": {
                        "POSITION": position_accessor,
                        "NORMAL": normal_accessor,
                        "TEXCOORD_0": uv_accessor
                    },
                    "indices": index_accessor,
                    "material": material,
                    "mode": TRIANGLES
                }
            ],
            "name": unit.name
        }

    @staticmethod
    def _build_material(material: Material, textured: bool) -> Dict[str, Any]:
        pbr: Dict[str, Any] = {
            "baseColorFactor": [1.0, 1.0, 1.0, 1.0],
            "metallicFactor": 0.0,
            "roughnessFactor": 1.0
        }
        if textured:
            pbr["baseColorTexture"] = {"index": 0}

        result: Dict[str, Any] = {
            "name": material.name,
            "pbrMetallicRoughness": pbr,
            "alphaMode": material.alpha_mode,
            "doubleSided": material.double_sided,
        }
        if material.alpha_mode == "MASK":
            result["alphaCutoff"] = material.alpha_cutoff
        if any(material.emissive_factor):
            result["emissiveFactor"] = list(material.emissive_factor)
            if textured:
                result["emissiveTexture"] = {"index": 0}
        return result

    def _write_glb(
        self,
        output_path: Path,
        gltf: Dict[str, Any],
        buffer_data: bytes
    ):
        """Write the GLB binary file."""
        # Encode JSON
        json_str = json.dumps(gltf, separators=(',', ':'))
        json_bytes = json_str.encode('utf-8')

        # Pad JSON to 4-byte alignment
        json_padding = (4 - len(json_bytes) % 4) % 4
        json_bytes += b' ' * json_padding

        # GLB header
        # Magic: "glTF" (0x46546C67)
        # Version: 2
        # Length: total file size
        total_length = 12 + 8 + len(json_bytes) + 8 + len(buffer_data)

        with open(output_path, 'wb') as f:
            # Header
            f.write(struct.pack('<I', 0x46546C67))  # glTF magic
            f.write(struct.pack('<I', 2))           # Version 2
            f.write(struct.pack('<I', total_length))

            # JSON chunk
            f.write(struct.pack('<I', len(json_bytes)))
            f.write(struct.pack('<I', 0x4E4F534A))  # JSON magic
            f.write(json_bytes)

            # Binary chunk
            f.write(struct.pack('<I', len(buffer_data)))
            f.write(struct.pack('<I', 0x004E4942))  # BIN magic
            f.write(buffer_data)

    def _write_gltf(
        self,
        output_path: Path,
        gltf: Dict[str, Any],
        buffer_data: bytes
    ):
        """Write JSON glTF with the buffer inlined as a data URI."""
        encoded = base64.b64encode(buffer_data).decode("ascii")
        gltf = dict(gltf)
        gltf["buffers"] = [{
            "byteLength": len(buffer_data),
            "uri": "data:application/octet-stream;base64," + encoded,
        }]
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(gltf, f)
