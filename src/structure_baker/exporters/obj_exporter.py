"""
Wavefront OBJ Format Exporter

OBJ has no instancing, so every render unit is flattened into world space
before writing. Each unit becomes one object with its own material; all
materials reference the same atlas image through map_Kd.

Output:
- <name>.obj  geometry (v / vt / vn / f)
- <name>.mtl  one material per block type
- <name>.png  the atlas image, when the scene carries one
"""

from pathlib import Path
from typing import Dict, List, Union
import logging
import numpy as np

from ..assembler import Material, Scene
from ..transforms import CoordinateSystem, transform_vertices

logger = logging.getLogger(__name__)


class OBJExporter:
    """
    Export a Scene to Wavefront OBJ + MTL.

    Supports:
    - Texture coordinates into the shared atlas
    - Per-block-type materials
    - Coordinate system transformation
    """

    def __init__(
        self,
        coordinate_system: CoordinateSystem = CoordinateSystem.BLENDER,
        scale: float = 1.0,
        include_normals: bool = True
    ):
        """
        Initialize the exporter.

        Args:
            coordinate_system: Target coordinate system
            scale: Scale factor for vertex positions
            include_normals: Whether to include vertex normals
        """
        self.coordinate_system = coordinate_system
        self.scale = scale
        self.include_normals = include_normals

    def export(self, scene: Scene, output_path: Union[str, Path]):
        """
        Export a scene to an OBJ file with its MTL (and atlas PNG).

        Args:
            scene: Populated scene
            output_path: Output file path (.obj)
        """
        output_path = Path(output_path)
        units = [unit for unit in scene if unit.geometry.vertex_count and unit.instance_count]
        if not units:
            raise ValueError("Cannot export empty scene")

        mtl_path = output_path.with_suffix('.mtl')
        texture_path = output_path.with_suffix('.png')

        lines = []
        lines.append("# Structure Baker OBJ Export")
        lines.append(f"# Objects: {len(units)}")
        lines.append(f"# Triangles: {sum(unit.triangle_count for unit in units)}")
        lines.append("")
        lines.append(f"mtllib {mtl_path.name}")
        lines.append("")

        materials: Dict[str, Material] = {}
        base = 1

        for unit in units:
            mesh = unit.flatten()
            vertices = mesh.positions.astype(np.float64) * self.scale
            normals = mesh.normals.astype(np.float64)

            if self.coordinate_system != CoordinateSystem.MINECRAFT:
                vertices = transform_vertices(
                    vertices, CoordinateSystem.MINECRAFT, self.coordinate_system
                )
                normals = transform_vertices(
                    normals, CoordinateSystem.MINECRAFT, self.coordinate_system
                )

            materials.setdefault(unit.material.name, unit.material)

            lines.append(f"o {unit.name}")
            for v in vertices:
                lines.append(f"v {v[0]:.6f} {v[1]:.6f} {v[2]:.6f}")
            # OBJ texture space has its origin at the bottom-left
            for uv in mesh.uvs:
                lines.append(f"vt {uv[0]:.6f} {1.0 - uv[1]:.6f}")
            if self.include_normals:
                for n in normals:
                    lines.append(f"vn {n[0]:.6f} {n[1]:.6f} {n[2]:.6f}")

            lines.append(f"usemtl {unit.material.name}")
            indices = mesh.indices.astype(np.int64) + base
            for i in range(0, len(indices), 3):
                i0, i1, i2 = indices[i], indices[i+1], indices[i+2]
                if self.include_normals:
                    lines.append(f"f {i0}/{i0}/{i0} {i1}/{i1}/{i1} {i2}/{i2}/{i2}")
                else:
                    lines.append(f"f {i0}/{i0} {i1}/{i1} {i2}/{i2}")
            lines.append("")

            base += len(vertices)

        with open(output_path, 'w') as f:
            f.write('\n'.join(lines))

        atlas = next((m.texture for m in materials.values() if m.texture is not None), None)
        if atlas is not None:
            atlas.save(texture_path, format="PNG")

        self._write_mtl(
            list(materials.values()), mtl_path,
            texture_path.name if atlas is not None else None
        )

        logger.info("Exported %d objects to %s", len(units), output_path)

    def _write_mtl(self, materials: List[Material], mtl_path: Path, texture_name=None):
        """Write MTL material file."""
        lines = []
        lines.append("# Structure Baker MTL Export")
        lines.append("")

        for material in materials:
            lines.append(f"newmtl {material.name}")
            lines.append("Kd 1.0000 1.0000 1.0000")  # Diffuse color
            lines.append("Ka 0.0000 0.0000 0.0000")  # Ambient
            lines.append("Ks 0.0 0.0 0.0")  # Specular
            lines.append("Ns 0")  # Specular exponent
            if any(material.emissive_factor):
                r, g, b = material.emissive_factor
                lines.append(f"Ke {r:.4f} {g:.4f} {b:.4f}")
            lines.append("d 1.0")  # Opacity
            lines.append("illum 1")  # Illumination model
            if texture_name is not None:
                lines.append(f"map_Kd {texture_name}")
                if material.alpha_mode != "OPAQUE":
                    lines.append(f"map_d {texture_name}")
            lines.append("")

        with open(mtl_path, 'w') as f:
            f.write('\n'.join(lines))
