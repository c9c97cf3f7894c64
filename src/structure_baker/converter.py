"""
Main StructureConverter Class

This is the primary interface for the structure baking pipeline.
It orchestrates:
1. Catalog and structure loading
2. Model resolution per distinct (block type, state)
3. Texture atlas construction
4. Geometry baking
5. Instance assembly into a Scene
6. Export to various formats

Example Usage:
    converter = StructureConverter()
    converter.load_catalog("assets/")
    converter.load_structure("house.json")
    converter.set_textures_dir("assets/textures")
    converter.convert()
    converter.export_glb("house.glb")
"""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar, Union
import logging
import numpy as np
from PIL import Image

from .assembler import InstanceAssembler, Material, Scene, material_for_block
from .atlas import MISSING_TEXTURE, TextureAtlasBuilder, TextureAtlasMapping
from .catalog import ModelCatalog, parse_state_key
from .diagnostics import Degradation, DegradationLog
from .errors import ModelNotFoundError
from .exporters import GLTFExporter, OBJExporter
from .geometry import GeometryBaker, GeometryBuffer
from .resolver import ModelResolver, ResolvedModel, StateKey
from .structure import DEFAULT_CHUNK_SIZE, Structure
from .transforms import CoordinateSystem

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class StructureConverter:
    """
    High-level interface for converting a block structure into a scene.

    One call to convert() is one run: it builds a fresh resolver cache,
    geometry cache and degradation log, and discards the previous scene.

    Attributes:
        catalog: The loaded model catalog
        structure: The loaded structure
        scene: The populated scene (after convert())
        degradations: Recoverable conditions seen during the last run
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        center: bool = True,
        workers: int = 1,
        scale: float = 1.0
    ):
        """
        Initialize the StructureConverter.

        Args:
            chunk_size: Chunk edge length used to group instances
            center: If True, center the structure horizontally on the origin
                and put its lowest block at y=0
            workers: Worker threads for resolving and baking (1 = inline)
            scale: Scale factor applied by the exporters
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if workers < 1:
            raise ValueError("workers must be at least 1")

        self.chunk_size = chunk_size
        self.center = center
        self.workers = workers
        self.scale = scale

        self._catalog: Optional[ModelCatalog] = None
        self._structure: Optional[Structure] = None
        self._atlas_mapping: Optional[TextureAtlasMapping] = None
        self._atlas_image: Optional[Image.Image] = None
        self._textures_dir: Optional[Path] = None
        self._tile_size = 16

        self._degradations = DegradationLog()
        self._scene = Scene()
        self._resolver: Optional[ModelResolver] = None
        self._baker: Optional[GeometryBaker] = None
        self._skipped: Dict[str, int] = {}
        self._unique_states = 0

    def load_catalog(self, assets_dir: Union[str, Path], **kwargs) -> "StructureConverter":
        """
        Load the model catalog from an assets directory.

        Args:
            assets_dir: Directory containing the definition tables
            **kwargs: Table file name overrides for ModelCatalog.load

        Returns:
            self for method chaining
        """
        self._catalog = ModelCatalog.load(assets_dir, **kwargs)
        return self

    def set_catalog(self, catalog: ModelCatalog) -> "StructureConverter":
        """Use an already built catalog."""
        self._catalog = catalog
        return self

    def load_structure(self, path: Union[str, Path]) -> "StructureConverter":
        """
        Load a decoded structure JSON file.

        Returns:
            self for method chaining
        """
        self._structure = Structure.load(path)
        logger.info("Loaded structure %s: %d blocks", path, self._structure.count_blocks())
        return self

    def set_structure(self, structure: Structure) -> "StructureConverter":
        """Use an in-memory structure."""
        self._structure = structure
        return self

    def set_atlas(
        self,
        mapping: TextureAtlasMapping,
        image: Optional[Image.Image] = None
    ) -> "StructureConverter":
        """
        Use a prebuilt atlas instead of building one.

        Args:
            mapping: Canonical texture name -> UV rectangle
            image: The atlas image (exports are untextured without it)

        Returns:
            self for method chaining
        """
        self._atlas_mapping = mapping
        self._atlas_image = image
        return self

    def load_atlas_mapping(
        self,
        mapping_path: Union[str, Path],
        image_path: Optional[Union[str, Path]] = None
    ) -> "StructureConverter":
        """
        Load an externally built atlas mapping (and optionally its image).

        Returns:
            self for method chaining
        """
        mapping = TextureAtlasMapping.load(mapping_path)
        image = None
        if image_path is not None:
            image = Image.open(image_path).convert("RGBA")
        return self.set_atlas(mapping, image)

    def set_textures_dir(
        self,
        textures_dir: Union[str, Path],
        tile_size: int = 16
    ) -> "StructureConverter":
        """
        Build the atlas from individual texture files during convert().

        Args:
            textures_dir: Directory holding <canonical name>.png files
            tile_size: Atlas cell size in pixels

        Returns:
            self for method chaining
        """
        textures_dir = Path(textures_dir)
        if not textures_dir.is_dir():
            raise FileNotFoundError(f"Textures directory not found: {textures_dir}")
        self._textures_dir = textures_dir
        self._tile_size = tile_size
        return self

    def _map(self, func: Callable[[T], R], items: Iterable[T]) -> List[R]:
        items = list(items)
        if self.workers == 1 or len(items) < 2:
            return [func(item) for item in items]
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            return list(executor.map(func, items))

    def _resolve_key(self, key: StateKey) -> Tuple[StateKey, Optional[ResolvedModel]]:
        try:
            return key, self._resolver.resolve(key.block_type, parse_state_key(key.state))
        except ModelNotFoundError as e:
            self._degradations.record(Degradation.UNKNOWN_BLOCK, key.block_type, str(e))
            return key, None

    def _prepare_atlas(self, models: Iterable[ResolvedModel]) -> TextureAtlasMapping:
        if self._atlas_mapping is not None:
            return self._atlas_mapping

        if self._textures_dir is not None:
            names = {MISSING_TEXTURE}
            for model in models:
                names.update(model.texture_names)
            builder = TextureAtlasBuilder(self._textures_dir, tile_size=self._tile_size)
            mapping, self._atlas_image = builder.build(names)
            return mapping

        logger.warning("No atlas or textures directory set; every face uses the placeholder")
        return TextureAtlasMapping({})

    def _structure_offset(self) -> np.ndarray:
        if not self.center:
            return np.zeros(3)
        lo, hi = self._structure.bounds
        return np.array([(lo[0] + hi[0]) / 2.0, lo[1], (lo[2] + hi[2]) / 2.0])

    def convert(self) -> "StructureConverter":
        """
        Resolve, bake and assemble every block group into the scene.

        Unknown block types are skipped (and counted); the rest of the
        structure is still converted.

        Returns:
            self for method chaining

        Raises:
            RuntimeError: If no catalog or structure is loaded
            CyclicModelError: If a model's parent chain is cyclic
        """
        if self._catalog is None:
            raise RuntimeError("No catalog loaded. Call load_catalog() first.")
        if self._structure is None:
            raise RuntimeError("No structure loaded. Call load_structure() first.")

        self._scene.clear()
        self._degradations = DegradationLog()
        self._resolver = ModelResolver(self._catalog, self._degradations)
        self._baker = GeometryBaker(self._degradations)
        self._skipped = {}

        groups = self._structure.group_blocks(self.chunk_size)
        keys = sorted({StateKey(g.block_type, g.state) for g in groups})
        self._unique_states = len(keys)

        models = dict(self._map(self._resolve_key, keys))
        resolved = {key: model for key, model in models.items() if model is not None}

        atlas = self._prepare_atlas(resolved.values())

        geometries: Dict[StateKey, GeometryBuffer] = dict(self._map(
            lambda key: (key, self._baker.bake_cached(key, resolved[key], atlas)),
            list(resolved)
        ))

        assembler = InstanceAssembler(self._scene, offset=self._structure_offset())
        materials: Dict[str, Material] = {}

        for group, positions in groups.items():
            key = StateKey(group.block_type, group.state)
            geometry = geometries.get(key)
            if geometry is None:
                self._skipped[group.block_type] = (
                    self._skipped.get(group.block_type, 0) + len(positions)
                )
                continue
            if not geometry.vertex_count:
                logger.debug("No geometry for %s, skipping %d blocks", key, len(positions))
                continue

            material = materials.get(group.block_type)
            if material is None:
                material = material_for_block(group.block_type, self._atlas_image)
                materials[group.block_type] = material

            state = f"[{group.state}]" if group.state else ""
            name = f"{group.block_type}{state}@{group.chunk_x},{group.chunk_z}"
            assembler.assemble(geometry, material, positions, identity=group, name=name)

        logger.info(
            "Converted %d groups (%d states) into %d render units, %d degraded",
            len(groups), len(keys), len(self._scene), self._degradations.total
        )
        return self

    def _require_scene(self):
        if not len(self._scene):
            raise RuntimeError("No scene. Call convert() first.")

    def export_glb(
        self,
        output_path: Union[str, Path],
        coordinate_system: CoordinateSystem = CoordinateSystem.GLTF,
        gpu_instancing: bool = False
    ):
        """
        Export to glTF 2.0 binary format (.glb).

        Args:
            output_path: Output file path
            coordinate_system: Target coordinate system
            gpu_instancing: Use EXT_mesh_gpu_instancing
        """
        self._require_scene()
        exporter = GLTFExporter(
            coordinate_system=coordinate_system,
            scale=self.scale,
            gpu_instancing=gpu_instancing
        )
        exporter.export(self._scene, Path(output_path).with_suffix(".glb"))

    def export_gltf(self, output_path: Union[str, Path], **kwargs):
        """Export to glTF 2.0 JSON (.gltf) with embedded buffers."""
        self._require_scene()
        exporter = GLTFExporter(
            coordinate_system=kwargs.get("coordinate_system", CoordinateSystem.GLTF),
            scale=self.scale,
            gpu_instancing=kwargs.get("gpu_instancing", False)
        )
        exporter.export(self._scene, Path(output_path).with_suffix(".gltf"))

    def export_obj(
        self,
        output_path: Union[str, Path],
        coordinate_system: CoordinateSystem = CoordinateSystem.BLENDER
    ):
        """
        Export to Wavefront OBJ format (plus .mtl and atlas .png).

        Args:
            output_path: Output file path
            coordinate_system: Target coordinate system
        """
        self._require_scene()
        exporter = OBJExporter(coordinate_system=coordinate_system, scale=self.scale)
        exporter.export(self._scene, Path(output_path).with_suffix(".obj"))

    def export_all(
        self,
        base_path: Union[str, Path],
        formats: Optional[list] = None,
        **kwargs
    ) -> List[Path]:
        """
        Export to multiple formats at once.

        Args:
            base_path: Base file path (without extension)
            formats: List of formats to export (default: glb)
            **kwargs: coordinate_system / gpu_instancing overrides

        Returns:
            Written file paths
        """
        base_path = Path(base_path)
        formats = formats or ["glb"]
        written = []

        if "glb" in formats:
            self.export_glb(base_path, **kwargs)
            written.append(base_path.with_suffix(".glb"))

        if "gltf" in formats:
            self.export_gltf(base_path, **kwargs)
            written.append(base_path.with_suffix(".gltf"))

        if "obj" in formats:
            obj_kwargs = {}
            if "coordinate_system" in kwargs:
                obj_kwargs["coordinate_system"] = kwargs["coordinate_system"]
            self.export_obj(base_path, **obj_kwargs)
            written.append(base_path.with_suffix(".obj"))

        return written

    @property
    def catalog(self) -> Optional[ModelCatalog]:
        return self._catalog

    @property
    def structure(self) -> Optional[Structure]:
        return self._structure

    @property
    def scene(self) -> Scene:
        """Get the current scene."""
        return self._scene

    @property
    def degradations(self) -> DegradationLog:
        """Get the degradation log of the last run."""
        return self._degradations

    @property
    def skipped_blocks(self) -> Dict[str, int]:
        """Block type -> number of blocks skipped for lack of a model."""
        return dict(self._skipped)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get conversion statistics.

        Returns:
            Dictionary with structure, cache and scene counters
        """
        stats: Dict[str, Any] = {
            "catalog_loaded": self._catalog is not None,
            "structure_loaded": self._structure is not None,
            "converted": len(self._scene) > 0,
        }

        if self._structure is not None:
            stats["block_count"] = self._structure.count_blocks()
            stats["palette_size"] = len(self._structure.palette)
            stats["size"] = tuple(int(v) for v in self._structure.size)

        if self._resolver is not None:
            stats["unique_states"] = self._unique_states
            stats["resolved_models"] = self._resolver.cache_size
            stats["baked_geometries"] = self._baker.cache_size
            stats["render_units"] = len(self._scene)
            stats["instance_count"] = self._scene.instance_count
            stats["triangle_count"] = self._scene.triangle_count
            stats["skipped_blocks"] = sum(self._skipped.values())
            stats["skipped_types"] = sorted(self._skipped)
            stats["degradations"] = self._degradations.summary()

        return stats


class BatchProcessor:
    """
    Batch processing for multiple structure files.

    All structures share one catalog and one atlas source; each file gets
    its own converter run.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        textures_dir: Optional[Union[str, Path]] = None,
        atlas_mapping: Optional[TextureAtlasMapping] = None,
        **converter_kwargs
    ):
        """
        Initialize the batch processor.

        Args:
            catalog: Shared model catalog
            textures_dir: Directory of texture files for atlas building
            atlas_mapping: Prebuilt atlas mapping (takes precedence)
            **converter_kwargs: Arguments passed to StructureConverter
        """
        self.catalog = catalog
        self.textures_dir = textures_dir
        self.atlas_mapping = atlas_mapping
        self.converter_kwargs = converter_kwargs
        self.stats: Dict[str, Dict[str, Any]] = {}

    def _converter(self) -> StructureConverter:
        converter = StructureConverter(**self.converter_kwargs)
        converter.set_catalog(self.catalog)
        if self.atlas_mapping is not None:
            converter.set_atlas(self.atlas_mapping)
        elif self.textures_dir is not None:
            converter.set_textures_dir(self.textures_dir)
        return converter

    def process_file(
        self,
        structure_path: Union[str, Path],
        output_dir: Union[str, Path],
        formats: Optional[list] = None,
        **export_kwargs
    ) -> List[Path]:
        """
        Convert one structure file.

        Returns:
            Written file paths
        """
        structure_path = Path(structure_path)
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        converter = self._converter()
        converter.load_structure(structure_path)
        converter.convert()
        self.stats[structure_path.name] = converter.get_stats()
        return converter.export_all(output_dir / structure_path.stem, formats, **export_kwargs)

    def process_directory(
        self,
        input_dir: Union[str, Path],
        output_dir: Union[str, Path],
        pattern: str = "*.json",
        formats: Optional[list] = None,
        **export_kwargs
    ) -> List[Path]:
        """
        Convert every structure file in a directory.

        Args:
            input_dir: Input directory
            output_dir: Output directory
            pattern: Glob pattern for input files
            formats: Export formats
            **export_kwargs: coordinate_system / gpu_instancing overrides

        Returns:
            List of written file paths
        """
        input_dir = Path(input_dir)
        if not input_dir.is_dir():
            raise FileNotFoundError(f"Input directory not found: {input_dir}")

        outputs = []
        for structure_path in sorted(input_dir.glob(pattern)):
            logger.info("Processing %s", structure_path.name)
            outputs.extend(
                self.process_file(structure_path, output_dir, formats, **export_kwargs)
            )
        return outputs
