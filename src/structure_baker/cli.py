"""
Command-Line Interface for Structure Baker

Usage:
    structure-baker house.json --assets assets/ --textures assets/textures -o house.glb
    structure-baker house.json --assets assets/ --atlas-mapping atlas.json -f glb obj
    structure-baker --batch structures/ --assets assets/ --output-dir models/

"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional
import time

from . import __version__
from .atlas import TextureAtlasMapping
from .catalog import ModelCatalog
from .converter import StructureConverter, BatchProcessor
from .structure import DEFAULT_CHUNK_SIZE
from .transforms import CoordinateSystem


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="structure-baker",
        description="Structure Baker - Convert block structures to instanced 3D scenes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  structure-baker house.json --assets assets/ --textures assets/textures -o house.glb
      Build an atlas from texture files and export glTF binary

  structure-baker house.json --assets assets/ --atlas-mapping atlas.json -f glb obj
      Use a prebuilt atlas mapping, export GLB and OBJ

  structure-baker --batch structures/ --assets assets/ --output-dir models/
      Batch process all structure JSON files in a directory

Asset tables (inside --assets):
  blocks_models.json   - model definitions
  blocks_states.json   - block state variants
  texture_aliases.json - texture name aliases
        """
    )

    # Input
    parser.add_argument(
        "input",
        nargs="?",
        help="Decoded structure file (JSON)"
    )

    parser.add_argument(
        "--assets",
        required=True,
        help="Directory containing the model/state/alias tables"
    )

    parser.add_argument(
        "--textures",
        help="Directory of block textures used to build the atlas"
    )

    parser.add_argument(
        "--atlas-mapping",
        help="Prebuilt atlas mapping JSON (takes precedence over --textures)"
    )

    parser.add_argument(
        "--atlas-image",
        help="Atlas image matching --atlas-mapping"
    )

    # Output
    parser.add_argument(
        "-o", "--output",
        help="Output file path (extension is replaced per format)"
    )

    parser.add_argument(
        "-f", "--format",
        nargs="+",
        choices=["glb", "gltf", "obj"],
        default=["glb"],
        help="Output format(s) (default: glb)"
    )

    # Conversion settings
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Worker threads for resolving and baking (default: 1)"
    )

    parser.add_argument(
        "--chunk-size",
        type=int,
        default=DEFAULT_CHUNK_SIZE,
        help=f"Chunk size for instance grouping (default: {DEFAULT_CHUNK_SIZE})"
    )

    parser.add_argument(
        "--no-center",
        action="store_true",
        help="Keep structure coordinates instead of centering at origin"
    )

    parser.add_argument(
        "--scale",
        type=float,
        default=1.0,
        help="Output scale factor (default: 1.0)"
    )

    parser.add_argument(
        "--coordinate-system",
        choices=["gltf", "blender", "minecraft"],
        default=None,
        help="Target coordinate system (default: gltf for glTF, blender for OBJ)"
    )

    parser.add_argument(
        "--gpu-instancing",
        action="store_true",
        help="Use EXT_mesh_gpu_instancing in glTF output"
    )

    # Batch processing
    parser.add_argument(
        "--batch",
        help="Batch process directory of structure files"
    )

    parser.add_argument(
        "--output-dir",
        help="Output directory for batch processing"
    )

    parser.add_argument(
        "--pattern",
        default="*.json",
        help="File pattern for batch processing (default: *.json)"
    )

    # Misc
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output with statistics"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print conversion statistics"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def get_coordinate_system(name: Optional[str]) -> Optional[CoordinateSystem]:
    """Convert string to CoordinateSystem enum."""
    if name is None:
        return None
    return {
        "gltf": CoordinateSystem.GLTF,
        "blender": CoordinateSystem.BLENDER,
        "minecraft": CoordinateSystem.MINECRAFT,
    }[name]


def export_kwargs(args) -> dict:
    kwargs = {"gpu_instancing": args.gpu_instancing}
    coord_sys = get_coordinate_system(args.coordinate_system)
    if coord_sys is not None:
        kwargs["coordinate_system"] = coord_sys
    return kwargs


def print_stats(stats: dict):
    print("\nConversion Statistics:")
    print(f"  Blocks: {stats.get('block_count', 0)}")
    print(f"  Structure size: {stats.get('size')}")
    print(f"  Unique states: {stats.get('unique_states', 0)}")
    print(f"  Render units: {stats.get('render_units', 0)}")
    print(f"  Instances: {stats.get('instance_count', 0)}")
    print(f"  Triangles: {stats.get('triangle_count', 0)}")
    if stats.get("skipped_blocks"):
        print(f"  Skipped blocks: {stats['skipped_blocks']} "
              f"({', '.join(stats['skipped_types'])})")
    degradations = stats.get("degradations") or {}
    for kind, count in sorted(degradations.items()):
        print(f"  Degraded ({kind}): {count}")


def process_single(args) -> int:
    """Convert a single structure file."""
    if not args.input:
        print("Error: No input file specified", file=sys.stderr)
        return 1

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    # Determine output path
    if args.output:
        output_base = Path(args.output)
    else:
        output_base = input_path.with_suffix("")

    start_time = time.time()

    try:
        converter = StructureConverter(
            chunk_size=args.chunk_size,
            center=not args.no_center,
            workers=args.workers,
            scale=args.scale
        )

        if args.verbose:
            print(f"Loading catalog: {args.assets}")
        converter.load_catalog(args.assets)

        if args.verbose:
            print(f"Loading: {input_path}")
        converter.load_structure(input_path)

        if args.atlas_mapping:
            converter.load_atlas_mapping(args.atlas_mapping, args.atlas_image)
        elif args.textures:
            converter.set_textures_dir(args.textures)

        if args.verbose:
            print("Converting...")
        converter.convert()

        if args.stats or args.verbose:
            print_stats(converter.get_stats())

        written = converter.export_all(output_base, args.format, **export_kwargs(args))
        if args.verbose:
            for path in written:
                print(f"Exported: {path}")

        elapsed = time.time() - start_time
        if args.verbose:
            print(f"\nCompleted in {elapsed:.2f}s")

        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def process_batch(args) -> int:
    """Convert a directory of structure files."""
    batch_dir = Path(args.batch)
    if not batch_dir.is_dir():
        print(f"Error: Batch directory not found: {batch_dir}", file=sys.stderr)
        return 1

    output_dir = Path(args.output_dir) if args.output_dir else batch_dir / "output"
    output_dir.mkdir(parents=True, exist_ok=True)

    start_time = time.time()

    try:
        atlas_mapping = None
        if args.atlas_mapping:
            atlas_mapping = TextureAtlasMapping.load(args.atlas_mapping)

        processor = BatchProcessor(
            ModelCatalog.load(args.assets),
            textures_dir=args.textures,
            atlas_mapping=atlas_mapping,
            chunk_size=args.chunk_size,
            center=not args.no_center,
            workers=args.workers,
            scale=args.scale
        )

        outputs = processor.process_directory(
            batch_dir,
            output_dir,
            pattern=args.pattern,
            formats=args.format,
            **export_kwargs(args)
        )

        if args.stats or args.verbose:
            for name, stats in processor.stats.items():
                print(f"\n{name}")
                print_stats(stats)

        elapsed = time.time() - start_time
        print(f"Processed {len(processor.stats)} structures ({len(outputs)} files) in {elapsed:.2f}s")
        print(f"Output directory: {output_dir}")

        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s"
    )

    # Determine mode
    if args.batch:
        return process_batch(args)
    else:
        return process_single(args)


if __name__ == "__main__":
    sys.exit(main())
