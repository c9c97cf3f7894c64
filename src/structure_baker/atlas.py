"""
Texture Atlas Mapping and Builder

The geometry baker only ever reads UV rectangles by canonical texture name
from a TextureAtlasMapping. Rectangles are in 0-1 atlas space with the
origin at the top-left of the image (the same orientation as block UVs).

TextureAtlasBuilder is a simple square-grid packer:
- Loads <textures_dir>/<name>.png (or <textures_dir>/block/<name>.png)
- Crops animated strips to their first frame
- Resizes with nearest-neighbor only (no color blurring)
- Reserves the first cell for a generated missing-texture placeholder
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Optional, Tuple, Union
import json
import logging
import math
import numpy as np
from PIL import Image

from .errors import LoadError

logger = logging.getLogger(__name__)


# Reserved texture name for faces whose texture could not be resolved
MISSING_TEXTURE = "missing_texture"

PLACEHOLDER_COLORS = ((248, 0, 248, 255), (0, 0, 0, 255))


@dataclass(frozen=True)
class AtlasRect:
    """UV rectangle of one texture inside the atlas (0-1 space)."""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_dict(cls, data) -> "AtlasRect":
        if isinstance(data, (list, tuple)):
            x, y, width, height = data
        else:
            x, y, width, height = data["x"], data["y"], data["width"], data["height"]
        return cls(float(x), float(y), float(width), float(height))


# Used when a mapping carries no MISSING_TEXTURE entry of its own
DEFAULT_PLACEHOLDER = AtlasRect(0.0, 0.0, 0.0, 0.0)


class TextureAtlasMapping:
    """
    Read-only canonical texture name -> AtlasRect mapping.

    Misses are tolerated: rect_for() returns the placeholder rectangle.
    """

    def __init__(
        self,
        rects: Mapping[str, AtlasRect],
        placeholder: Optional[AtlasRect] = None
    ):
        self._rects = dict(rects)
        if placeholder is None:
            placeholder = self._rects.get(MISSING_TEXTURE, DEFAULT_PLACEHOLDER)
        self._placeholder = placeholder

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "TextureAtlasMapping":
        """Build from {name: {x, y, width, height}} or {name: [x, y, w, h]}."""
        try:
            rects = {name: AtlasRect.from_dict(rect) for name, rect in data.items()}
        except (KeyError, TypeError, ValueError) as e:
            raise LoadError(f"Malformed atlas mapping: {e}") from e
        return cls(rects)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "TextureAtlasMapping":
        """Load an externally built atlas mapping from JSON."""
        path = Path(path)
        if not path.exists():
            raise LoadError(f"Atlas mapping not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise LoadError(f"Cannot parse {path}: {e}") from e
        if not isinstance(data, dict):
            raise LoadError(f"{path} must contain a JSON object")
        return cls.from_dict(data)

    @property
    def placeholder(self) -> AtlasRect:
        return self._placeholder

    def get(self, name: str) -> Optional[AtlasRect]:
        return self._rects.get(name)

    def rect_for(self, name: str) -> AtlasRect:
        return self._rects.get(name, self._placeholder)

    @property
    def names(self):
        return list(self._rects)

    def __contains__(self, name: str) -> bool:
        return name in self._rects

    def __len__(self) -> int:
        return len(self._rects)


def make_placeholder_tile(tile_size: int = 16) -> Image.Image:
    """Magenta/black 2x2 checkerboard tile."""
    half = max(tile_size // 2, 1)
    yy, xx = np.indices((tile_size, tile_size))
    checker = ((xx // half) + (yy // half)) % 2
    pixels = np.zeros((tile_size, tile_size, 4), dtype=np.uint8)
    pixels[checker == 0] = PLACEHOLDER_COLORS[0]
    pixels[checker == 1] = PLACEHOLDER_COLORS[1]
    return Image.fromarray(pixels)


class TextureAtlasBuilder:
    """
    Packs individual block textures into one square atlas image.

    Every texture occupies one tile_size x tile_size cell.
    """

    def __init__(self, textures_dir: Union[str, Path], tile_size: int = 16):
        """
        Initialize the builder.

        Args:
            textures_dir: Directory holding <canonical name>.png files
            tile_size: Cell size in pixels
        """
        self.textures_dir = Path(textures_dir)
        self.tile_size = tile_size

        if not self.textures_dir.is_dir():
            raise FileNotFoundError(f"Textures directory not found: {self.textures_dir}")

    def _find_texture(self, name: str) -> Optional[Path]:
        for candidate in (
            self.textures_dir / f"{name}.png",
            self.textures_dir / "block" / f"{name}.png",
        ):
            if candidate.exists():
                return candidate
        return None

    def load_tile(self, name: str) -> Optional[Image.Image]:
        """
        Load one texture as an RGBA tile.

        Args:
            name: Canonical texture name

        Returns:
            The tile, or None when no file exists or it cannot be decoded
        """
        path = self._find_texture(name)
        if path is None:
            logger.debug("No texture file for %s", name)
            return None

        try:
            img = Image.open(path)
            img.load()
        except OSError as e:
            logger.warning("Cannot read texture %s: %s", path, e)
            return None

        if img.mode != "RGBA":
            img = img.convert("RGBA")

        # Animated textures are vertical strips of square frames
        width, height = img.size
        if height > width:
            img = img.crop((0, 0, width, width))

        if img.size != (self.tile_size, self.tile_size):
            img = img.resize((self.tile_size, self.tile_size), Image.Resampling.NEAREST)
        return img

    def build(self, names: Iterable[str]) -> Tuple[TextureAtlasMapping, Image.Image]:
        """
        Build the atlas for a set of canonical texture names.

        Names without a texture file are left out of the mapping so that
        lookups fall back to the placeholder cell.

        Args:
            names: Canonical texture names

        Returns:
            (mapping, atlas image)
        """
        tiles = [(MISSING_TEXTURE, make_placeholder_tile(self.tile_size))]
        for name in sorted(set(names) - {MISSING_TEXTURE}):
            tile = self.load_tile(name)
            if tile is not None:
                tiles.append((name, tile))

        grid = math.ceil(math.sqrt(len(tiles)))
        size = grid * self.tile_size
        atlas = Image.new("RGBA", (size, size), (0, 0, 0, 0))

        rects = {}
        for index, (name, tile) in enumerate(tiles):
            col, row = index % grid, index // grid
            atlas.paste(tile, (col * self.tile_size, row * self.tile_size))
            rects[name] = AtlasRect(col / grid, row / grid, 1.0 / grid, 1.0 / grid)

        logger.info("Built %dx%d atlas with %d textures", size, size, len(tiles) - 1)
        return TextureAtlasMapping(rects), atlas
