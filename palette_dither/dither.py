# palette_dither/dither.py
from __future__ import annotations

"""
Floyd-Steinberg dithering against a palette, with k-d tree colour lookup.

- Error diffusion in RGBA with the classic 7/16, 3/16, 5/16, 1/16 kernel.
- Neighbour values are clamped to 0..255 after each diffusion step.
- Nearest palette entry comes from a KDTree over the palette colours, with a
  small cache keyed by the rounded colour (busy images revisit the same
  colours a lot).
- Optional serpentine scan (odd rows right-to-left, kernel mirrored).
"""

import time
from typing import Dict, Optional, Tuple, Union

import numpy as np
from PIL import Image

from .config import DitherConfig
from .constants import KERNEL_FS
from .core_types import DistanceMetric, U8Image
from .distance import redmean_distance, resolve_metric
from .geom import PointSet
from .kdtree import build_kdtree
from .palette import ColourPalette
from .utils import (
    as_rgba_array,
    debug_log,
    format_seconds_compact,
    key_value_pairs_to_string,
    rgba_array_to_image,
)

ImageLike = Union[Image.Image, np.ndarray]
ColourKey = Tuple[int, int, int, int]


class PaletteLookup:
    """
    Nearest palette index for a colour, via a k-d tree over the palette.

    Redmean ignores alpha, so its tree is built on RGB only; splitting on an
    axis the metric never looks at would make pruning skip valid candidates.
    """

    def __init__(
        self, palette: ColourPalette, metric: Union[str, DistanceMetric] = "redmean"
    ) -> None:
        if len(palette) == 0:
            raise ValueError(f"palette '{palette.name}' has no colours")
        self.palette = palette
        self.metric = resolve_metric(metric)
        self.channels = 3 if self.metric is redmean_distance else 4
        points = palette.to_point_set()
        self.tree = build_kdtree(
            PointSet(points.coordinates[:, : self.channels], ids=points.ids)
        )
        self._cache: Dict[ColourKey, int] = {}

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def index_of(self, colour: np.ndarray) -> int:
        rounded = np.clip(np.rint(colour), 0, 255).astype(np.int64)
        key: ColourKey = tuple(int(v) for v in rounded)  # type: ignore[assignment]
        idx = self._cache.get(key)
        if idx is None:
            point, _dist = self.tree.nearest_neighbor(
                rounded[: self.channels].astype(np.float64), self.metric
            )
            idx = point.id
            self._cache[key] = idx
        return idx


def palette_indices(
    image: ImageLike,
    palette: ColourPalette,
    metric: Union[str, DistanceMetric] = "redmean",
) -> np.ndarray:
    """(H, W) palette index of the nearest colour per pixel, without diffusion."""
    arr = as_rgba_array(image)
    height, width = arr.shape[:2]
    lookup = PaletteLookup(palette, metric)
    uniques, inverse = np.unique(arr.reshape(-1, 4), axis=0, return_inverse=True)
    mapped = np.array(
        [lookup.index_of(row.astype(np.float64)) for row in uniques], dtype=np.int32
    )
    return mapped[inverse.reshape(-1)].reshape(height, width)


def floyd_steinberg(
    image: ImageLike,
    palette: ColourPalette,
    config: Optional[DitherConfig] = None,
) -> U8Image:
    """
    Floyd-Steinberg dither an image to the palette.

    Returns:
      uint8 [H,W,4] image made only of palette colours.
    """
    cfg = config or DitherConfig()
    t0 = time.perf_counter()

    work = as_rgba_array(image).astype(np.float64)
    height, width = work.shape[:2]
    lookup = PaletteLookup(palette, cfg.metric)
    pal = palette.to_array().astype(np.float64)
    indices = np.zeros((height, width), dtype=np.int32)

    for y in range(height):
        reverse = cfg.serpentine and (y % 2 == 1)
        xs = range(width - 1, -1, -1) if reverse else range(width)
        for x in xs:
            old = work[y, x].copy()
            idx = lookup.index_of(old)
            indices[y, x] = idx
            work[y, x] = pal[idx]
            err = old - pal[idx]
            for dx, dy, weight in KERNEL_FS:
                nx = x - dx if reverse else x + dx
                ny = y + dy
                if 0 <= nx < width and ny < height:
                    px = work[ny, nx] + err * weight
                    np.clip(px, 0.0, 255.0, out=px)
                    work[ny, nx] = px

    out = palette.to_array()[indices]
    if cfg.debug:
        debug_log(
            key_value_pairs_to_string(
                [
                    ("Dithered", f"{width}x{height}"),
                    ("Palette", len(palette)),
                    ("Cached colours", lookup.cache_size),
                    ("Serpentine", cfg.serpentine),
                    ("Time", format_seconds_compact(time.perf_counter() - t0)),
                ]
            )
        )
    return np.ascontiguousarray(out, dtype=np.uint8)


def dither_image(
    image: ImageLike,
    palette: ColourPalette,
    config: Optional[DitherConfig] = None,
) -> Image.Image:
    """floyd_steinberg() wrapped as an RGBA Pillow image."""
    return rgba_array_to_image(floyd_steinberg(image, palette, config))


__all__ = ["PaletteLookup", "palette_indices", "floyd_steinberg", "dither_image"]
