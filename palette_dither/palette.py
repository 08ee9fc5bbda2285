# palette_dither/palette.py
from __future__ import annotations

"""
Colour palettes: extraction by k-means, JSON storage and small builders.

Exports:
  ColourPalette(name, colours)
  colour_to_point(rgba, point_id=0) -> Point
  point_to_colour(point) -> RGBATuple
  sample_points(image, sample_factor) -> PointSet
  extract_palette(image, k=None, config=None, name="FromImage") -> ColourPalette
  load_palettes(path) -> list[ColourPalette]
  save_palette(palette, path, indent=True)
  save_palettes(palettes, path, indent=True)
  palette_with_name(name, palettes) -> ColourPalette
  bw_palette() -> ColourPalette
  traverse(image, left_to_right, name) -> (ColourPalette, int)
"""

import json
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from PIL import Image

from .config import PaletteConfig
from .constants import BLACK, PALETTE_FROM_IMAGE, TRAVERSE_RUN_LENGTH, WHITE
from .core_types import RGBATuple, U8Image, coerce_to_rgba_tuple, rgba_to_hex
from .distance import resolve_metric
from .geom import Point, PointSet
from .kmeans import best_of_restarts
from .utils import (
    as_rgba_array,
    debug_log,
    format_seconds_compact,
    key_value_pairs_to_string,
    warn,
)

ImageLike = Union[Image.Image, np.ndarray]


@dataclass
class ColourPalette:
    """Named list of RGBA colours."""

    name: str
    colours: List[RGBATuple] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.colours = [coerce_to_rgba_tuple(c) for c in self.colours]

    def __len__(self) -> int:
        return len(self.colours)

    def to_array(self) -> U8Image:
        """(P, 4) uint8 array."""
        if not self.colours:
            return np.zeros((0, 4), dtype=np.uint8)
        return np.array(self.colours, dtype=np.uint8)

    def to_point_set(self) -> PointSet:
        """One RGBA point per colour; the id is the palette index."""
        return PointSet(
            self.to_array().astype(np.float64), ids=list(range(len(self.colours)))
        )

    def hex_codes(self) -> List[str]:
        return [rgba_to_hex(c) for c in self.colours]

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "colors": [list(c) for c in self.colours]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColourPalette":
        if "name" not in data or "colors" not in data:
            raise ValueError("palette entries need 'name' and 'colors'")
        return cls(str(data["name"]), list(data["colors"]))


# Point <-> colour


def colour_to_point(rgba: Sequence[int], point_id: int = 0) -> Point:
    r, g, b, a = coerce_to_rgba_tuple(rgba)
    return Point((float(r), float(g), float(b), float(a)), point_id)


def point_to_colour(point: Point) -> RGBATuple:
    """Truncate coordinates to ints; missing alpha is opaque."""
    return coerce_to_rgba_tuple(point.coordinates.tolist())


# Extraction


def sample_points(image: ImageLike, sample_factor: int) -> PointSet:
    """
    Every `sample_factor`-th pixel in x and y as an RGBA point.
    Point ids are the pixel offsets x + y * width.
    """
    if sample_factor < 1:
        raise ValueError("sample_factor must be >= 1")
    arr = as_rgba_array(image)
    height, width = arr.shape[:2]
    sub = arr[::sample_factor, ::sample_factor]
    ys = np.arange(0, height, sample_factor, dtype=np.int64)
    xs = np.arange(0, width, sample_factor, dtype=np.int64)
    ids = (xs[None, :] + ys[:, None] * width).reshape(-1)
    coords = sub.reshape(-1, 4).astype(np.float64)
    return PointSet(coords, ids=ids)


def extract_palette(
    image: ImageLike,
    k: Optional[int] = None,
    config: Optional[PaletteConfig] = None,
    name: str = PALETTE_FROM_IMAGE,
    cancel: Optional[threading.Event] = None,
) -> ColourPalette:
    """
    Build a k-colour palette from an image.

    Samples the pixels, runs `restarts` randomly initialised k-means problems
    and keeps the centroids of the run with the lowest total error.
    """
    cfg = config or PaletteConfig()
    if k is not None:
        cfg = cfg.replace(k=k)
    km_cfg = cfg.kmeans.replace(debug=cfg.kmeans.debug or cfg.debug)

    t0 = time.perf_counter()
    points = sample_points(image, cfg.sample_factor)
    if len(points) < cfg.k:
        raise ValueError(
            f"only {len(points)} sampled pixels for k={cfg.k}; "
            "lower sample_factor or k"
        )

    best = best_of_restarts(
        points, cfg.k, resolve_metric(cfg.metric), cfg.restarts, km_cfg, cancel=cancel
    )
    colours = [point_to_colour(p) for p in best.centroids()]
    if not best.converged:
        warn(f"palette '{name}': best k-means run did not converge")
    if cfg.debug:
        debug_log(
            key_value_pairs_to_string(
                [
                    ("Palette", name),
                    ("Samples", len(points)),
                    ("K", cfg.k),
                    ("Restarts", cfg.restarts),
                    ("Error", best.total_error()),
                    ("Time", format_seconds_compact(time.perf_counter() - t0)),
                ]
            )
        )
    return ColourPalette(name, colours)


# Storage


def load_palettes(path: Union[str, Path]) -> List[ColourPalette]:
    """Read a JSON list of {"name", "colors"} entries. A missing file gives []."""
    path = Path(path)
    if not path.exists():
        warn(f"palette file not found: {path}")
        return []
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON list of palettes")
    return [ColourPalette.from_dict(entry) for entry in data]


def save_palette(
    palette: ColourPalette, path: Union[str, Path], indent: bool = True
) -> None:
    """Write one palette as a JSON object."""
    text = json.dumps(palette.to_dict(), indent=2 if indent else None)
    Path(path).write_text(text, encoding="utf-8")


def save_palettes(
    palettes: Sequence[ColourPalette], path: Union[str, Path], indent: bool = True
) -> None:
    """Write palettes as the JSON list load_palettes() reads."""
    text = json.dumps([p.to_dict() for p in palettes], indent=2 if indent else None)
    Path(path).write_text(text, encoding="utf-8")


def palette_with_name(name: str, palettes: Sequence[ColourPalette]) -> ColourPalette:
    """First palette called `name`, or a one-colour black palette named "New"."""
    for pal in palettes:
        if pal.name == name:
            return pal
    return ColourPalette("New", [BLACK])


def bw_palette() -> ColourPalette:
    return ColourPalette("BW", [BLACK, WHITE])


def traverse(
    image: ImageLike, left_to_right: bool, name: str
) -> Tuple[ColourPalette, int]:
    """
    Collect colours from one line through the middle of the image.

    Walks the middle row (left_to_right) or the middle column and records a
    colour each time it has repeated TRAVERSE_RUN_LENGTH times in a row,
    skipping white.
    """
    arr = as_rgba_array(image)
    height, width = arr.shape[:2]
    line = arr[height // 2, :, :] if left_to_right else arr[:, width // 2, :]

    found: List[RGBATuple] = []
    current: RGBATuple = WHITE
    same = 0
    for px in line:
        colour = coerce_to_rgba_tuple(px)
        if colour == current:
            same += 1
        else:
            same = 0
            current = colour
        if same == TRAVERSE_RUN_LENGTH and current != WHITE:
            found.append(current)

    return ColourPalette(name, found), len(found)


__all__ = [
    "ColourPalette",
    "colour_to_point",
    "point_to_colour",
    "sample_points",
    "extract_palette",
    "load_palettes",
    "save_palette",
    "save_palettes",
    "palette_with_name",
    "bw_palette",
    "traverse",
]
