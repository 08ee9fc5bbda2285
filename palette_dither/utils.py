# palette_dither/utils.py
from __future__ import annotations

"""
Shared utilities for palette_dither.

Includes worker-count defaults, contiguous chunk spans for threaded work,
Pillow/array conversion for the palette and dither glue, and tidy logging.
"""

import os
from typing import Any, Iterable, List, Tuple, Union

import numpy as np
from PIL import Image

from .core_types import ChunkSpans, U8Image, assert_u8_image_rgba


# Workers / chunking


def default_workers() -> int:
    """Leave a few cores free for the system; returns a sensible worker count."""
    n = os.cpu_count() or 4
    reserve = 1 if n <= 6 else 2 if n <= 12 else 3 if n <= 18 else 4
    return max(1, n - reserve)


def split_into_spans(total: int, size: int) -> ChunkSpans:
    """Partition range [0, total) into contiguous [start, end) spans of `size`."""
    size = max(1, int(size))
    return [(start, min(start + size, total)) for start in range(0, total, size)]


# Time formatting


def format_seconds_compact(seconds: float) -> str:
    """Human-friendly seconds: '<ms>ms', '<s>s', or 'Mm Ss'."""
    if seconds < 1.0:
        return f"{seconds * 1000.0:.1f}ms"
    if seconds < 60.0:
        return f"{seconds:.3f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {seconds - 60 * minutes:.1f}s"


# Image helpers


def as_rgba_array(image: Union[Image.Image, np.ndarray]) -> U8Image:
    """Pillow image or uint8 (H,W,3/4) array -> contiguous uint8 (H,W,4) array."""
    if isinstance(image, Image.Image):
        return np.array(image.convert("RGBA"), dtype=np.uint8)
    if isinstance(image, np.ndarray):
        return np.ascontiguousarray(assert_u8_image_rgba(image))
    raise TypeError(f"expected PIL image or uint8 array, got {type(image).__name__}")


def rgba_array_to_image(arr: np.ndarray) -> Image.Image:
    """uint8 (H,W,4) array -> RGBA Pillow image."""
    return Image.fromarray(assert_u8_image_rgba(arr), "RGBA")


# Pretty logging


def format_bool_on_off(value: Any) -> str:
    """Pretty boolean: 'on'/'off' for bools; str(value) otherwise."""
    if isinstance(value, bool):
        return "on" if value else "off"
    return str(value)


def format_number_compact(value: Any) -> str:
    """Pretty number: 1_234 style for ints; compact for floats; passthrough otherwise."""
    if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
        return f"{int(value):,}"
    if isinstance(value, (float, np.floating)):
        text = f"{float(value):.3f}".rstrip("0").rstrip(".")
        return text
    return str(value)


def key_value_pairs_to_string(
    pairs: Iterable[Tuple[str, Any]], sep: str = "  ", eq: str = ": "
) -> str:
    """
    Format (name, value) pairs as 'Name: value' blocks separated by sep.
    Uses format_bool_on_off / format_number_compact for readability.
    """
    out: List[str] = []
    for name, value in pairs:
        display = (
            format_bool_on_off(value)
            if isinstance(value, bool)
            else format_number_compact(value)
        )
        out.append(f"{name}{eq}{display}")
    return sep.join(out)


def print_config_line(section: str, pairs: Iterable[Tuple[str, Any]]) -> None:
    """
    Emit a single human-readable config line through debug_log(), e.g.:
      [debug] [kmeans] Points: 12,000  K: 8  Workers: 6  Chunks: 6
    """
    debug_log(f"[{section}] {key_value_pairs_to_string(pairs)}")


def debug_log(message: str) -> None:
    """Debug log line."""
    print(f"[debug] {message}", flush=True)


def warn(message: str) -> None:
    """Warning log line."""
    print(f"[warn] {message}", flush=True)


__all__ = [
    # workers / chunking
    "default_workers",
    "split_into_spans",
    # formatting
    "format_seconds_compact",
    "format_bool_on_off",
    "format_number_compact",
    "key_value_pairs_to_string",
    # image helpers
    "as_rgba_array",
    "rgba_array_to_image",
    # logging
    "print_config_line",
    "debug_log",
    "warn",
]
