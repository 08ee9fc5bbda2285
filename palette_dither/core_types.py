# palette_dither/core_types.py
from __future__ import annotations

"""
Core type aliases and lightweight helpers shared by the geometry, clustering
and palette modules.
"""

from typing import Callable, List, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

# Basic aliases

RGBATuple = Tuple[int, int, int, int]
HexStr = str

Coords = NDArray[np.float64]  # (D,) or (N, D)
IdArray = NDArray[np.int64]  # (N,)
U8Image = NDArray[np.uint8]  # (H, W, 4)

# Distance metric over coordinate arrays that broadcast on leading axes.
# (a[..., D], b[..., D]) -> distances[...]
DistanceMetric = Callable[[np.ndarray, np.ndarray], Union[np.ndarray, float]]

ChunkSpan = Tuple[int, int]  # [start, end)
ChunkSpans = List[ChunkSpan]


# Small helpers


def clamp_channel(value: float) -> int:
    """Truncate to int and clamp to the 0..255 channel range."""
    v = int(value)
    return 0 if v < 0 else 255 if v > 255 else v


def rgba_to_hex(rgba: Sequence[int]) -> HexStr:
    """RGB(A) sequence to lowercase '#rrggbb' (alpha is dropped)."""
    return f"#{int(rgba[0]):02x}{int(rgba[1]):02x}{int(rgba[2]):02x}"


def coerce_to_rgba_tuple(value: Union[Sequence[int], NDArray[np.generic]]) -> RGBATuple:
    """
    Coerce a 3- or 4-length sequence or array to an RGBA tuple.
    Missing alpha is treated as opaque.
    """
    if isinstance(value, np.ndarray):
        value = value.reshape(-1).tolist()
    if len(value) < 3:  # type: ignore[arg-type]
        raise ValueError("sequence too small for RGB")
    v = list(value)  # type: ignore[arg-type]
    a = v[3] if len(v) > 3 else 255
    return (clamp_channel(v[0]), clamp_channel(v[1]), clamp_channel(v[2]), clamp_channel(a))


def assert_u8_image_rgba(image: np.ndarray) -> U8Image:
    """Validate a uint8 (H,W,3 or 4) image and return it as (H,W,4)."""
    if image.dtype != np.uint8 or image.ndim != 3 or image.shape[-1] not in (3, 4):
        raise TypeError("expected uint8 (H,W,3/4) image")
    if image.shape[-1] == 3:
        alpha = np.full(image.shape[:2] + (1,), 255, dtype=np.uint8)
        image = np.concatenate([image, alpha], axis=-1)
    return image  # type: ignore[return-value]


__all__ = [
    # aliases / types
    "RGBATuple",
    "HexStr",
    "Coords",
    "IdArray",
    "U8Image",
    "DistanceMetric",
    "ChunkSpan",
    "ChunkSpans",
    # helpers
    "clamp_channel",
    "rgba_to_hex",
    "coerce_to_rgba_tuple",
    "assert_u8_image_rgba",
]
