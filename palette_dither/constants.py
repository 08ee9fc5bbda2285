# palette_dither/constants.py
"""
Default tunables used across the project.

These are only defaults. Runtime values are carried by the config dataclasses
in palette_dither.config, so nothing here is mutated at runtime.
"""
from __future__ import annotations

from typing import Tuple

# ==================
# K-means (KM_*)
# ==================

# Relative centroid movement (percent of the bounding-box distance) below which
# an iteration counts as stable.
KM_ACCURACY: float = 0.01

# Stable iterations needed in a row before declaring convergence.
KM_CONSECUTIVE: int = 2

# Hard cap on iterations per clustering run.
KM_ITERATION_LIMIT: int = 100

# Above this many points, assignment chunks are capped at
# KM_MAX_BATCH_SIZE // workers points each.
KM_MAX_BATCH_SIZE: int = 30_000

# Independent random restarts when extracting a palette.
KM_RESTARTS: int = 3

# ==================
# Palette (PALETTE_*)
# ==================

# Sample every Nth pixel in x and y when building clustering points.
PALETTE_SAMPLE_FACTOR: int = 5

# Default number of palette colours.
PALETTE_K: int = 10

# Name used for palettes extracted from an image.
PALETTE_FROM_IMAGE: str = "FromImage"

# Run length needed by traverse() to accept a colour.
TRAVERSE_RUN_LENGTH: int = 8

BLACK: Tuple[int, int, int, int] = (0, 0, 0, 255)
WHITE: Tuple[int, int, int, int] = (255, 255, 255, 255)

# ==================
# K-d tree
# ==================

# Depth used by mean_cut() when none is given.
MEAN_CUT_DEPTH: int = 5

# ==================
# Dithering
# ==================

# Floyd-Steinberg kernel: (dx, dy, weight).
KERNEL_FS: Tuple[Tuple[int, int, float], ...] = (
    (1, 0, 7 / 16),
    (-1, 1, 3 / 16),
    (0, 1, 5 / 16),
    (1, 1, 1 / 16),
)

# Default metric name for palette work.
DEFAULT_METRIC: str = "redmean"
