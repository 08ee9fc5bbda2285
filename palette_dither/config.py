# palette_dither/config.py
from __future__ import annotations

"""
Explicit run configuration.

Each algorithm takes one frozen dataclass instead of reading process-wide
tunables, so concurrent runs with different settings cannot interfere.
Defaults come from palette_dither.constants.

Exports:
  KMeansConfig, PaletteConfig, DitherConfig
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np

from .constants import (
    DEFAULT_METRIC,
    KM_ACCURACY,
    KM_CONSECUTIVE,
    KM_ITERATION_LIMIT,
    KM_MAX_BATCH_SIZE,
    KM_RESTARTS,
    PALETTE_K,
    PALETTE_SAMPLE_FACTOR,
)
from .core_types import DistanceMetric
from .utils import default_workers


@dataclass(frozen=True)
class KMeansConfig:
    """
    Settings for one k-means run.

    accuracy        : percent of the bounding-box distance below which the
                      largest centroid move counts as stable
    consecutive     : stable iterations needed in a row
    iteration_limit : hard stop, converged or not
    max_batch_size  : above this many points, assignment chunks are capped at
                      max_batch_size // workers
    workers         : threads for assignment/update (None = default_workers())
    seed            : RNG seed for the random initial centroids and reseeds
    debug           : per-iteration debug logging
    """

    accuracy: float = KM_ACCURACY
    consecutive: int = KM_CONSECUTIVE
    iteration_limit: int = KM_ITERATION_LIMIT
    max_batch_size: int = KM_MAX_BATCH_SIZE
    workers: Optional[int] = None
    seed: Optional[int] = None
    debug: bool = False

    def __post_init__(self) -> None:
        if not self.accuracy > 0:
            raise ValueError("accuracy must be > 0")
        if self.consecutive < 1:
            raise ValueError("consecutive must be >= 1")
        if self.iteration_limit < 1:
            raise ValueError("iteration_limit must be >= 1")
        if self.max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")
        if self.workers is not None and self.workers < 1:
            raise ValueError("workers must be >= 1")

    @property
    def effective_workers(self) -> int:
        return self.workers if self.workers is not None else default_workers()

    def make_rng(self) -> np.random.Generator:
        return np.random.default_rng(self.seed)

    def replace(self, **changes) -> "KMeansConfig":
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class PaletteConfig:
    """Settings for palette extraction (sampling plus best-of-N k-means)."""

    k: int = PALETTE_K
    restarts: int = KM_RESTARTS
    sample_factor: int = PALETTE_SAMPLE_FACTOR
    metric: Union[str, DistanceMetric] = DEFAULT_METRIC
    kmeans: KMeansConfig = field(default_factory=KMeansConfig)
    debug: bool = False

    def __post_init__(self) -> None:
        if self.k < 1:
            raise ValueError("k must be >= 1")
        if self.restarts < 1:
            raise ValueError("restarts must be >= 1")
        if self.sample_factor < 1:
            raise ValueError("sample_factor must be >= 1")

    def replace(self, **changes) -> "PaletteConfig":
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class DitherConfig:
    """Settings for Floyd-Steinberg dithering."""

    metric: Union[str, DistanceMetric] = DEFAULT_METRIC
    serpentine: bool = False
    debug: bool = False

    def replace(self, **changes) -> "DitherConfig":
        return dataclasses.replace(self, **changes)


__all__ = ["KMeansConfig", "PaletteConfig", "DitherConfig"]
