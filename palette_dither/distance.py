# palette_dither/distance.py
from __future__ import annotations

"""
Distance metrics.

Every metric takes two coordinate arrays that broadcast over leading axes
(shape (..., D)) and returns the per-pair distance with the trailing axis
reduced. The same function therefore serves a single pair of points and a
whole (N, K) distance table.

Exports:
  euclidean_distance(a, b)  : squared Euclidean distance
  redmean_distance(a, b)    : perceptual colour distance on the RGB channels
  point_distance(metric, p, q) -> float
  resolve_metric(name_or_callable) -> DistanceMetric
  nearest_index_linear(points, query, metric) -> (index, distance)
"""

from typing import Dict, Tuple, Union

import numpy as np

from .core_types import DistanceMetric
from .geom import Point, PointSet


def euclidean_distance(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Squared Euclidean distance. No square root: ordering is all we need."""
    diff = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
    return np.sum(diff * diff, axis=-1)


def redmean_distance(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    "Redmean" colour distance (squared form).

      r_mean = (R1 + R2) / 2
      d = (2 + r_mean/256) dR^2 + 4 dG^2 + (2 + (255 - r_mean)/256) dB^2

    Only the first three channels are used, so RGBA points work as-is.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape[-1] < 3 or b.shape[-1] < 3:
        raise ValueError("redmean distance needs at least 3 channels")
    r_mean = (a[..., 0] + b[..., 0]) / 2.0
    dr = a[..., 0] - b[..., 0]
    dg = a[..., 1] - b[..., 1]
    db = a[..., 2] - b[..., 2]
    return (
        (2.0 + r_mean / 256.0) * dr * dr
        + 4.0 * dg * dg
        + (2.0 + (255.0 - r_mean) / 256.0) * db * db
    )


METRICS: Dict[str, DistanceMetric] = {
    "euclidean": euclidean_distance,
    "redmean": redmean_distance,
}


def resolve_metric(metric: Union[str, DistanceMetric]) -> DistanceMetric:
    """Map a metric name to its function; callables pass through."""
    if callable(metric):
        return metric
    try:
        return METRICS[str(metric).lower()]
    except KeyError:
        raise ValueError(
            f"unknown metric {metric!r}; expected one of {sorted(METRICS)}"
        ) from None


def point_distance(metric: DistanceMetric, p: Point, q: Point) -> float:
    """Metric distance between two Points as a Python float."""
    if p.dimension != q.dimension:
        raise ValueError(f"dimension mismatch: {p.dimension} vs {q.dimension}")
    return float(metric(p.coordinates, q.coordinates))


def nearest_index_linear(
    points: PointSet, query: Point, metric: DistanceMetric = euclidean_distance
) -> Tuple[int, float]:
    """
    Exhaustive nearest neighbour. Lowest index wins ties.

    Used for tiny palettes and as the reference answer for the k-d tree.
    """
    if len(points) == 0:
        raise ValueError("nearest neighbour of an empty point set")
    if query.dimension != points.dimension:
        raise ValueError(
            f"query dimension {query.dimension} != point set dimension {points.dimension}"
        )
    dists = np.asarray(metric(points.coordinates, query.coordinates[None, :]))
    idx = int(np.argmin(dists))
    return idx, float(dists[idx])


__all__ = [
    "euclidean_distance",
    "redmean_distance",
    "METRICS",
    "resolve_metric",
    "point_distance",
    "nearest_index_linear",
]
