# palette_dither/geom.py
from __future__ import annotations

"""
Geometric primitives: Point, Bounds and PointSet.

A PointSet is backed by one (N, D) float64 coordinate matrix and an (N,) id
vector, so bulk work (bounds, means, distance tables) stays in numpy while
single elements can still be handled as Point values.

Exports:
  Point(coordinates, id=0)
  Bounds(lower, upper)
  PointSet(points=None, ids=None)
  random_points_within(bounds, count, rng) -> PointSet
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from .core_types import ChunkSpans, Coords, DistanceMetric, IdArray
from .utils import split_into_spans


@dataclass(frozen=True, eq=False)
class Point:
    """Fixed-dimension coordinate vector with an identifier."""

    coordinates: Coords
    id: int = 0

    def __post_init__(self) -> None:
        coords = np.array(self.coordinates, dtype=np.float64).reshape(-1)
        coords.setflags(write=False)
        object.__setattr__(self, "coordinates", coords)
        object.__setattr__(self, "id", int(self.id))

    @property
    def dimension(self) -> int:
        return int(self.coordinates.shape[0])

    def equals(self, other: "Point") -> bool:
        """Same dimension, same id and coordinate-wise equal."""
        if self.dimension != other.dimension:
            return False
        if self.id != other.id:
            return False
        return bool(np.array_equal(self.coordinates, other.coordinates))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Point):
            return NotImplemented
        return self.equals(other)

    def __hash__(self) -> int:
        return hash((self.id, self.coordinates.tobytes()))

    def __len__(self) -> int:
        return self.dimension

    def __getitem__(self, axis: int) -> float:
        return float(self.coordinates[axis])

    def __repr__(self) -> str:
        coords = ", ".join(f"{c:g}" for c in self.coordinates.tolist())
        return f"Point(({coords}), id={self.id})"


@dataclass(frozen=True)
class Bounds:
    """Closed [lower, upper] range of one axis."""

    lower: float
    upper: float

    @property
    def extent(self) -> float:
        return self.upper - self.lower


PointsLike = Union["PointSet", Iterable[Point], np.ndarray, Sequence[Sequence[float]]]


class PointSet:
    """
    Unordered collection of same-dimension points.

    All members share one dimension; construction raises ValueError otherwise.
    Order carries no meaning, but operations such as sort_by_axis() and
    remove() reorder the backing arrays in place.
    """

    __slots__ = ("_coords", "_ids")

    def __init__(
        self,
        points: Optional[PointsLike] = None,
        ids: Optional[Sequence[int]] = None,
    ) -> None:
        coords, id_arr = _coerce_points(points, ids)
        self._coords: np.ndarray = coords
        self._ids: IdArray = id_arr

    # Construction helpers

    @classmethod
    def from_arrays(cls, coords: np.ndarray, ids: np.ndarray) -> "PointSet":
        """Wrap already-validated arrays without copying."""
        out = cls.__new__(cls)
        out._coords = coords
        out._ids = ids
        return out

    def copy(self) -> "PointSet":
        return PointSet.from_arrays(self._coords.copy(), self._ids.copy())

    def subset(self, indices: Union[np.ndarray, Sequence[int], slice]) -> "PointSet":
        """New PointSet holding copies of the selected rows."""
        if isinstance(indices, slice):
            return PointSet.from_arrays(
                self._coords[indices].copy(), self._ids[indices].copy()
            )
        idx = np.asarray(indices, dtype=np.intp).reshape(-1)
        return PointSet.from_arrays(self._coords[idx], self._ids[idx])

    # Views

    @property
    def coordinates(self) -> np.ndarray:
        """(N, D) float64 coordinate matrix (live view)."""
        return self._coords

    @property
    def ids(self) -> IdArray:
        return self._ids

    @property
    def dimension(self) -> int:
        return int(self._coords.shape[1]) if self._coords.ndim == 2 else 0

    def cardinality(self) -> int:
        return int(self._coords.shape[0])

    def __len__(self) -> int:
        return self.cardinality()

    def __getitem__(self, index: int) -> Point:
        return Point(self._coords[index], int(self._ids[index]))

    def __iter__(self) -> Iterator[Point]:
        for i in range(len(self)):
            yield self[i]

    def __repr__(self) -> str:
        return f"PointSet(n={len(self)}, dim={self.dimension})"

    # Set-like operations

    def contains(self, point: Point) -> Tuple[bool, int]:
        """Linear scan for an equal point (including id). Returns (found, index)."""
        if len(self) == 0 or point.dimension != self.dimension:
            return False, -1
        for i in range(len(self)):
            if self._ids[i] == point.id and np.array_equal(
                self._coords[i], point.coordinates
            ):
                return True, i
        return False, -1

    def __contains__(self, point: object) -> bool:
        return isinstance(point, Point) and self.contains(point)[0]

    def append(self, point: Point) -> None:
        if len(self) and point.dimension != self.dimension:
            raise ValueError(
                f"dimension mismatch: point has {point.dimension}, set has {self.dimension}"
            )
        row = point.coordinates.reshape(1, -1)
        if len(self) == 0:
            self._coords = row.copy()
        else:
            self._coords = np.vstack([self._coords, row])
        self._ids = np.append(self._ids, np.int64(point.id))

    def remove(self, index: int) -> None:
        """Swap-with-last removal (O(1), order not preserved). Bad indices are ignored."""
        n = len(self)
        if index < 0 or index >= n:
            return
        last = n - 1
        if index != last:
            self._coords[index] = self._coords[last]
            self._ids[index] = self._ids[last]
        self._coords = self._coords[:last]
        self._ids = self._ids[:last]

    # Statistics

    def mean(self) -> Point:
        """Component-wise mean. An empty set gives Point([], 0)."""
        if len(self) == 0:
            return Point(np.zeros((0,), dtype=np.float64), 0)
        return Point(self._coords.mean(axis=0), 0)

    def lower_and_upper_bounds(self) -> List[Bounds]:
        """Per-axis [min, max]. An empty set gives []."""
        if len(self) == 0:
            return []
        lows = self._coords.min(axis=0)
        highs = self._coords.max(axis=0)
        return [Bounds(float(lo), float(hi)) for lo, hi in zip(lows, highs)]

    def max_box_distance(self, metric: DistanceMetric) -> float:
        """Metric distance between the lower and upper corner of the bounding box."""
        if len(self) == 0:
            return 0.0
        lower = self._coords.min(axis=0)
        upper = self._coords.max(axis=0)
        return float(metric(lower, upper))

    # Ordering / partitioning

    def _check_axis(self, axis: int) -> None:
        if not 0 <= axis < self.dimension:
            raise ValueError(f"axis {axis} out of range for dimension {self.dimension}")

    def sort_by_axis(self, axis: int) -> None:
        """Stable ascending sort on one axis, in place."""
        if len(self) == 0:
            return
        self._check_axis(axis)
        order = np.argsort(self._coords[:, axis], kind="stable")
        self._coords = self._coords[order]
        self._ids = self._ids[order]

    def branch_by_median(self, axis: int) -> Tuple["PointSet", "PointSet", Point]:
        """
        Sort on `axis` and split around the median (index n // 2).

        Returns (left, right, pivot). The pivot is excluded from both halves.
        Equal coordinates keep their current relative order (stable sort).
        """
        if len(self) == 0:
            raise ValueError("cannot branch an empty point set")
        self.sort_by_axis(axis)
        median = len(self) // 2
        left = self.subset(slice(0, median))
        right = self.subset(slice(median + 1, None))
        return left, right, self[median]

    # Chunking

    def chunk_points(self, size: int) -> List["PointSet"]:
        """Contiguous chunks of `size` points; the last one may be smaller."""
        if size < 1:
            raise ValueError("chunk size must be >= 1")
        return [self.subset(slice(s, e)) for s, e in split_into_spans(len(self), size)]

    def chunk_spans_for_workers(self, workers: int, max_batch_size: int) -> ChunkSpans:
        """
        Spans for parallel processing.

        One near-equal span per worker, unless the set holds more than
        `max_batch_size` points, in which case spans are capped at
        max_batch_size // workers points and there are more spans than workers.
        Every point lands in exactly one span.
        """
        n = len(self)
        if n == 0:
            return []
        workers = max(1, int(workers))
        if n > max_batch_size:
            size = max(1, max_batch_size // workers)
        else:
            size = (n + workers - 1) // workers
        return split_into_spans(n, size)


def random_points_within(
    bounds: Sequence[Bounds], count: int, rng: np.random.Generator
) -> PointSet:
    """`count` points drawn uniformly inside the per-axis bounds (ids are 0)."""
    if not bounds:
        return PointSet()
    low = np.array([b.lower for b in bounds], dtype=np.float64)
    high = np.array([b.upper for b in bounds], dtype=np.float64)
    coords = rng.random((int(count), low.shape[0])) * (high - low) + low
    return PointSet.from_arrays(coords, np.zeros((int(count),), dtype=np.int64))


def _coerce_points(
    points: Optional[PointsLike], ids: Optional[Sequence[int]]
) -> Tuple[np.ndarray, IdArray]:
    """Normalise the accepted inputs into (coords (N,D) float64, ids (N,) int64)."""
    if points is None:
        return np.zeros((0, 0), dtype=np.float64), np.zeros((0,), dtype=np.int64)

    if isinstance(points, PointSet):
        coords = points.coordinates.copy()
        id_arr = points.ids.copy()
    elif isinstance(points, np.ndarray):
        coords = np.array(points, dtype=np.float64)
        if coords.ndim == 1 and coords.size == 0:
            coords = coords.reshape(0, 0)
        if coords.ndim != 2:
            raise ValueError(f"expected an (N, D) array, got shape {coords.shape}")
        id_arr = np.zeros((coords.shape[0],), dtype=np.int64)
    else:
        rows: List[np.ndarray] = []
        row_ids: List[int] = []
        for p in points:
            if isinstance(p, Point):
                rows.append(p.coordinates)
                row_ids.append(p.id)
            else:
                rows.append(np.asarray(p, dtype=np.float64).reshape(-1))
                row_ids.append(0)
        if not rows:
            return np.zeros((0, 0), dtype=np.float64), np.zeros((0,), dtype=np.int64)
        dims = {r.shape[0] for r in rows}
        if len(dims) != 1:
            raise ValueError(f"points have mixed dimensions: {sorted(dims)}")
        coords = np.vstack(rows).astype(np.float64, copy=False)
        id_arr = np.asarray(row_ids, dtype=np.int64)

    if ids is not None:
        id_arr = np.asarray(ids, dtype=np.int64).reshape(-1)
        if id_arr.shape[0] != coords.shape[0]:
            raise ValueError(
                f"got {id_arr.shape[0]} ids for {coords.shape[0]} points"
            )
    return coords, id_arr


__all__ = ["Point", "Bounds", "PointSet", "random_points_within"]
