# palette_dither/kdtree.py
from __future__ import annotations

"""
K-d trees for nearest-neighbour lookups.

KDTree
  Full median tree: every node holds one pivot point, split axes cycle with
  depth. Nodes live in an arena (parallel lists indexed by node handle) with
  parent/left/right stored as handles, -1 meaning "none".

  Queries descend to a leaf, then walk parent handles back to the search root.
  At each ancestor the unexplored sibling subtree is searched when the squared
  distance to the splitting hyperplane is below the best distance so far. The
  best (node, distance) pair is passed into and returned from every recursive
  call; the tree itself is never written during a query, so concurrent queries
  on one tree are safe.

  Pruning compares the squared axis difference against the metric distance.
  That is exact for the squared Euclidean metric, and for redmean on 3-channel
  points (every channel weighted by at least 2). Metrics that ignore an axis
  the tree splits on get a best-effort answer.

BucketKDTree
  Bounded-depth variant: splitting stops at `max_depth` and the remaining
  points are kept as a bucket at that node. Used for mean-cut reduction of a
  large point cloud and for cheap approximate lookups.

Exports:
  KDTree, build_kdtree(points, debug=False)
  BucketKDTree, build_bucket_tree(points, max_depth)
  mean_cut(points, max_depth=MEAN_CUT_DEPTH) -> PointSet
"""

import math
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .constants import MEAN_CUT_DEPTH
from .core_types import DistanceMetric
from .distance import euclidean_distance
from .geom import Point, PointSet
from .utils import debug_log, key_value_pairs_to_string

NO_NODE = -1

QueryLike = Union[Point, Sequence[float], np.ndarray]


def _query_coords(query: QueryLike, dimension: int) -> np.ndarray:
    coords = (
        query.coordinates
        if isinstance(query, Point)
        else np.asarray(query, dtype=np.float64).reshape(-1)
    )
    if coords.shape[0] != dimension:
        raise ValueError(
            f"query has dimension {coords.shape[0]}, tree has {dimension}"
        )
    return coords


def _as_point_set(points: Union[PointSet, Sequence]) -> PointSet:
    ps = PointSet(points)  # always a private copy; building reorders it
    if len(ps) == 0:
        raise ValueError("cannot build a k-d tree from an empty point set")
    if ps.dimension < 1:
        raise ValueError("points must have at least one coordinate")
    return ps


class KDTree:
    """Static k-d tree over a PointSet. Rebuild it if the points change."""

    def __init__(self, dimension: int) -> None:
        self.dimension = int(dimension)
        self.root = NO_NODE
        self._pivot_rows: List[np.ndarray] = []
        self._pivot_ids: List[int] = []
        self._axis: List[int] = []
        self._left: List[int] = []
        self._right: List[int] = []
        self._parent: List[int] = []
        self._pivots = np.zeros((0, self.dimension), dtype=np.float64)

    # Construction

    @classmethod
    def build(cls, points: Union[PointSet, Sequence]) -> "KDTree":
        ps = _as_point_set(points)
        tree = cls(ps.dimension)
        tree.root = tree._build_node(ps, 0, NO_NODE)
        tree._pivots = np.vstack(tree._pivot_rows)
        return tree

    def _new_node(self, pivot: Point, axis: int, parent: int) -> int:
        self._pivot_rows.append(pivot.coordinates)
        self._pivot_ids.append(pivot.id)
        self._axis.append(axis)
        self._left.append(NO_NODE)
        self._right.append(NO_NODE)
        self._parent.append(parent)
        return len(self._axis) - 1

    def _build_node(self, points: PointSet, depth: int, parent: int) -> int:
        axis = depth % self.dimension
        left, right, pivot = points.branch_by_median(axis)
        node = self._new_node(pivot, axis, parent)
        if len(left):
            self._left[node] = self._build_node(left, depth + 1, node)
        if len(right):
            self._right[node] = self._build_node(right, depth + 1, node)
        return node

    # Introspection

    def __len__(self) -> int:
        return len(self._axis)

    def point(self, node: int) -> Point:
        return Point(self._pivots[node], self._pivot_ids[node])

    def axis(self, node: int) -> int:
        return self._axis[node]

    def children(self, node: int) -> Tuple[int, int]:
        return self._left[node], self._right[node]

    def parent(self, node: int) -> int:
        return self._parent[node]

    def is_leaf(self, node: int) -> bool:
        return self._left[node] == NO_NODE and self._right[node] == NO_NODE

    def depth(self) -> int:
        """Number of levels (a single node has depth 1)."""
        if self.root == NO_NODE:
            return 0
        deepest = 0
        stack = [(self.root, 1)]
        while stack:
            node, level = stack.pop()
            deepest = max(deepest, level)
            for child in (self._left[node], self._right[node]):
                if child != NO_NODE:
                    stack.append((child, level + 1))
        return deepest

    # Queries

    def nearest_neighbor(
        self, query: QueryLike, metric: DistanceMetric = euclidean_distance
    ) -> Tuple[Point, float]:
        """Closest stored point to `query` and its metric distance."""
        node, dist = self.nearest_node(query, metric)
        return self.point(node), dist

    def nearest_node(
        self, query: QueryLike, metric: DistanceMetric = euclidean_distance
    ) -> Tuple[int, float]:
        """Handle of the closest node and its metric distance."""
        if self.root == NO_NODE:
            raise ValueError("nearest neighbour query on an empty k-d tree")
        q = _query_coords(query, self.dimension)
        return self._search(self.root, q, metric, NO_NODE, math.inf)

    def _descend(self, start: int, q: np.ndarray) -> int:
        node = start
        while True:
            axis = self._axis[node]
            if q[axis] < self._pivots[node, axis]:
                preferred, fallback = self._left[node], self._right[node]
            else:
                preferred, fallback = self._right[node], self._left[node]
            nxt = preferred if preferred != NO_NODE else fallback
            if nxt == NO_NODE:
                return node
            node = nxt

    def _search(
        self,
        start: int,
        q: np.ndarray,
        metric: DistanceMetric,
        best_node: int,
        best_dist: float,
    ) -> Tuple[int, float]:
        node = self._descend(start, q)
        dist = float(metric(self._pivots[node], q))
        if dist < best_dist:
            best_node, best_dist = node, dist

        while node != start:
            child = node
            node = self._parent[node]
            axis = self._axis[node]
            plane = float(q[axis] - self._pivots[node, axis])
            if plane * plane < best_dist:
                sibling = (
                    self._right[node] if self._left[node] == child else self._left[node]
                )
                if sibling != NO_NODE:
                    best_node, best_dist = self._search(
                        sibling, q, metric, best_node, best_dist
                    )
            dist = float(metric(self._pivots[node], q))
            if dist < best_dist:
                best_node, best_dist = node, dist

        return best_node, best_dist


def build_kdtree(points: Union[PointSet, Sequence], debug: bool = False) -> KDTree:
    """Build a full k-d tree. Points must be non-empty and share one dimension."""
    tree = KDTree.build(points)
    if debug:
        debug_log(
            key_value_pairs_to_string(
                [("k-d tree nodes", len(tree)), ("depth", tree.depth()), ("dim", tree.dimension)]
            )
        )
    return tree


class BucketKDTree:
    """
    K-d tree cut off at `max_depth`.

    Internal nodes hold a median pivot; terminal nodes hold a bucket of points
    (everything left at max_depth, or the single point of a natural leaf).
    Pivots of internal nodes belong to no bucket.
    """

    def __init__(self, dimension: int, max_depth: int) -> None:
        self.dimension = int(dimension)
        self.max_depth = int(max_depth)
        self.root = NO_NODE
        self._pivot: List[Optional[Point]] = []
        self._bucket: List[Optional[PointSet]] = []
        self._axis: List[int] = []
        self._left: List[int] = []
        self._right: List[int] = []
        self._parent: List[int] = []

    @classmethod
    def build(cls, points: Union[PointSet, Sequence], max_depth: int) -> "BucketKDTree":
        if max_depth < 0:
            raise ValueError("max_depth must be >= 0")
        ps = _as_point_set(points)
        tree = cls(ps.dimension, max_depth)
        tree.root = tree._build_node(ps, 0, NO_NODE)
        return tree

    def _new_node(
        self, pivot: Optional[Point], bucket: Optional[PointSet], axis: int, parent: int
    ) -> int:
        self._pivot.append(pivot)
        self._bucket.append(bucket)
        self._axis.append(axis)
        self._left.append(NO_NODE)
        self._right.append(NO_NODE)
        self._parent.append(parent)
        return len(self._axis) - 1

    def _build_node(self, points: PointSet, depth: int, parent: int) -> int:
        axis = depth % self.dimension
        if depth >= self.max_depth or len(points) == 1:
            return self._new_node(None, points, axis, parent)
        left, right, pivot = points.branch_by_median(axis)
        node = self._new_node(pivot, None, axis, parent)
        if len(left):
            self._left[node] = self._build_node(left, depth + 1, node)
        if len(right):
            self._right[node] = self._build_node(right, depth + 1, node)
        return node

    def __len__(self) -> int:
        return len(self._axis)

    def is_bucket(self, node: int) -> bool:
        return self._bucket[node] is not None

    def buckets(self) -> List[PointSet]:
        """All terminal buckets, left to right."""
        out: List[PointSet] = []
        stack = [self.root] if self.root != NO_NODE else []
        while stack:
            node = stack.pop()
            bucket = self._bucket[node]
            if bucket is not None:
                if len(bucket):
                    out.append(bucket)
                continue
            # Right first so the left subtree is popped first.
            for child in (self._right[node], self._left[node]):
                if child != NO_NODE:
                    stack.append(child)
        return out

    def bucket_means(self) -> PointSet:
        """One mean per non-empty bucket."""
        means = [bucket.mean() for bucket in self.buckets()]
        return PointSet(means)

    def approximate_nearest(
        self, query: QueryLike, metric: DistanceMetric = euclidean_distance
    ) -> Tuple[Point, float]:
        """Descend to the query's bucket and answer with that bucket's mean."""
        q = _query_coords(query, self.dimension)
        node = self.root
        while self._bucket[node] is None:
            pivot = self._pivot[node]
            axis = self._axis[node]
            if q[axis] < pivot.coordinates[axis]:  # type: ignore[union-attr]
                preferred, fallback = self._left[node], self._right[node]
            else:
                preferred, fallback = self._right[node], self._left[node]
            node = preferred if preferred != NO_NODE else fallback
        mean = self._bucket[node].mean()  # type: ignore[union-attr]
        return mean, float(metric(mean.coordinates, q))


def build_bucket_tree(points: Union[PointSet, Sequence], max_depth: int) -> BucketKDTree:
    """Build a bounded-depth k-d tree with point buckets at max_depth."""
    return BucketKDTree.build(points, max_depth)


def mean_cut(points: Union[PointSet, Sequence], max_depth: int = MEAN_CUT_DEPTH) -> PointSet:
    """Reduce a point cloud to the means of its depth-limited k-d tree buckets."""
    return build_bucket_tree(points, max_depth).bucket_means()


__all__ = [
    "NO_NODE",
    "KDTree",
    "build_kdtree",
    "BucketKDTree",
    "build_bucket_tree",
    "mean_cut",
]
