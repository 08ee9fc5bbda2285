# palette_dither/kmeans.py
from __future__ import annotations

"""
K-means clustering with threaded assignment and update steps.

Each iteration runs two phases, separated by a barrier:

  assign : the source points are split into contiguous spans; every span is
           labelled against a read-only snapshot of the means on a worker
           thread, and the per-cluster results are merged into the shared
           cluster list under one lock (held only for the merge).
  update : replacement centroids for empty clusters are drawn first, in
           cluster order, so k never changes and seeded runs repeat for any
           worker count. Then one task per cluster computes the new mean.
           Each task writes only its own centroid row; the movement of every
           centroid is appended to a shared list under a lock.

An iteration is stable when the largest centroid move, as a percentage of the
bounding-box distance, is below `accuracy`. The run converges after
`consecutive` stable iterations in a row and stops at `iteration_limit`
regardless.

Exports:
  Clustering
  create_clustering(points, k, metric, config=None) -> Clustering
  best_of_restarts(points, k, metric, restarts, config=None) -> Clustering
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import (
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

import numpy as np

from .config import KMeansConfig
from .core_types import ChunkSpan, DistanceMetric
from .distance import resolve_metric
from .geom import PointSet, random_points_within
from .utils import (
    debug_log,
    format_seconds_compact,
    key_value_pairs_to_string,
    print_config_line,
    warn,
)

T = TypeVar("T")
R = TypeVar("R")


class Clustering:
    """
    One k-means problem: source points, k current means and their clusters.

    Attributes:
      means         : PointSet of k centroids (index aligned with clusters)
      points        : source PointSet
      k             : number of clusters
      clusters      : list of k PointSets, one per mean
      labels        : (N,) cluster index per source point (-1 before assign)
      max_dist      : metric distance across the bounding box
      metric        : distance metric
      iterations    : iterations run so far
      converged     : result of the last run()
      reseeds       : empty clusters re-initialised so far
      error_history : total error after every iteration
    """

    def __init__(
        self,
        points: Union[PointSet, Sequence],
        k: int,
        metric: Union[str, DistanceMetric],
        config: Optional[KMeansConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        points = points if isinstance(points, PointSet) else PointSet(points)
        if len(points) == 0:
            raise ValueError("cannot cluster an empty point set")
        if points.dimension < 1:
            raise ValueError("points must have at least one coordinate")
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        if k > len(points):
            raise ValueError(f"k={k} exceeds the number of points ({len(points)})")

        self.config = config or KMeansConfig()
        self.metric: DistanceMetric = resolve_metric(metric)
        self.points = points
        self.k = int(k)

        self._rng = rng if rng is not None else self.config.make_rng()
        self._bounds = points.lower_and_upper_bounds()
        self._pool: Optional[ThreadPoolExecutor] = None

        self.means = random_points_within(self._bounds, self.k, self._rng)
        dim = points.dimension
        self.clusters: List[PointSet] = [
            PointSet(np.zeros((0, dim), dtype=np.float64)) for _ in range(self.k)
        ]
        self.labels = np.full((len(points),), -1, dtype=np.intp)
        self.max_dist = points.max_box_distance(self.metric)

        self.iterations = 0
        self.converged = False
        self.reseeds = 0
        self.error_history: List[float] = []

        n_distinct = int(np.unique(points.coordinates, axis=0).shape[0])
        if n_distinct < self.k:
            warn(
                f"k-means: only {n_distinct} distinct points for k={self.k}; "
                "some clusters will keep being reseeded"
            )

    # Threading

    @property
    def workers(self) -> int:
        return self.config.effective_workers

    def _map(self, fn: Callable[[T], R], items: Sequence[T]) -> List[R]:
        """Run fn over items on the worker pool and wait for all of them."""
        if self.workers <= 1 or len(items) <= 1:
            return [fn(item) for item in items]
        if self._pool is not None:
            return list(self._pool.map(fn, items))
        with ThreadPoolExecutor(max_workers=self.workers) as ex:
            return list(ex.map(fn, items))

    # Assignment

    def closest_mean_indices(
        self, coords: np.ndarray, means: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Index of the closest mean for every row of `coords`.
        Ties go to the lowest mean index.
        """
        if means is None:
            means = self.means.coordinates
        dists = np.asarray(self.metric(coords[:, None, :], means[None, :, :]))
        return np.argmin(dists, axis=1).astype(np.intp, copy=False)

    def assign(self) -> None:
        """Assignment step: put every source point in the cluster of its closest mean."""
        coords = self.points.coordinates
        means = self.means.coordinates.copy()
        spans = self.points.chunk_spans_for_workers(
            self.workers, self.config.max_batch_size
        )

        members: List[List[np.ndarray]] = [[] for _ in range(self.k)]
        labels = np.empty((len(self.points),), dtype=np.intp)
        lock = threading.Lock()

        def run_span(span: ChunkSpan) -> None:
            start, end = span
            local = self.closest_mean_indices(coords[start:end], means)
            labels[start:end] = local
            order = np.argsort(local, kind="stable")
            cuts = np.searchsorted(local[order], np.arange(self.k + 1))
            found = [
                (c, order[cuts[c] : cuts[c + 1]] + start)
                for c in range(self.k)
                if cuts[c + 1] > cuts[c]
            ]
            with lock:
                for c, idx in found:
                    members[c].append(idx)

        self._map(run_span, spans)

        self.labels = labels
        self.clusters = [
            self.points.subset(np.sort(np.concatenate(parts)))
            if parts
            else PointSet(np.zeros((0, self.points.dimension), dtype=np.float64))
            for parts in members
        ]

    # Update

    def update(self) -> float:
        """
        Update step: move every mean to the mean of its cluster.

        Empty clusters get a random point inside the bounding box. Those points
        are drawn in cluster order before any task starts, so a seeded run
        gives the same means for any worker count.

        Returns the largest centroid movement (metric distance).
        """
        old = self.means.coordinates.copy()
        new = self.means.coordinates
        reseeded = [c for c in range(self.k) if len(self.clusters[c]) == 0]
        fresh = random_points_within(self._bounds, len(reseeded), self._rng)
        replacements: Dict[int, np.ndarray] = dict(zip(reseeded, fresh.coordinates))
        changes: List[float] = []
        lock = threading.Lock()

        def update_one(c: int) -> None:
            row = replacements.get(c)
            new[c] = row if row is not None else self.clusters[c].mean().coordinates
            change = float(self.metric(old[c], new[c]))
            with lock:
                changes.append(change)

        self._map(update_one, list(range(self.k)))

        if reseeded:
            self.reseeds += len(reseeded)
            if self.config.debug:
                debug_log(
                    f"k-means: reseeded empty cluster(s) {sorted(reseeded)} "
                    f"at iteration {self.iterations + 1}"
                )
        return max(changes) if changes else 0.0

    # Error

    def total_error(self) -> float:
        """Sum over all points of the distance to their cluster's mean."""
        means = self.means.coordinates

        def partial(c: int) -> float:
            cluster = self.clusters[c]
            if len(cluster) == 0:
                return 0.0
            return float(np.sum(self.metric(cluster.coordinates, means[c][None, :])))

        # Partials come back in cluster order; keep that order when summing.
        return float(sum(self._map(partial, list(range(self.k)))))

    # Iteration

    def relative_change(self, change: float) -> float:
        """Centroid movement as a percentage of the bounding-box distance."""
        if self.max_dist <= 0.0:
            return 0.0
        return change * 100.0 / self.max_dist

    def iterate(self, accuracy: float) -> Tuple[bool, float]:
        """
        One assignment + update round.

        Returns (stable, relative change in percent).
        """
        self.assign()
        change = self.update()
        self.iterations += 1
        self.error_history.append(self.total_error())
        relative = self.relative_change(change)
        return relative < accuracy, relative

    def run(
        self,
        accuracy: Optional[float] = None,
        consecutive: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        """
        Iterate until `consecutive` stable iterations in a row, the iteration
        limit, or `cancel` being set (checked between iterations).

        Returns True when the convergence criterion was met.
        """
        accuracy = self.config.accuracy if accuracy is None else float(accuracy)
        consecutive = self.config.consecutive if consecutive is None else int(consecutive)
        if not accuracy > 0:
            raise ValueError("accuracy must be > 0")
        if consecutive < 1:
            raise ValueError("consecutive must be >= 1")

        debug = self.config.debug
        limit = self.config.iteration_limit
        spans = self.points.chunk_spans_for_workers(
            self.workers, self.config.max_batch_size
        )
        if debug:
            print_config_line(
                "kmeans",
                [
                    ("Points", len(self.points)),
                    ("K", self.k),
                    ("Dim", self.points.dimension),
                    ("Workers", self.workers),
                    ("Chunks", len(spans)),
                    ("Accuracy", accuracy),
                    ("Consecutive", consecutive),
                ],
            )

        t0 = time.perf_counter()
        stable_in_row = 0
        count = 0
        cancelled = False
        pool = ThreadPoolExecutor(max_workers=self.workers) if self.workers > 1 else None
        self._pool = pool
        try:
            while stable_in_row < consecutive and count < limit:
                if cancel is not None and cancel.is_set():
                    cancelled = True
                    break
                count += 1
                stable, relative = self.iterate(accuracy)
                stable_in_row = stable_in_row + 1 if stable else 0
                if debug:
                    debug_log(
                        key_value_pairs_to_string(
                            [
                                ("iter", self.iterations),
                                ("change %", relative),
                                ("error", self.error_history[-1]),
                                ("stable", stable_in_row),
                            ]
                        )
                    )
        finally:
            self._pool = None
            if pool is not None:
                pool.shutdown(wait=True)

        self.converged = stable_in_row >= consecutive
        if not self.converged and not cancelled:
            warn(f"k-means: no convergence after {count} iterations (k={self.k})")
        if debug:
            debug_log(
                key_value_pairs_to_string(
                    [
                        ("k-means done", "cancelled" if cancelled else "ok"),
                        ("iterations", count),
                        ("converged", self.converged),
                        ("reseeds", self.reseeds),
                        ("time", format_seconds_compact(time.perf_counter() - t0)),
                    ]
                )
            )
        return self.converged

    # Results

    def centroids(self) -> PointSet:
        """Copy of the k current means."""
        return self.means.copy()


def create_clustering(
    points: Union[PointSet, Sequence],
    k: int,
    metric: Union[str, DistanceMetric],
    config: Optional[KMeansConfig] = None,
) -> Clustering:
    """New k-means problem with k random means inside the points' bounding box."""
    return Clustering(points, k, metric, config)


def find_min_index(values: Iterable[float]) -> int:
    """Index of the smallest value; the first one wins ties. 0 for an empty input."""
    best = float("inf")
    best_idx = 0
    for i, v in enumerate(values):
        if v < best:
            best = v
            best_idx = i
    return best_idx


def best_of_restarts(
    points: Union[PointSet, Sequence],
    k: int,
    metric: Union[str, DistanceMetric],
    restarts: int,
    config: Optional[KMeansConfig] = None,
    cancel: Optional[threading.Event] = None,
) -> Clustering:
    """
    Run `restarts` independently initialised clusterings one after the other
    and return the one with the lowest total error.
    """
    if restarts < 1:
        raise ValueError("restarts must be >= 1")
    config = config or KMeansConfig()
    points = points if isinstance(points, PointSet) else PointSet(points)

    seeds = np.random.SeedSequence(config.seed).spawn(restarts)
    runs: List[Clustering] = []
    errors: List[float] = []
    for i, seed in enumerate(seeds):
        km = Clustering(points, k, metric, config, rng=np.random.default_rng(seed))
        km.run(cancel=cancel)
        err = km.total_error()
        runs.append(km)
        errors.append(err)
        if config.debug:
            debug_log(
                key_value_pairs_to_string(
                    [
                        ("restart", i + 1),
                        ("error", err),
                        ("iterations", km.iterations),
                        ("converged", km.converged),
                    ]
                )
            )
        if cancel is not None and cancel.is_set():
            break

    best = find_min_index(errors)
    if config.debug:
        debug_log(f"k-means: picked restart {best + 1} of {len(runs)}")
    return runs[best]


__all__ = [
    "Clustering",
    "create_clustering",
    "find_min_index",
    "best_of_restarts",
]
