import threading

import numpy as np
import pytest

from palette_dither.config import KMeansConfig
from palette_dither.distance import euclidean_distance
from palette_dither.geom import PointSet
from palette_dither.kmeans import (
    Clustering,
    best_of_restarts,
    create_clustering,
    find_min_index,
)


def _sorted_rows(ps: PointSet) -> list:
    return sorted(tuple(round(v, 6) for v in row) for row in ps.coordinates.tolist())


@pytest.mark.parametrize(
    "config",
    [
        KMeansConfig(seed=7, workers=1),
        KMeansConfig(seed=7, workers=3, max_batch_size=4),
    ],
    ids=["serial", "threaded-small-batches"],
)
def test_two_blobs_end_to_end(two_blobs, config):
    km = create_clustering(two_blobs, 2, "euclidean", config)
    assert km.run() is True
    assert km.converged
    assert _sorted_rows(km.centroids()) == [(0.5, 0.5), (100.5, 100.5)]

    labels = km.labels.tolist()
    assert len(set(labels[:4])) == 1
    assert len(set(labels[4:])) == 1
    assert labels[0] != labels[4]
    assert km.total_error() == pytest.approx(4.0)


def test_initial_state(two_blobs):
    km = Clustering(two_blobs, 3, euclidean_distance, KMeansConfig(seed=1))
    assert len(km.means) == 3
    assert len(km.clusters) == 3
    assert all(len(c) == 0 for c in km.clusters)
    assert km.labels.tolist() == [-1] * 8
    assert km.max_dist == pytest.approx(2 * 101.0**2)
    lo, hi = 0.0, 101.0
    assert np.all(km.means.coordinates >= lo) and np.all(km.means.coordinates <= hi)


@pytest.mark.parametrize("k", [0, -1, 9])
def test_bad_k_raises(two_blobs, k):
    with pytest.raises(ValueError):
        Clustering(two_blobs, k, euclidean_distance)


def test_empty_points_raise():
    with pytest.raises(ValueError):
        Clustering(PointSet(), 1, euclidean_distance)


def test_unknown_metric_raises(two_blobs):
    with pytest.raises(ValueError):
        Clustering(two_blobs, 2, "chebyshev")


def test_assign_puts_every_point_in_one_cluster(rng):
    ps = PointSet(rng.random((101, 3)), ids=list(range(101)))
    cfg = KMeansConfig(seed=3, workers=4, max_batch_size=10)
    km = Clustering(ps, 5, euclidean_distance, cfg)
    km.assign()
    assert len(km.clusters) == 5
    ids = np.concatenate([c.ids for c in km.clusters])
    assert sorted(ids.tolist()) == list(range(101))
    for c, cluster in enumerate(km.clusters):
        assert np.all(km.labels[cluster.ids] == c)


def test_closest_mean_ties_go_to_lowest_index(two_blobs):
    km = Clustering(two_blobs, 2, euclidean_distance, KMeansConfig(seed=1))
    means = np.array([[0.0, 0.0], [1.0, 0.0]])
    idx = km.closest_mean_indices(np.array([[0.5, 0.0], [0.9, 0.0]]), means)
    assert idx.tolist() == [0, 1]


def test_error_never_increases(rng):
    blobs = np.concatenate(
        [
            rng.normal(loc=(0.0, 0.0), scale=1.0, size=(60, 2)),
            rng.normal(loc=(10.0, 0.0), scale=1.0, size=(60, 2)),
            rng.normal(loc=(5.0, 9.0), scale=1.0, size=(60, 2)),
        ]
    )
    km = Clustering(PointSet(blobs), 4, euclidean_distance, KMeansConfig(seed=11, workers=2))
    km.run()
    history = km.error_history
    assert len(history) == km.iterations
    for before, after in zip(history, history[1:]):
        assert after <= before * (1 + 1e-9) + 1e-9


def test_k_stays_fixed_when_clusters_empty(capsys):
    # Two identical points always share a cluster, so one of three stays empty.
    ps = PointSet(np.array([[0.0, 0.0], [0.0, 0.0], [5.0, 5.0]]))
    cfg = KMeansConfig(seed=5, workers=1, iteration_limit=5)
    km = Clustering(ps, 3, euclidean_distance, cfg)
    assert "[warn]" in capsys.readouterr().out

    km.run()
    assert len(km.means) == 3
    assert len(km.clusters) == 3
    assert km.reseeds >= km.iterations
    assert sum(len(c) for c in km.clusters) == 3


def _reseed_heavy_means(workers: int) -> np.ndarray:
    # 39 copies of one point: nearly every cluster is empty and reseeded each round.
    coords = np.zeros((40, 2))
    coords[-1] = (3.0, 4.0)
    cfg = KMeansConfig(seed=42, workers=workers, iteration_limit=5)
    km = Clustering(PointSet(coords), 40, euclidean_distance, cfg)
    km.run()
    assert km.reseeds > 0
    return km.means.coordinates.copy()


@pytest.mark.parametrize("workers", [2, 4, 8])
def test_seeded_reseeding_does_not_depend_on_workers(workers):
    serial = _reseed_heavy_means(1)
    for _ in range(10):
        assert np.array_equal(_reseed_heavy_means(workers), serial)


@pytest.mark.parametrize("workers", [1, 3])
def test_seeded_error_history_repeats(rng, workers):
    ps = PointSet(rng.random((200, 3)))
    cfg = KMeansConfig(seed=9, workers=workers, iteration_limit=10)
    first = Clustering(ps, 6, euclidean_distance, cfg)
    second = Clustering(ps, 6, euclidean_distance, cfg.replace(workers=1))
    first.run()
    second.run()
    assert first.error_history == second.error_history
    assert np.array_equal(first.means.coordinates, second.means.coordinates)


def test_identical_points_converge():
    ps = PointSet(np.full((5, 2), 2.0))
    km = Clustering(ps, 1, euclidean_distance, KMeansConfig(seed=0, workers=1))
    assert km.max_dist == 0.0
    assert km.run() is True
    assert km.iterations == 2
    assert km.centroids().coordinates.tolist() == [[2.0, 2.0]]


def test_iteration_limit_stops_run(two_blobs, capsys):
    cfg = KMeansConfig(seed=7, workers=1, iteration_limit=1, consecutive=2)
    km = Clustering(two_blobs, 2, euclidean_distance, cfg)
    assert km.run() is False
    assert km.iterations == 1
    assert "no convergence" in capsys.readouterr().out


def test_cancel_before_first_iteration(two_blobs, capsys):
    cancel = threading.Event()
    cancel.set()
    km = Clustering(two_blobs, 2, euclidean_distance, KMeansConfig(seed=7))
    assert km.run(cancel=cancel) is False
    assert km.iterations == 0
    assert "no convergence" not in capsys.readouterr().out


def test_run_rejects_bad_overrides(two_blobs):
    km = Clustering(two_blobs, 2, euclidean_distance, KMeansConfig(seed=7))
    with pytest.raises(ValueError):
        km.run(accuracy=0.0)
    with pytest.raises(ValueError):
        km.run(consecutive=0)


def test_relative_change(two_blobs):
    km = Clustering(two_blobs, 2, euclidean_distance, KMeansConfig(seed=7))
    assert km.relative_change(km.max_dist) == pytest.approx(100.0)
    assert km.relative_change(0.0) == 0.0


def test_find_min_index():
    assert find_min_index([3.0, 1.0, 1.0, 2.0]) == 1
    assert find_min_index([]) == 0


def test_best_of_restarts(two_blobs):
    best = best_of_restarts(
        two_blobs, 2, euclidean_distance, 3, KMeansConfig(seed=21, workers=1)
    )
    assert best.total_error() == pytest.approx(4.0)
    assert _sorted_rows(best.centroids()) == [(0.5, 0.5), (100.5, 100.5)]


def test_best_of_restarts_rejects_zero(two_blobs):
    with pytest.raises(ValueError):
        best_of_restarts(two_blobs, 2, euclidean_distance, 0)


def test_debug_logging(two_blobs, capsys):
    km = Clustering(two_blobs, 2, euclidean_distance, KMeansConfig(seed=7, debug=True))
    km.run()
    out = capsys.readouterr().out
    assert "[debug] [kmeans]" in out
    assert "k-means done" in out
