import pytest

from palette_dither.config import DitherConfig, KMeansConfig, PaletteConfig
from palette_dither.constants import KM_ACCURACY, KM_CONSECUTIVE, KM_MAX_BATCH_SIZE


def test_kmeans_defaults():
    cfg = KMeansConfig()
    assert cfg.accuracy == KM_ACCURACY
    assert cfg.consecutive == KM_CONSECUTIVE
    assert cfg.max_batch_size == KM_MAX_BATCH_SIZE
    assert cfg.effective_workers >= 1


@pytest.mark.parametrize(
    "changes",
    [
        {"accuracy": 0.0},
        {"consecutive": 0},
        {"iteration_limit": 0},
        {"max_batch_size": 0},
        {"workers": 0},
    ],
)
def test_kmeans_validation(changes):
    with pytest.raises(ValueError):
        KMeansConfig(**changes)


def test_seeded_rngs_repeat():
    a = KMeansConfig(seed=5).make_rng().random(3)
    b = KMeansConfig(seed=5).make_rng().random(3)
    assert a.tolist() == b.tolist()


def test_replace_keeps_other_fields():
    cfg = KMeansConfig(seed=1, workers=2).replace(workers=1)
    assert cfg.workers == 1
    assert cfg.seed == 1
    assert cfg.effective_workers == 1


@pytest.mark.parametrize("changes", [{"k": 0}, {"restarts": 0}, {"sample_factor": 0}])
def test_palette_validation(changes):
    with pytest.raises(ValueError):
        PaletteConfig(**changes)


def test_palette_config_nests_kmeans():
    cfg = PaletteConfig()
    assert isinstance(cfg.kmeans, KMeansConfig)
    assert cfg.metric == "redmean"


def test_configs_are_frozen():
    with pytest.raises(AttributeError):
        DitherConfig().serpentine = True  # type: ignore[misc]
