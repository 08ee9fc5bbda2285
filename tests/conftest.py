import numpy as np
import pytest

from palette_dither.geom import PointSet


TWO_BLOBS = [
    (0.0, 0.0),
    (1.0, 0.0),
    (0.0, 1.0),
    (1.0, 1.0),
    (100.0, 100.0),
    (101.0, 100.0),
    (100.0, 101.0),
    (101.0, 101.0),
]


@pytest.fixture
def two_blobs() -> PointSet:
    return PointSet(np.array(TWO_BLOBS), ids=list(range(len(TWO_BLOBS))))


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def four_colour_image() -> np.ndarray:
    """16x16 RGBA image made of four flat colour quadrants."""
    img = np.zeros((16, 16, 4), dtype=np.uint8)
    img[..., 3] = 255
    img[:8, :8, :3] = (250, 10, 10)
    img[:8, 8:, :3] = (10, 240, 10)
    img[8:, :8, :3] = (10, 10, 245)
    img[8:, 8:, :3] = (245, 245, 245)
    return img
