import json

import numpy as np
import pytest
from PIL import Image

from palette_dither.config import KMeansConfig, PaletteConfig
from palette_dither.constants import BLACK, WHITE
from palette_dither.geom import Point
from palette_dither.palette import (
    ColourPalette,
    bw_palette,
    colour_to_point,
    extract_palette,
    load_palettes,
    palette_with_name,
    point_to_colour,
    sample_points,
    save_palette,
    save_palettes,
    traverse,
)

QUADRANTS = {
    (250, 10, 10, 255),
    (10, 240, 10, 255),
    (10, 10, 245, 255),
    (245, 245, 245, 255),
}


def test_colours_are_coerced_to_rgba():
    pal = ColourPalette("x", [(1, 2, 3), [4, 5, 6, 7]])
    assert pal.colours == [(1, 2, 3, 255), (4, 5, 6, 7)]
    assert pal.hex_codes() == ["#010203", "#040506"]
    assert len(pal) == 2


def test_to_point_set_ids_are_palette_indices():
    ps = bw_palette().to_point_set()
    assert ps.ids.tolist() == [0, 1]
    assert ps.coordinates.tolist() == [[0, 0, 0, 255], [255, 255, 255, 255]]


def test_point_colour_conversion():
    p = colour_to_point((1, 2, 3), point_id=4)
    assert p == Point((1.0, 2.0, 3.0, 255.0), 4)
    assert point_to_colour(Point((12.9, 300.0, -4.0))) == (12, 255, 0, 255)


def test_sample_points_ids(four_colour_image):
    ps = sample_points(four_colour_image, 5)
    assert len(ps) == 16
    assert ps.dimension == 4
    assert ps.ids.tolist()[:5] == [0, 5, 10, 15, 80]
    assert ps[0].coordinates.tolist() == [250.0, 10.0, 10.0, 255.0]
    assert ps[15].coordinates.tolist() == [245.0, 245.0, 245.0, 255.0]


def test_sample_points_accepts_pillow(four_colour_image):
    img = Image.fromarray(four_colour_image, "RGBA")
    assert len(sample_points(img, 1)) == 256


def test_sample_points_rejects_bad_factor(four_colour_image):
    with pytest.raises(ValueError):
        sample_points(four_colour_image, 0)


def test_extract_palette_finds_the_quadrant_colours(four_colour_image):
    cfg = PaletteConfig(
        k=4, sample_factor=1, restarts=3, kmeans=KMeansConfig(seed=42, workers=2)
    )
    pal = extract_palette(four_colour_image, config=cfg)
    assert pal.name == "FromImage"
    assert len(pal) == 4
    assert set(pal.colours) == QUADRANTS


def test_extract_palette_k_argument_overrides_config(four_colour_image):
    cfg = PaletteConfig(k=4, sample_factor=1, restarts=1, kmeans=KMeansConfig(seed=3))
    pal = extract_palette(four_colour_image, k=1, config=cfg, name="one")
    assert pal.name == "one"
    assert len(pal) == 1


def test_extract_palette_too_few_samples(four_colour_image):
    cfg = PaletteConfig(k=5, sample_factor=8)
    with pytest.raises(ValueError):
        extract_palette(four_colour_image, config=cfg)


def test_json_round_trip(tmp_path):
    palettes = [bw_palette(), ColourPalette("warm", [(200, 80, 20, 255)])]
    path = tmp_path / "palettes.json"
    save_palettes(palettes, path)
    loaded = load_palettes(path)
    assert loaded == palettes


def test_save_palette_writes_name_and_colors(tmp_path):
    path = tmp_path / "one.json"
    save_palette(bw_palette(), path, indent=False)
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data == {"name": "BW", "colors": [[0, 0, 0, 255], [255, 255, 255, 255]]}
    with pytest.raises(ValueError):
        load_palettes(path)


def test_load_missing_file_gives_empty_list(tmp_path, capsys):
    assert load_palettes(tmp_path / "nope.json") == []
    assert "[warn]" in capsys.readouterr().out


def test_load_rejects_entries_without_colors(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps([{"name": "x"}]), encoding="utf-8")
    with pytest.raises(ValueError):
        load_palettes(path)


def test_palette_with_name():
    palettes = [bw_palette(), ColourPalette("warm", [(200, 80, 20)])]
    assert palette_with_name("warm", palettes) is palettes[1]
    fallback = palette_with_name("missing", palettes)
    assert fallback.name == "New"
    assert fallback.colours == [BLACK]


def test_traverse_collects_runs_and_skips_white():
    img = np.zeros((3, 30, 4), dtype=np.uint8)
    img[...] = WHITE
    img[1, 10:20] = (200, 0, 0, 255)
    img[1, 20:30] = (0, 0, 200, 255)
    pal, count = traverse(img, True, "line")
    assert pal.name == "line"
    assert count == 2
    assert pal.colours == [(200, 0, 0, 255), (0, 0, 200, 255)]


def test_traverse_ignores_short_runs():
    img = np.zeros((20, 5, 4), dtype=np.uint8)
    img[...] = (10, 20, 30, 255)
    pal, count = traverse(img, False, "col")
    assert count == 1
    img[:, 2] = WHITE
    img[5:10, 2] = (10, 20, 30, 255)
    pal, count = traverse(img, False, "col")
    assert count == 0
    assert pal.colours == []
