# palette_dither/__init__.py
"""
palette_dither package.

Purpose:
  Palette extraction by k-means clustering and palette dithering with k-d tree
  colour lookup.

Public API:
  geom       : Point, PointSet, Bounds primitives.
  distance   : euclidean_distance, redmean_distance, resolve_metric.
  kmeans     : Clustering engine (threaded assign/update), best_of_restarts.
  kdtree     : KDTree nearest neighbour, BucketKDTree, mean_cut.
  palette    : ColourPalette, extract_palette, JSON load/save.
  dither     : floyd_steinberg, dither_image, palette_indices.
  config     : KMeansConfig, PaletteConfig, DitherConfig.
  utils      : shared helpers (chunking, image conversion, logging).

Quick start:
  from palette_dither import extract_palette, dither_image
  pal = extract_palette(img, k=8)
  out = dither_image(img, pal)
"""

__version__ = "0.1.0"

# Re-export namespaces for convenience.
from . import core_types
from . import config
from . import geom
from . import distance
from . import kmeans
from . import kdtree
from . import palette
from . import dither
from . import utils

from .config import DitherConfig, KMeansConfig, PaletteConfig  # noqa: E402,F401
from .geom import Bounds, Point, PointSet  # noqa: E402,F401
from .distance import euclidean_distance, redmean_distance  # noqa: E402,F401
from .kmeans import Clustering, best_of_restarts, create_clustering  # noqa: E402,F401
from .kdtree import (  # noqa: E402,F401
    BucketKDTree,
    KDTree,
    build_bucket_tree,
    build_kdtree,
    mean_cut,
)
from .palette import ColourPalette, extract_palette  # noqa: E402,F401
from .dither import dither_image, floyd_steinberg  # noqa: E402,F401

__all__ = [
    "__version__",
    "core_types",
    "config",
    "geom",
    "distance",
    "kmeans",
    "kdtree",
    "palette",
    "dither",
    "utils",
    "DitherConfig",
    "KMeansConfig",
    "PaletteConfig",
    "Bounds",
    "Point",
    "PointSet",
    "euclidean_distance",
    "redmean_distance",
    "Clustering",
    "best_of_restarts",
    "create_clustering",
    "BucketKDTree",
    "KDTree",
    "build_bucket_tree",
    "build_kdtree",
    "mean_cut",
    "ColourPalette",
    "extract_palette",
    "dither_image",
    "floyd_steinberg",
]
