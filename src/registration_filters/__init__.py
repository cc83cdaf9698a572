"""
Registration Filters Package

Point cloud filters used to prepare labeled point sets (coordinates plus
per-point descriptors such as normals or densities) for geometric
registration: distance and quantile thresholds, subsampling, surface normal
estimation, recursive spatial sampling, density uniformization and lossy
compression into local Gaussian distributions.
"""

__version__ = "0.1.0"

from .core import *
from .neighbors import *
from .geometry import *
from .filters import *
from .pipeline import *

__all__ = [
    "core",
    "neighbors",
    "geometry",
    "filters",
    "pipeline",
    "utils",
]
