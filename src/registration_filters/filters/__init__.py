"""
Data Points Filters

Importing this module registers every filter under its canonical name.
"""

from .base import (
    DataPointsFilter,
    FilterParams,
    available_filters,
    create_filter,
    get_filter_class,
    register_filter,
)
from .basic import (
    FixstepSamplingDataPointsFilter,
    IdentityDataPointsFilter,
    MaxDistDataPointsFilter,
    MaxQuantileOnAxisDataPointsFilter,
    MinDistDataPointsFilter,
    RandomSamplingDataPointsFilter,
)
from .normals import OrientNormalsDataPointsFilter, SurfaceNormalDataPointsFilter
from .sampling import SamplingSurfaceNormalDataPointsFilter
from .density import UniformizeDensityDataPointsFilter
from .compression import CompressionDataPointsFilter

__all__ = [
    # Base
    "DataPointsFilter",
    "FilterParams",
    "available_filters",
    "create_filter",
    "get_filter_class",
    "register_filter",
    # Single pass
    "IdentityDataPointsFilter",
    "MaxDistDataPointsFilter",
    "MinDistDataPointsFilter",
    "MaxQuantileOnAxisDataPointsFilter",
    "RandomSamplingDataPointsFilter",
    "FixstepSamplingDataPointsFilter",
    # Normals
    "SurfaceNormalDataPointsFilter",
    "OrientNormalsDataPointsFilter",
    # Geometric subsampling
    "SamplingSurfaceNormalDataPointsFilter",
    "UniformizeDensityDataPointsFilter",
    "CompressionDataPointsFilter",
]
