"""
Local Geometry Module

Scatter-matrix eigen-decomposition of point neighborhoods.
"""

from .local_geometry import (
    EigenDecomposition,
    LocalGeometry,
    LocalGeometryEstimator,
    density_from_radius,
    sorted_eigh,
)

__all__ = [
    "EigenDecomposition",
    "LocalGeometry",
    "LocalGeometryEstimator",
    "density_from_radius",
    "sorted_eigh",
]
