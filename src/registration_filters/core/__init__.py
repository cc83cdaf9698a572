"""
Core Data Model

Labeled point sets and the exception types shared by all filters.
"""

from .errors import ConfigurationError, InputContractViolation, RegistrationFiltersError
from .point_set import (
    COVARIANCE,
    DENSITIES,
    EIG_VALUES,
    EIG_VECTORS,
    MATCHED_IDS,
    NB_POINTS,
    NORMALS,
    WEIGHT_SUM,
    LabeledPointSet,
)

__all__ = [
    "LabeledPointSet",
    "RegistrationFiltersError",
    "ConfigurationError",
    "InputContractViolation",
    "NORMALS",
    "DENSITIES",
    "EIG_VALUES",
    "EIG_VECTORS",
    "MATCHED_IDS",
    "COVARIANCE",
    "WEIGHT_SUM",
    "NB_POINTS",
]
