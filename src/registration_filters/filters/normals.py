"""
Normal estimation and reorientation.

- SurfaceNormalDataPointsFilter: per-point eigen-decomposition of the k-NN neighborhood
- OrientNormalsDataPointsFilter: consistent normal direction with respect to a reference point
"""

from __future__ import annotations

from typing import List, Optional

import numpy as np
from pydantic import Field

from ..core.errors import InputContractViolation
from ..core.point_set import (
    DENSITIES,
    EIG_VALUES,
    EIG_VECTORS,
    MATCHED_IDS,
    NORMALS,
    LabeledPointSet,
)
from ..geometry.local_geometry import MIN_NEIGHBORS, LocalGeometryEstimator
from ..utils.logging import setup_logger
from .base import DataPointsFilter, FilterParams, register_filter

logger = setup_logger(__name__)


class SurfaceNormalParams(FilterParams):
    knn: int = Field(default=5, ge=MIN_NEIGHBORS, description="number of nearest neighbors, including the point itself")
    epsilon: float = Field(default=0.0, ge=0.0, description="approximation of the nearest-neighbor search")
    keep_normals: bool = Field(default=True)
    keep_densities: bool = Field(default=False)
    keep_eigen_values: bool = Field(default=False)
    keep_eigen_vectors: bool = Field(default=False)
    keep_matched_ids: bool = Field(default=False)


@register_filter
class SurfaceNormalDataPointsFilter(DataPointsFilter):
    """
    Surface normals from the eigen-decomposition of each point's k-NN neighborhood.

    The neighborhood includes the point itself. Clouds with fewer than ``knn``
    points give smaller neighborhoods; the decomposition is still computed.
    Normal signs are arbitrary; chain OrientNormalsDataPointsFilter to make
    them consistent.
    """

    name = "SurfaceNormalDataPointsFilter"
    description = (
        "Normals. This filter extracts the normal to each point by taking the eigenvector "
        "corresponding to the smallest eigenvalue of its nearest neighbors."
    )
    Params = SurfaceNormalParams
    produced_descriptors = (NORMALS, DENSITIES, EIG_VALUES, EIG_VECTORS, MATCHED_IDS)
    uses_neighbors = True

    def __init__(self, params=None, **kwargs):
        super().__init__(params, **kwargs)
        self._estimator = LocalGeometryEstimator()

    def _filter(self, cloud: LabeledPointSet) -> LabeledPointSet:
        p = self.params
        pts = cloud.features
        n, dim = pts.shape

        result = self._neighbors(pts).knn_search(pts, k=p.knn, epsilon=p.epsilon)
        valid = result.valid
        safe_idx = np.where(valid, result.indices, 0)
        radii = np.max(np.where(valid, result.distances, 0.0), axis=1)

        geo = self._estimator.estimate_batch(pts[safe_idx], valid=valid, radii=radii)

        new = {}
        if p.keep_normals:
            new[NORMALS] = geo["normals"]
        if p.keep_densities:
            new[DENSITIES] = geo["densities"].reshape(-1, 1)
        if p.keep_eigen_values:
            new[EIG_VALUES] = geo["eigValues"]
        if p.keep_eigen_vectors:
            # Columns are eigenvectors; store them one after another
            new[EIG_VECTORS] = np.swapaxes(geo["eigVectors"], 1, 2).reshape(n, dim * dim)
        if p.keep_matched_ids:
            new[MATCHED_IDS] = result.indices.copy()

        logger.debug(
            "%s: estimated %d normals (knn=%d, mean neighbors=%.2f)",
            self.name, n, p.knn, float(geo["counts"].mean()),
        )
        return cloud.with_descriptors(**new)


class OrientNormalsParams(FilterParams):
    toward_center: bool = Field(default=False, description="point normals toward the reference instead of away")
    reference: Optional[List[float]] = Field(default=None, description="reference coordinates (default: origin)")


@register_filter
class OrientNormalsDataPointsFilter(DataPointsFilter):
    """
    Flip normals so that they all face away from (or toward) a reference point.

    A normal n at point x faces away from the reference r when
    n . (x - r) >= 0. Normals of points located at the reference are left as is.
    """

    name = "OrientNormalsDataPointsFilter"
    description = "Normals. Reorient normals so that they all point in the same direction, with respect to a reference point."
    Params = OrientNormalsParams
    required_descriptors = (NORMALS,)
    altered_descriptors = (NORMALS,)

    def _filter(self, cloud: LabeledPointSet) -> LabeledPointSet:
        normals = cloud.get_descriptor(NORMALS)
        if normals.shape[1] != cloud.dim:
            raise InputContractViolation(
                f"{self.name}: normals have {normals.shape[1]} components, points have {cloud.dim}"
            )
        reference = np.zeros(cloud.dim) if self.params.reference is None else np.asarray(self.params.reference, dtype=float)
        if reference.shape != (cloud.dim,):
            raise InputContractViolation(
                f"{self.name}: reference has {reference.size} coordinates, points have {cloud.dim}"
            )

        dots = np.einsum("ij,ij->i", normals, cloud.features - reference)
        flip = dots > 0 if self.params.toward_center else dots < 0
        oriented = np.where(flip[:, None], -normals, normals)
        logger.debug("%s flipped %d of %d normals", self.name, int(flip.sum()), cloud.n_points)
        return cloud.with_descriptors(**{NORMALS: oriented})
