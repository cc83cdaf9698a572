"""
Lossy point cloud compression using descriptive statistics.

The cloud is modelled as a set of local Gaussian distributions (mean,
covariance, weight, number of represented points). Every input point starts
as its own distribution with an isotropic covariance of ``initialVariance``
(or with the ``covariance``/``weightSum``/``nbPoints`` descriptors it already
carries, so compression can be applied repeatedly).

Each iteration:
1. Seeds are visited in index order. A seed gathers up to ``knn``
   not-yet-assigned neighbor distributions within ``maxDist``.
2. The candidates are fused (weighted mean, weighted covariance including
   the spread of the means).
3. While any input point represented by a member lies farther than
   ``maxDeviation`` (Euclidean) from the fused mean, the non-seed member
   reaching farthest is released and the fit is repeated.
4. If the seed already has a well-defined normal, the fused normal must fall
   into the same ``epsilon``-wide angular bin; otherwise the farthest member is
   released and the fit is repeated.
5. Released distributions stay available for later seeds.

Iteration stops when an iteration fuses nothing or after
``maxIterationCount`` iterations.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List

import numpy as np
from pydantic import Field

from ..core.errors import InputContractViolation
from ..core.point_set import (
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
from ..geometry.local_geometry import MIN_NEIGHBORS, sorted_eigh
from ..utils.logging import setup_logger
from .base import DataPointsFilter, FilterParams, register_filter

logger = setup_logger(__name__)

# Descriptors re-derived from the fused distributions instead of being averaged
_DERIVED = {COVARIANCE, WEIGHT_SUM, NB_POINTS, NORMALS, EIG_VALUES, EIG_VECTORS, DENSITIES, MATCHED_IDS}


class CompressionParams(FilterParams):
    knn: int = Field(default=10, ge=1, description="number of nearest neighbors to consider")
    max_dist: float = Field(default=math.inf, ge=0.0, description="maximum distance to consider for neighbors")
    epsilon: float = Field(default=0.09817477042, ge=0.0, le=math.pi, description="step of discretization for the angle spaces")
    max_iteration_count: int = Field(default=5, ge=0, description="maximum number of iterations")
    initial_variance: float = Field(default=9e-4, ge=1e-6, description="variance on individual point positions (isotropic)")
    max_deviation: float = Field(default=0.3, ge=0.0, description="maximum distance from the mean for a point to represent a distribution")
    keep_normals: bool = Field(default=False)
    keep_eigen_values: bool = Field(default=False)
    keep_eigen_vectors: bool = Field(default=False)


@dataclass
class Distributions:
    """
    Structure-of-arrays view of M distributions in D dimensions.

    ``members[g]`` holds the input rows represented by distribution g.
    ``points`` and ``point_radii`` are the input row positions and the
    radius already covered by each row (0 for raw points), shared by every
    iteration of one run.
    """

    means: np.ndarray        # (M, D)
    covariances: np.ndarray  # (M, D, D)
    weights: np.ndarray      # (M,)
    counts: np.ndarray       # (M,)
    extras: Dict[str, np.ndarray]
    members: List[np.ndarray]
    points: np.ndarray       # (N, D)
    point_radii: np.ndarray  # (N,)

    def __len__(self) -> int:
        return len(self.means)

    def fuse(self, members: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Weighted mean and covariance of the union of ``members``."""
        w = self.weights[members]
        total = w.sum()
        mean = (w[:, None] * self.means[members]).sum(axis=0) / total
        diff = self.means[members] - mean
        spread = self.covariances[members] + diff[:, :, None] * diff[:, None, :]
        cov = (w[:, None, None] * spread).sum(axis=0) / total
        return mean, cov

    def extent(self, member: int, center: np.ndarray) -> float:
        """Largest distance from ``center`` to an input point represented by ``member``."""
        rows = self.members[member]
        dist = np.linalg.norm(self.points[rows] - center, axis=1) + self.point_radii[rows]
        return float(dist.max())

    def collapse(self, groups: List[np.ndarray]) -> "Distributions":
        dim = self.means.shape[1]
        m = len(groups)
        means = np.empty((m, dim))
        covs = np.empty((m, dim, dim))
        weights = np.empty(m)
        counts = np.empty(m)
        extras = {k: np.empty((m, v.shape[1])) for k, v in self.extras.items()}
        members: List[np.ndarray] = []
        for g, group in enumerate(groups):
            means[g], covs[g] = self.fuse(group)
            w = self.weights[group]
            weights[g] = w.sum()
            counts[g] = self.counts[group].sum()
            for k, v in self.extras.items():
                extras[k][g] = (w[:, None] * v[group]).sum(axis=0) / weights[g]
            members.append(np.concatenate([self.members[j] for j in group]))
        return Distributions(means, covs, weights, counts, extras, members, self.points, self.point_radii)


@register_filter
class CompressionDataPointsFilter(DataPointsFilter):
    """
    Replace the cloud by one point per fused local distribution.

    Required descriptors: none.
    Produced descriptors: covariance, weightSum, nbPoints, normals, eigValues, eigVectors.
    Altered descriptors: all (weight-averaged per distribution).
    Altered features: points coordinates and number of points.
    """

    name = "CompressionDataPointsFilter"
    description = "Lossy point cloud compression using descriptive statistics."
    Params = CompressionParams
    produced_descriptors = (COVARIANCE, WEIGHT_SUM, NB_POINTS, NORMALS, EIG_VALUES, EIG_VECTORS)
    altered_descriptors = ("all",)
    altered_features = "points coordinates and number of points"
    uses_neighbors = True

    def _filter(self, cloud: LabeledPointSet) -> LabeledPointSet:
        return self._to_point_set(self.compress(cloud))

    def compress(self, cloud: LabeledPointSet) -> Distributions:
        """
        Fuse a non-empty cloud into distributions.

        The returned ``members`` map every distribution to the input rows it
        represents.
        """
        dists = self._initial_distributions(cloud)
        n_in = len(dists)

        iterations = 0
        for iterations in range(1, self.params.max_iteration_count + 1):
            groups = self._group(dists)
            if len(groups) == len(dists):
                logger.debug("%s converged after %d iteration(s)", self.name, iterations)
                break
            logger.debug("%s iteration %d: %d -> %d distributions", self.name, iterations, len(dists), len(groups))
            dists = dists.collapse(groups)

        logger.info(
            "%s: %d -> %d points after %d iteration(s)",
            self.name, n_in, len(dists), iterations,
        )
        return dists

    # -- State ------------------------------------------------------------

    def _initial_distributions(self, cloud: LabeledPointSet) -> Distributions:
        n, dim = cloud.n_points, cloud.dim

        if cloud.has_descriptor(COVARIANCE):
            flat = cloud.get_descriptor(COVARIANCE)
            if flat.shape[1] != dim * dim:
                raise InputContractViolation(
                    f"{self.name}: covariance descriptor has {flat.shape[1]} columns, expected {dim * dim}"
                )
            covs = flat.reshape(n, dim, dim).astype(float)
        else:
            covs = np.broadcast_to(self.params.initial_variance * np.eye(dim), (n, dim, dim)).copy()

        weights = (
            cloud.get_descriptor(WEIGHT_SUM)[:, 0].astype(float)
            if cloud.has_descriptor(WEIGHT_SUM) else np.ones(n)
        )
        counts = (
            cloud.get_descriptor(NB_POINTS)[:, 0].astype(float)
            if cloud.has_descriptor(NB_POINTS) else np.ones(n)
        )
        extras = {k: v.astype(float) for k, v in cloud.descriptors.items() if k not in _DERIVED}

        # Rows that are already distributions cover the spread of their own points
        if cloud.has_descriptor(COVARIANCE):
            spread = np.trace(covs, axis1=1, axis2=2) - dim * self.params.initial_variance
            radii = np.sqrt(np.maximum(spread, 0.0))
        else:
            radii = np.zeros(n)

        points = cloud.features.copy()
        members = [np.array([i], dtype=np.int64) for i in range(n)]
        return Distributions(points.copy(), covs, weights, counts, extras, members, points, radii)

    # -- One iteration ----------------------------------------------------

    def _group(self, dists: Distributions) -> List[np.ndarray]:
        p = self.params
        result = self._neighbors(dists.means).knn_search(dists.means, k=p.knn, max_dist=p.max_dist)

        assigned = np.zeros(len(dists), dtype=bool)
        groups: List[np.ndarray] = []
        for seed in range(len(dists)):
            if assigned[seed]:
                continue
            neighbors, _ = result.row(seed)
            others = [j for j in neighbors if j != seed and not assigned[j]]
            members = self._fit_members(dists, np.array([seed] + others, dtype=np.int64))
            assigned[members] = True
            groups.append(members)
        return groups

    def _fit_members(self, dists: Distributions, members: np.ndarray) -> np.ndarray:
        """Shrink a candidate group until it forms a valid distribution. members[0] is the seed."""
        max_dev = self.params.max_deviation
        while len(members) > 1:
            mean, cov = dists.fuse(members)
            # Every represented input point must stay within max_dev of the fused mean
            dev = np.array([dists.extent(m, mean) for m in members])
            if np.any(dev > max_dev):
                # The seed always stays; release the member reaching farthest
                members = np.delete(members, 1 + int(np.argmax(dev[1:])))
                continue
            if not self._same_orientation(dists, members[0], cov):
                # Candidates are ordered by distance to the seed
                members = members[:-1]
                continue
            break
        return members

    def _same_orientation(self, dists: Distributions, seed: int, fused_cov: np.ndarray) -> bool:
        eps = self.params.epsilon
        if eps <= 0 or dists.means.shape[1] < 2 or dists.counts[seed] < MIN_NEIGHBORS:
            return True
        seed_values, seed_vectors = sorted_eigh(dists.covariances[seed])
        # Seed normal is only meaningful when the smallest axis is clearly flatter
        if seed_values[0] > 0.5 * seed_values[1]:
            return True
        _, fused_vectors = sorted_eigh(fused_cov)
        cos = abs(float(seed_vectors[:, 0] @ fused_vectors[:, 0]))
        angle = math.acos(min(1.0, cos))
        return int(angle // eps) == 0

    # -- Output -----------------------------------------------------------

    def _to_point_set(self, dists: Distributions) -> LabeledPointSet:
        p = self.params
        m, dim = dists.means.shape
        descriptors: Dict[str, np.ndarray] = dict(dists.extras)
        descriptors[COVARIANCE] = dists.covariances.reshape(m, dim * dim)
        descriptors[WEIGHT_SUM] = dists.weights.reshape(-1, 1)
        descriptors[NB_POINTS] = dists.counts.reshape(-1, 1)

        if p.keep_normals or p.keep_eigen_values or p.keep_eigen_vectors:
            values, vectors = sorted_eigh(dists.covariances)
            if p.keep_normals:
                descriptors[NORMALS] = vectors[:, :, 0]
            if p.keep_eigen_values:
                descriptors[EIG_VALUES] = values
            if p.keep_eigen_vectors:
                descriptors[EIG_VECTORS] = np.swapaxes(vectors, 1, 2).reshape(m, dim * dim)

        return LabeledPointSet(features=dists.means, descriptors=descriptors)
