"""
Density uniformization.

Reduces the number of points by a given ratio while removing points
preferentially where the density is high, so that the resulting density is
more uniform.
"""

from __future__ import annotations

import numpy as np
from pydantic import Field

from ..core.point_set import DENSITIES, LabeledPointSet
from ..utils.logging import setup_logger
from .base import DataPointsFilter, FilterParams, register_filter

logger = setup_logger(__name__)


class UniformizeDensityParams(FilterParams):
    ratio: float = Field(default=0.5, ge=1e-7, le=0.9999999, description="targeted reduction ratio")
    nb_bin: int = Field(default=1, ge=1, description="number of bins of the density histogram")


def saturation_density(counts: np.ndarray, densities: np.ndarray, target: float) -> float:
    """
    Density cap T such that sum(counts * min(1, T / densities)) == target.

    Bins with zero density are always kept entirely. Returns inf when the
    target cannot be reached without keeping every point.
    """
    positive = densities > 0
    fixed = float(counts[~positive].sum())
    c = counts[positive].astype(float)
    d = densities[positive].astype(float)
    if len(d) == 0 or fixed + c.sum() <= target:
        return float("inf")
    if fixed >= target:
        return 0.0

    order = np.argsort(d, kind="stable")
    c, d = c[order], d[order]
    kept_full = fixed
    # Bins below the cap are kept entirely, bins above are scaled by T / d
    for j in range(len(d)):
        scaled = float(np.sum(c[j:] / d[j:]))
        t = (target - kept_full) / scaled
        lower = d[j - 1] if j > 0 else 0.0
        if lower <= t <= d[j]:
            return t
        kept_full += c[j]
    return float(d[-1])


@register_filter
class UniformizeDensityDataPointsFilter(DataPointsFilter):
    """
    Histogram-based resampling on the ``densities`` descriptor.

    Densities are binned into ``nbBin`` equal-width bins. A saturation density
    T is solved so that keeping the fraction ``min(1, T / binDensity)`` of
    each bin (bin density = mean density of its points) keeps
    ``floor(N * (1 - ratio))`` points. Within a bin the kept points are evenly
    spaced in input order, so the filter is deterministic.
    """

    name = "UniformizeDensityDataPointsFilter"
    description = (
        "Subsampling. Reduce the points number of a certain ratio while trying to uniformize "
        "the density of the point cloud."
    )
    Params = UniformizeDensityParams
    required_descriptors = (DENSITIES,)
    altered_features = "number of points"

    def _filter(self, cloud: LabeledPointSet) -> LabeledPointSet:
        densities = cloud.get_descriptor(DENSITIES)[:, 0]
        n = cloud.n_points
        target = int(np.floor(n * (1.0 - self.params.ratio)))

        lo, hi = float(densities.min()), float(densities.max())
        nb_bin = self.params.nb_bin if hi > lo else 1
        edges = np.linspace(lo, hi, nb_bin + 1)
        bin_ids = np.clip(np.searchsorted(edges, densities, side="right") - 1, 0, nb_bin - 1)

        counts = np.bincount(bin_ids, minlength=nb_bin)
        sums = np.bincount(bin_ids, weights=densities, minlength=nb_bin)
        occupied = counts > 0
        bin_density = np.zeros(nb_bin)
        bin_density[occupied] = sums[occupied] / counts[occupied]
        if hi <= 0:
            # No density information: plain even subsampling
            bin_density[occupied] = 1.0

        cap = saturation_density(counts[occupied], bin_density[occupied], target)

        keep = np.zeros(n, dtype=bool)
        for b in np.flatnonzero(occupied):
            members = np.flatnonzero(bin_ids == b)
            d = bin_density[b]
            fraction = 1.0 if d <= 0 or cap >= d else cap / d
            quota = int(round(len(members) * fraction))
            if quota <= 0:
                continue
            # Evenly spaced selection inside the bin
            picks = (np.arange(quota) * len(members)) // quota
            keep[members[picks]] = True

        logger.debug(
            "%s: %d -> %d points (target %d, %d bins, cap %.4g)",
            self.name, n, int(keep.sum()), target, nb_bin, cap,
        )
        return cloud.select(keep)
