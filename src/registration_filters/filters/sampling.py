"""
Recursive spatial sampling with normal estimation.

The point set is split recursively through axis-aligned hyperplanes until a
box holds at most ``binSize`` points; each box is then fused into its center
of mass, with a normal estimated from all points of the box.

Splitting works on a single index permutation array: a box is a contiguous
range ``[first, last)`` of that array, and partitioning a box reorders its
range in place. Boxes are processed with an explicit stack in depth-first,
lower-half-first order, which is also the output order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np
from pydantic import Field

from ..core.point_set import DENSITIES, EIG_VALUES, EIG_VECTORS, MATCHED_IDS, NORMALS, LabeledPointSet
from ..geometry.local_geometry import MIN_NEIGHBORS, LocalGeometryEstimator
from ..neighbors.query import NeighborQuery
from ..utils.logging import setup_logger
from .base import DataPointsFilter, FilterParams, register_filter

logger = setup_logger(__name__)


class SamplingSurfaceNormalParams(FilterParams):
    bin_size: int = Field(default=7, ge=MIN_NEIGHBORS, description="limit over which a box is split in two")
    average_existing_descriptors: bool = Field(
        default=True, description="average existing descriptors per box instead of dropping them"
    )
    keep_normals: bool = Field(default=True)
    keep_densities: bool = Field(default=False)
    keep_eigen_values: bool = Field(default=False)
    keep_eigen_vectors: bool = Field(default=False)


@dataclass
class _BuildData:
    """Working state of one filter invocation."""

    features: np.ndarray
    descriptors: Dict[str, np.ndarray]
    indices: np.ndarray
    out_features: List[np.ndarray] = field(default_factory=list)
    out_descriptors: Dict[str, List[np.ndarray]] = field(default_factory=dict)
    degenerate_boxes: int = 0

    def append(self, name: str, value: np.ndarray) -> None:
        self.out_descriptors.setdefault(name, []).append(np.atleast_1d(value))


def split_axis(features: np.ndarray, range_indices: np.ndarray,
               box_min: np.ndarray, box_max: np.ndarray) -> int:
    """
    Choose the axis whose split best evens out the box aspect ratio.

    Each axis is scored by ``extent / cbrt(density)``, where the density along
    an axis is the number of distinct coordinate values per unit extent. A
    long but densely sampled axis can therefore lose against a shorter,
    coarsely sampled one. Ties go to the lowest axis index; if every extent
    is zero, axis 0 is returned.
    """
    extents = box_max - box_min
    scores = np.zeros(len(extents))
    coords = features[range_indices]
    for axis, extent in enumerate(extents):
        if extent <= 0:
            continue
        n_distinct = len(np.unique(coords[:, axis]))
        density = n_distinct / extent
        scores[axis] = extent / np.cbrt(density)
    return int(np.argmax(scores))


def split_count(count: int, bin_size: int) -> int:
    """
    Size of the lower half when splitting ``count`` points.

    A range of ``count`` points ends in exactly ``n = ceil(count / bin_size)``
    leaves. The lower half is given ``ceil(n / 2)`` of them and a share of
    the points proportional to that, so the remainder of ``count / bin_size``
    is spread over all leaves instead of ending in one small trailing leaf.
    Every leaf then holds roughly ``count / n`` points.
    """
    n_bins = -(-count // bin_size)
    left_bins = -(-n_bins // 2)
    return -(-count * left_bins // n_bins)


@register_filter
class SamplingSurfaceNormalDataPointsFilter(DataPointsFilter):
    """
    Subsample by recursive box splitting and fuse each box into one point.

    Output point count is ``ceil(N / binSize)``. Output order follows the
    depth-first traversal of the boxes, not the input order.
    """

    name = "SamplingSurfaceNormalDataPointsFilter"
    description = (
        "Subsampling, Normals. This filter decomposes the point-cloud space in boxes, by recursively "
        "splitting the cloud through axis-aligned hyperplanes such as to maximize the evenness of the "
        "aspect ratio of the box. When the number of points in a box reaches a value binSize or lower, "
        "the filter computes the center of mass of these points and its normal by taking the "
        "eigenvector corresponding to the smallest eigenvalue of all points in the box."
    )
    Params = SamplingSurfaceNormalParams
    produced_descriptors = (NORMALS, DENSITIES, EIG_VALUES, EIG_VECTORS)
    altered_descriptors = ("all (averaged per box or dropped)",)
    altered_features = "points coordinates and number of points"

    def __init__(self, params=None, **kwargs):
        super().__init__(params, **kwargs)
        self._estimator = LocalGeometryEstimator()

    def _filter(self, cloud: LabeledPointSet) -> LabeledPointSet:
        n = cloud.n_points
        averaged: Dict[str, np.ndarray] = {}
        if self.params.average_existing_descriptors:
            excluded = self._recomputed_descriptors() | {MATCHED_IDS}
            averaged = {k: v for k, v in cloud.descriptors.items() if k not in excluded}
        data = _BuildData(
            features=cloud.features,
            descriptors=averaged,
            indices=np.arange(n, dtype=np.int64),
        )

        box_min = cloud.features.min(axis=0)
        box_max = cloud.features.max(axis=0)
        self._build(data, 0, n, box_min, box_max)

        features = np.vstack(data.out_features)
        descriptors = {name: np.vstack(rows) for name, rows in data.out_descriptors.items()}
        logger.info(
            "%s: %d -> %d points (binSize=%d, %d degenerate boxes)",
            self.name, n, len(features), self.params.bin_size, data.degenerate_boxes,
        )
        return LabeledPointSet(features=features, descriptors=descriptors)

    def _recomputed_descriptors(self) -> set:
        p = self.params
        flags = {
            NORMALS: p.keep_normals,
            DENSITIES: p.keep_densities,
            EIG_VALUES: p.keep_eigen_values,
            EIG_VECTORS: p.keep_eigen_vectors,
        }
        return {name for name, keep in flags.items() if keep}

    def _build(self, data: _BuildData, first: int, last: int,
               box_min: np.ndarray, box_max: np.ndarray) -> None:
        bin_size = self.params.bin_size
        stack = [(first, last, box_min, box_max)]
        while stack:
            first, last, box_min, box_max = stack.pop()
            count = last - first
            if count <= bin_size:
                self._fuse_range(data, first, last)
                continue

            sub = data.indices[first:last]
            axis = split_axis(data.features, sub, box_min, box_max)

            # Order the range by (coordinate, index); ties stay deterministic
            values = data.features[sub, axis]
            data.indices[first:last] = sub[np.lexsort((sub, values))]

            left_count = split_count(count, bin_size)
            cut = first + left_count
            cut_value = data.features[data.indices[cut], axis]

            left_max = box_max.copy()
            left_max[axis] = cut_value
            right_min = box_min.copy()
            right_min[axis] = cut_value

            # Upper half pushed first so that the lower half is fused first
            stack.append((cut, last, right_min, box_max))
            stack.append((first, cut, box_min, left_max))

    def _fuse_range(self, data: _BuildData, first: int, last: int) -> None:
        p = self.params
        members = data.indices[NeighborQuery.all_points_as_neighbors(first, last)]
        pts = data.features[members]

        geo = self._estimator.estimate(pts)
        data.out_features.append(geo.centroid)
        if geo.degenerate:
            data.degenerate_boxes += 1

        for name, values in data.descriptors.items():
            data.append(name, values[members].mean(axis=0))

        if p.keep_normals:
            data.append(NORMALS, geo.normal)
        if p.keep_densities:
            # Boxes too small for a surface fit are flagged by a zero density
            data.append(DENSITIES, 0.0 if geo.degenerate else geo.density)
        if p.keep_eigen_values:
            data.append(EIG_VALUES, geo.eigen.values)
        if p.keep_eigen_vectors:
            data.append(EIG_VECTORS, geo.eigen.flat_vectors())
