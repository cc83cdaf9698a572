"""
Single-pass filters.

- IdentityDataPointsFilter: does nothing
- MaxDistDataPointsFilter / MinDistDataPointsFilter: threshold on one axis or on the radius
- MaxQuantileOnAxisDataPointsFilter: keep points below a quantile on one axis
- RandomSamplingDataPointsFilter: keep each point with a fixed probability
- FixstepSamplingDataPointsFilter: keep one point every ``step``, with ``step`` varying over calls
"""

from __future__ import annotations

from typing import Any, Optional

import numpy as np
from pydantic import Field, field_validator

from ..core.errors import InputContractViolation
from ..core.point_set import LabeledPointSet
from ..utils.logging import setup_logger
from .base import DataPointsFilter, FilterParams, register_filter

logger = setup_logger(__name__)

RADIUS = -1


def _parse_dim(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in ("radius", "all"):
        return RADIUS
    return value


def _axis_values(cloud: LabeledPointSet, dim: int, owner: str) -> np.ndarray:
    """Absolute coordinate on ``dim``, or the point norm for the radius sentinel."""
    if dim == RADIUS:
        return np.linalg.norm(cloud.features, axis=1)
    if dim >= cloud.dim:
        raise InputContractViolation(
            f"{owner}: dim={dim} but points have only {cloud.dim} dimensions"
        )
    return np.abs(cloud.features[:, dim])


@register_filter
class IdentityDataPointsFilter(DataPointsFilter):
    name = "IdentityDataPointsFilter"
    description = "Does nothing."

    def _filter(self, cloud: LabeledPointSet) -> LabeledPointSet:
        return cloud.copy()


class _DistParams(FilterParams):
    dim: int = Field(default=RADIUS, ge=RADIUS, description="axis: x=0, y=1, z=2, radius=-1")

    @field_validator("dim", mode="before")
    @classmethod
    def _radius_sentinel(cls, value: Any) -> Any:
        return _parse_dim(value)


class MaxDistParams(_DistParams):
    max_dist: float = Field(default=1.0, ge=0.0, description="points at or beyond this distance are removed")


class MinDistParams(_DistParams):
    min_dist: float = Field(default=1.0, ge=0.0, description="points at or before this distance are removed")


@register_filter
class MaxDistDataPointsFilter(DataPointsFilter):
    name = "MaxDistDataPointsFilter"
    description = "Subsampling. Filter points beyond a maximum distance measured on a specific axis."
    Params = MaxDistParams
    altered_features = "number of points"

    def _filter(self, cloud: LabeledPointSet) -> LabeledPointSet:
        values = _axis_values(cloud, self.params.dim, self.name)
        return cloud.select(values < self.params.max_dist)


@register_filter
class MinDistDataPointsFilter(DataPointsFilter):
    name = "MinDistDataPointsFilter"
    description = "Subsampling. Filter points before a minimum distance measured on a specific axis."
    Params = MinDistParams
    altered_features = "number of points"

    def _filter(self, cloud: LabeledPointSet) -> LabeledPointSet:
        values = _axis_values(cloud, self.params.dim, self.name)
        return cloud.select(values > self.params.min_dist)


class MaxQuantileOnAxisParams(FilterParams):
    dim: int = Field(default=0, ge=0, description="axis: x=0, y=1, z=2")
    ratio: float = Field(default=0.5, ge=1e-7, le=0.9999999, description="maximum quantile authorized")


@register_filter
class MaxQuantileOnAxisDataPointsFilter(DataPointsFilter):
    """
    Keep the ``floor(N * ratio)`` points with the smallest coordinate on ``dim``.

    Points are ranked by (coordinate, input index), so ties at the quantile
    boundary are resolved in input order. The output keeps the input order.
    """

    name = "MaxQuantileOnAxisDataPointsFilter"
    description = "Subsampling. Filter points beyond a maximum quantile measured on a specific axis."
    Params = MaxQuantileOnAxisParams
    altered_features = "number of points"

    def _filter(self, cloud: LabeledPointSet) -> LabeledPointSet:
        dim = self.params.dim
        if dim >= cloud.dim:
            raise InputContractViolation(
                f"{self.name}: dim={dim} but points have only {cloud.dim} dimensions"
            )
        n = cloud.n_points
        n_keep = int(np.floor(n * self.params.ratio))
        values = cloud.features[:, dim]
        order = np.lexsort((np.arange(n), values))
        keep = np.zeros(n, dtype=bool)
        keep[order[:n_keep]] = True
        return cloud.select(keep)


class RandomSamplingParams(FilterParams):
    prob: float = Field(default=0.75, ge=0.0, le=1.0, description="probability to keep a point")
    seed: Optional[int] = Field(default=None, description="seed of the random generator")


@register_filter
class RandomSamplingDataPointsFilter(DataPointsFilter):
    """
    Keep each point independently with probability ``prob``.

    The only filter whose output is not a function of its input: without a
    seed, successive calls give different subsets.
    """

    name = "RandomSamplingDataPointsFilter"
    description = "Subsampling. This filter reduces the size of the point cloud by randomly dropping points."
    Params = RandomSamplingParams
    altered_features = "number of points"

    def __init__(self, params=None, **kwargs):
        super().__init__(params, **kwargs)
        self._rng = np.random.default_rng(self.params.seed)

    def _filter(self, cloud: LabeledPointSet) -> LabeledPointSet:
        keep = self._rng.random(cloud.n_points) < self.params.prob
        return cloud.select(keep)


class FixstepSamplingParams(FilterParams):
    start_step: float = Field(default=10.0, ge=1e-7, description="initial decimation factor")
    end_step: float = Field(default=10.0, ge=1e-7, description="final decimation factor")
    step_mult: float = Field(default=1.0, ge=1e-7, description="step multiplier applied after each call")


@register_filter
class FixstepSamplingDataPointsFilter(DataPointsFilter):
    """
    Systematic sampling: keep points 0, s, 2s, ... with s = int(step).

    After every call ``step`` is multiplied by ``stepMult`` and clamped at
    ``endStep`` in the direction of change. ``init()`` restarts from
    ``startStep``.
    """

    name = "FixstepSamplingDataPointsFilter"
    description = (
        "Subsampling. This filter reduces the size of the point cloud by only keeping one point "
        "over step ones; with step varying in time from startStep to endStep, each iteration "
        "getting multiplied by stepMult."
    )
    Params = FixstepSamplingParams
    altered_features = "number of points"

    def __init__(self, params=None, **kwargs):
        super().__init__(params, **kwargs)
        self.step = self.params.start_step

    def init(self) -> None:
        self.step = self.params.start_step

    def filter(self, cloud: LabeledPointSet) -> LabeledPointSet:
        # The step advances on every call, empty clouds included
        out = super().filter(cloud)
        self._advance_step()
        return out

    def _filter(self, cloud: LabeledPointSet) -> LabeledPointSet:
        stride = max(1, int(self.step))
        logger.debug("%s keeps every %d-th point", self.name, stride)
        return cloud.select(np.arange(0, cloud.n_points, stride))

    def _advance_step(self) -> None:
        p = self.params
        delta = p.start_step * p.step_mult - p.start_step
        self.step *= p.step_mult
        if delta < 0 and self.step < p.end_step:
            self.step = p.end_step
        if delta > 0 and self.step > p.end_step:
            self.step = p.end_step
