"""Tests for the single-pass filters (thresholds, quantile, sampling, identity)."""

from pathlib import Path
import sys

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from registration_filters.core.errors import ConfigurationError, InputContractViolation
from registration_filters.core.point_set import LabeledPointSet
from registration_filters.filters.basic import (
    FixstepSamplingDataPointsFilter,
    IdentityDataPointsFilter,
    MaxDistDataPointsFilter,
    MaxQuantileOnAxisDataPointsFilter,
    MinDistDataPointsFilter,
    RandomSamplingDataPointsFilter,
)


def _make_cloud(n: int = 500, seed: int = 0) -> LabeledPointSet:
    rng = np.random.default_rng(seed)
    pts = rng.uniform(-5.0, 5.0, size=(n, 3))
    return LabeledPointSet(pts, descriptors={"ids": np.arange(n, dtype=float)})


def _ids(cloud: LabeledPointSet) -> np.ndarray:
    return cloud.get_descriptor("ids")[:, 0].astype(int)


def test_identity_returns_equal_copy():
    cloud = _make_cloud()
    out = IdentityDataPointsFilter().filter(cloud)
    np.testing.assert_array_equal(out.features, cloud.features)
    assert out.features is not cloud.features


@pytest.mark.parametrize("dim", [0, 1, 2])
def test_max_dist_on_axis_keeps_exactly_the_points_within_bound(dim):
    cloud = _make_cloud()
    out = MaxDistDataPointsFilter({"dim": str(dim), "maxDist": "2.5"}).filter(cloud)

    expected = np.flatnonzero(np.abs(cloud.features[:, dim]) < 2.5)
    np.testing.assert_array_equal(_ids(out), expected)
    assert np.all(np.abs(out.features[:, dim]) < 2.5)


def test_max_dist_radius_sentinel():
    cloud = _make_cloud()
    out = MaxDistDataPointsFilter(dim="radius", maxDist=4.0).filter(cloud)
    radius = np.linalg.norm(cloud.features, axis=1)
    np.testing.assert_array_equal(_ids(out), np.flatnonzero(radius < 4.0))


def test_min_dist_on_radius_and_axis():
    cloud = _make_cloud()
    out = MinDistDataPointsFilter(minDist=4.0).filter(cloud)
    radius = np.linalg.norm(cloud.features, axis=1)
    np.testing.assert_array_equal(_ids(out), np.flatnonzero(radius > 4.0))

    out_z = MinDistDataPointsFilter(dim=2, min_dist=1.0).filter(cloud)
    assert np.all(np.abs(out_z.features[:, 2]) > 1.0)
    assert out_z.n_points == int(np.count_nonzero(np.abs(cloud.features[:, 2]) > 1.0))


def test_dist_filter_rejects_axis_beyond_dimension():
    flt = MaxDistDataPointsFilter(dim=3, maxDist=1.0)
    with pytest.raises(InputContractViolation):
        flt.filter(_make_cloud())


@pytest.mark.parametrize(
    "params",
    [
        {"maxDist": -1.0},
        {"dim": -2},
        {"maxDist": "abc"},
        {"unknownKey": 1},
    ],
)
def test_invalid_parameters_fail_at_construction(params):
    with pytest.raises(ConfigurationError):
        MaxDistDataPointsFilter(params)


def test_max_quantile_keeps_lowest_ratio_in_input_order():
    cloud = _make_cloud(n=101)
    out = MaxQuantileOnAxisDataPointsFilter(dim=1, ratio=0.3).filter(cloud)

    assert out.n_points == int(np.floor(101 * 0.3))
    kept = _ids(out)
    assert np.all(np.diff(kept) > 0)
    threshold = np.sort(cloud.features[:, 1])[out.n_points]
    assert np.all(out.features[:, 1] < threshold)


def test_max_quantile_ties_resolved_by_index():
    pts = np.zeros((6, 3))
    pts[:, 0] = [1.0, 0.0, 1.0, 1.0, 0.0, 1.0]
    cloud = LabeledPointSet(pts, descriptors={"ids": np.arange(6, dtype=float)})
    out = MaxQuantileOnAxisDataPointsFilter(dim=0, ratio=0.5).filter(cloud)
    # Two zeros, then the first 1.0 by index
    np.testing.assert_array_equal(_ids(out), [0, 1, 4])


def test_max_quantile_ratio_bounds():
    with pytest.raises(ConfigurationError):
        MaxQuantileOnAxisDataPointsFilter(ratio=1.0)
    with pytest.raises(ConfigurationError):
        MaxQuantileOnAxisDataPointsFilter(ratio=0.0)


def test_random_sampling_with_seed_is_reproducible():
    cloud = _make_cloud(n=2000)
    a = RandomSamplingDataPointsFilter(prob=0.25, seed=7).filter(cloud)
    b = RandomSamplingDataPointsFilter(prob=0.25, seed=7).filter(cloud)

    np.testing.assert_array_equal(_ids(a), _ids(b))
    assert 350 < a.n_points < 650


def test_random_sampling_extreme_probabilities():
    cloud = _make_cloud(n=300)
    assert RandomSamplingDataPointsFilter(prob=1.0).filter(cloud).n_points == 300
    assert RandomSamplingDataPointsFilter(prob=0.0).filter(cloud).n_points == 0


def test_fixstep_unit_step_is_identity():
    cloud = _make_cloud(n=50)
    flt = FixstepSamplingDataPointsFilter(startStep=1, endStep=1, stepMult=1)
    for _ in range(3):
        out = flt.filter(cloud)
        np.testing.assert_array_equal(out.features, cloud.features)


def test_fixstep_step_grows_until_end_step_and_resets():
    cloud = _make_cloud(n=100)
    flt = FixstepSamplingDataPointsFilter(startStep=2, endStep=5, stepMult=2)

    np.testing.assert_array_equal(_ids(flt.filter(cloud)), np.arange(0, 100, 2))
    assert flt.step == 4
    np.testing.assert_array_equal(_ids(flt.filter(cloud)), np.arange(0, 100, 4))
    assert flt.step == 5  # clamped
    np.testing.assert_array_equal(_ids(flt.filter(cloud)), np.arange(0, 100, 5))

    flt.init()
    assert flt.step == 2


def test_fixstep_shrinking_step_clamped_at_end_step():
    flt = FixstepSamplingDataPointsFilter(startStep=8, endStep=3, stepMult=0.5)
    cloud = _make_cloud(n=40)
    flt.filter(cloud)
    assert flt.step == 4
    flt.filter(cloud)
    assert flt.step == 3


def test_filters_pass_empty_cloud_through():
    empty = LabeledPointSet(np.empty((0, 3)))
    for flt in (
        IdentityDataPointsFilter(),
        MaxDistDataPointsFilter(),
        MaxQuantileOnAxisDataPointsFilter(),
        FixstepSamplingDataPointsFilter(),
    ):
        assert flt.filter(empty).n_points == 0


def test_in_place_filter_matches_filter():
    cloud = _make_cloud()
    expected = MaxDistDataPointsFilter(maxDist=3.0).filter(cloud)
    MaxDistDataPointsFilter(maxDist=3.0).in_place_filter(cloud)
    np.testing.assert_array_equal(cloud.features, expected.features)
    np.testing.assert_array_equal(_ids(cloud), _ids(expected))


def test_fixstep_step_advances_on_empty_cloud():
    flt = FixstepSamplingDataPointsFilter(startStep=2, endStep=8, stepMult=2)
    flt.filter(LabeledPointSet(np.empty((0, 3))))
    assert flt.step == 4

    out = flt.filter(_make_cloud(n=20))
    np.testing.assert_array_equal(_ids(out), np.arange(0, 20, 4))
    assert flt.step == 8
