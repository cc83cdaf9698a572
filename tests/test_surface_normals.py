"""Tests for SurfaceNormalDataPointsFilter and OrientNormalsDataPointsFilter."""

from pathlib import Path
import sys

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from registration_filters.core.errors import ConfigurationError, InputContractViolation
from registration_filters.core.point_set import LabeledPointSet
from registration_filters.filters.normals import (
    OrientNormalsDataPointsFilter,
    SurfaceNormalDataPointsFilter,
)
from registration_filters.neighbors.query import make_neighbor_factory


def _make_plane(n_side: int = 10, z: float = -2.0) -> LabeledPointSet:
    g = np.arange(n_side, dtype=float) * 0.5
    X, Y = np.meshgrid(g, g)
    pts = np.column_stack([X.ravel(), Y.ravel(), np.full(X.size, z)])
    return LabeledPointSet(pts)


def test_flat_square_recovers_vertical_normals():
    cloud = _make_plane()
    out = SurfaceNormalDataPointsFilter(knn=5).filter(cloud)

    normals = out.get_descriptor("normals")
    assert normals.shape == (cloud.n_points, 3)
    np.testing.assert_allclose(np.linalg.norm(normals, axis=1), 1.0, atol=1e-9)
    np.testing.assert_allclose(np.abs(normals[:, 2]), 1.0, atol=1e-9)
    np.testing.assert_array_equal(out.features, cloud.features)


def test_all_descriptors_have_expected_shapes():
    cloud = _make_plane()
    out = SurfaceNormalDataPointsFilter(
        knn=6,
        keepDensities=True,
        keepEigenValues=True,
        keepEigenVectors=True,
        keepMatchedIds=True,
    ).filter(cloud)
    n = cloud.n_points

    assert out.get_descriptor("densities").shape == (n, 1)
    assert np.all(out.get_descriptor("densities") > 0)
    assert out.get_descriptor("eigValues").shape == (n, 3)
    assert out.get_descriptor("eigVectors").shape == (n, 9)
    ids = out.get_descriptor("matchedIds")
    assert ids.shape == (n, 6)
    # A point is its own nearest neighbor
    np.testing.assert_array_equal(ids[:, 0], np.arange(n))


def test_planar_neighborhood_has_zero_smallest_eigenvalue():
    out = SurfaceNormalDataPointsFilter(keepEigenValues=True).filter(_make_plane())
    values = out.get_descriptor("eigValues")
    assert np.all(np.abs(values[:, 0]) < 1e-12)
    assert np.all(np.diff(values, axis=1) >= -1e-12)


def test_first_eigenvector_block_is_the_normal():
    out = SurfaceNormalDataPointsFilter(keepEigenVectors=True).filter(_make_plane())
    vectors = out.get_descriptor("eigVectors")
    np.testing.assert_allclose(vectors[:, :3], out.get_descriptor("normals"))


def test_knn_below_three_is_rejected():
    with pytest.raises(ConfigurationError):
        SurfaceNormalDataPointsFilter(knn=2)


def test_cloud_smaller_than_knn_still_gets_normals():
    pts = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 1.0, 0.0]])
    out = SurfaceNormalDataPointsFilter(knn=10).filter(LabeledPointSet(pts))
    np.testing.assert_allclose(np.abs(out.get_descriptor("normals")[:, 2]), 1.0, atol=1e-9)


def test_sklearn_backend_gives_same_normals():
    cloud = _make_plane()
    cloud.features[:, 2] += 0.01 * np.sin(cloud.features[:, 0])
    kd = SurfaceNormalDataPointsFilter(knn=9).filter(cloud)
    sk = SurfaceNormalDataPointsFilter(
        knn=9, neighbor_factory=make_neighbor_factory("sklearn")
    ).filter(cloud)
    np.testing.assert_allclose(
        np.abs(kd.get_descriptor("normals")), np.abs(sk.get_descriptor("normals")), atol=1e-6
    )


def test_orient_normals_faces_away_from_origin_by_default():
    cloud = SurfaceNormalDataPointsFilter().filter(_make_plane(z=-2.0))
    out = OrientNormalsDataPointsFilter().filter(cloud)
    np.testing.assert_allclose(out.get_descriptor("normals")[:, 2], -1.0, atol=1e-9)


def test_orient_normals_toward_center():
    cloud = SurfaceNormalDataPointsFilter().filter(_make_plane(z=-2.0))
    out = OrientNormalsDataPointsFilter(towardCenter=True).filter(cloud)
    np.testing.assert_allclose(out.get_descriptor("normals")[:, 2], 1.0, atol=1e-9)


def test_orient_normals_custom_reference():
    cloud = SurfaceNormalDataPointsFilter().filter(_make_plane(z=-2.0))
    out = OrientNormalsDataPointsFilter(reference=[0.0, 0.0, -10.0]).filter(cloud)
    np.testing.assert_allclose(out.get_descriptor("normals")[:, 2], 1.0, atol=1e-9)


def test_orient_normals_requires_normals():
    with pytest.raises(InputContractViolation):
        OrientNormalsDataPointsFilter().filter(_make_plane())


def test_orient_normals_rejects_mismatched_reference():
    cloud = SurfaceNormalDataPointsFilter().filter(_make_plane())
    with pytest.raises(InputContractViolation):
        OrientNormalsDataPointsFilter(reference=[0.0, 0.0]).filter(cloud)
