"""Tests for the local geometry (scatter matrix eigen-decomposition) estimator."""

from pathlib import Path
import sys

import numpy as np

sys.path.append(str(Path(__file__).parent.parent / "src"))

from registration_filters.geometry.local_geometry import (
    LocalGeometryEstimator,
    density_from_radius,
    unit_ball_volume,
)


def _plane_patch(n: int = 50, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    xy = rng.uniform(-1.0, 1.0, size=(n, 2))
    return np.column_stack([xy, np.full(n, 2.0)])


def test_planar_neighborhood_gives_plane_normal():
    geo = LocalGeometryEstimator().estimate(_plane_patch())

    assert abs(geo.eigen.values[0]) < 1e-12
    assert np.all(np.diff(geo.eigen.values) >= 0)
    assert abs(abs(geo.normal[2]) - 1.0) < 1e-9
    np.testing.assert_allclose(geo.eigen.vectors.T @ geo.eigen.vectors, np.eye(3), atol=1e-10)


def test_duplicate_points_do_not_fail():
    pts = np.tile([[1.0, 2.0, 3.0]], (5, 1))
    geo = LocalGeometryEstimator().estimate(pts)

    np.testing.assert_allclose(geo.eigen.values, 0.0, atol=1e-15)
    assert abs(np.linalg.norm(geo.normal) - 1.0) < 1e-12
    # Zero radius: density falls back to zero
    assert geo.density == 0.0


def test_fewer_than_three_points_flagged_degenerate():
    geo = LocalGeometryEstimator().estimate(np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]]))
    assert geo.degenerate
    assert abs(np.linalg.norm(geo.normal) - 1.0) < 1e-12
    # The normal is orthogonal to the only direction present
    assert abs(geo.normal[0]) < 1e-12


def test_density_uses_largest_distance_from_query():
    pts = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 2.0, 0.0]])
    geo = LocalGeometryEstimator().estimate(pts, query=pts[0])
    expected = 3.0 / (4.0 / 3.0 * np.pi * 2.0 ** 3)
    assert abs(geo.density - expected) < 1e-12


def test_unit_ball_volume_in_two_and_three_dimensions():
    assert abs(unit_ball_volume(2) - np.pi) < 1e-12
    assert abs(unit_ball_volume(3) - 4.0 / 3.0 * np.pi) < 1e-12
    np.testing.assert_allclose(density_from_radius([3, 3], [0.0, 1.0], 2), [0.0, 3.0 / np.pi])


def test_batch_matches_single_estimates_with_mask():
    rng = np.random.default_rng(3)
    nb = rng.normal(size=(4, 6, 3))
    valid = np.ones((4, 6), dtype=bool)
    valid[2, 4:] = False
    nb[2, 4:] = 1e6  # placeholders must be ignored

    est = LocalGeometryEstimator()
    batch = est.estimate_batch(nb, valid=valid)

    for i in range(4):
        single = est.estimate(nb[i][valid[i]])
        np.testing.assert_allclose(batch["eigValues"][i], single.eigen.values, atol=1e-10)
        np.testing.assert_allclose(batch["centroids"][i], single.centroid, atol=1e-10)
        assert abs(abs(batch["normals"][i] @ single.normal) - 1.0) < 1e-8
    assert list(batch["counts"]) == [6, 6, 4, 6]
