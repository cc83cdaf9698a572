"""
Local geometry estimation

Eigen-decomposition of the scatter (covariance) matrix of point
neighborhoods. The eigenvector of the smallest eigenvalue is the surface
normal estimate. Works for single neighborhoods and for stacked batches of
neighborhoods with a validity mask (neighborhoods with fewer points than
requested).

Degenerate neighborhoods (fewer than three points, duplicated points) are
not errors: the symmetric eigen-decomposition is defined for singular
matrices, so an orthonormal basis is always returned, with eigenvalues
close to zero. Callers must not divide by the smallest eigenvalue.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..utils.logging import setup_logger

logger = setup_logger(__name__)

MIN_NEIGHBORS = 3


@dataclass
class EigenDecomposition:
    """
    Sorted eigen-decomposition of a symmetric D x D matrix.

    Attributes:
        values: (D,) eigenvalues, ascending
        vectors: (D, D) orthonormal eigenvectors as columns, matching ``values``
    """

    values: np.ndarray
    vectors: np.ndarray

    @property
    def normal(self) -> np.ndarray:
        """Eigenvector of the smallest eigenvalue."""
        return self.vectors[:, 0]

    def flat_vectors(self) -> np.ndarray:
        """Eigenvectors stored one after another, ascending eigenvalue order."""
        return self.vectors.T.reshape(-1)


@dataclass
class LocalGeometry:
    centroid: np.ndarray
    eigen: EigenDecomposition
    density: float
    n_points: int

    @property
    def normal(self) -> np.ndarray:
        return self.eigen.normal

    @property
    def degenerate(self) -> bool:
        return self.n_points < MIN_NEIGHBORS


def unit_ball_volume(dim: int) -> float:
    """Volume of the unit ball in ``dim`` dimensions."""
    return math.pi ** (dim / 2.0) / math.gamma(dim / 2.0 + 1.0)


def density_from_radius(count: np.ndarray | int, radius: np.ndarray | float, dim: int) -> np.ndarray:
    """
    Points per unit volume inside a ball of the given radius.

    Zero radius (all neighbors on top of each other) yields a density of 0.
    """
    count = np.asarray(count, dtype=float)
    radius = np.asarray(radius, dtype=float)
    volume = unit_ball_volume(dim) * np.power(radius, dim)
    with np.errstate(divide="ignore", invalid="ignore"):
        density = np.where(volume > 0, count / volume, 0.0)
    return density


def sorted_eigh(matrices: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Symmetric eigen-decomposition of one (D, D) or many (M, D, D) matrices.

    ``np.linalg.eigh`` already returns eigenvalues in ascending order with
    orthonormal eigenvectors as columns.
    """
    sym = 0.5 * (matrices + np.swapaxes(matrices, -1, -2))
    values, vectors = np.linalg.eigh(sym)
    return values, vectors


class LocalGeometryEstimator:
    """
    Shape analysis of point neighborhoods.

    The scatter matrix is the covariance of the neighbor positions about their
    centroid, normalised by the number of neighbors.
    """

    @staticmethod
    def scatter(points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Return (centroid, covariance) of an (n, D) point array."""
        pts = np.asarray(points, dtype=float)
        centroid = pts.mean(axis=0)
        centered = pts - centroid
        cov = (centered.T @ centered) / max(1, len(pts))
        return centroid, cov

    @staticmethod
    def decompose(matrix: np.ndarray) -> EigenDecomposition:
        values, vectors = sorted_eigh(np.asarray(matrix, dtype=float))
        return EigenDecomposition(values=values, vectors=vectors)

    def estimate(
        self,
        neighbors: np.ndarray,
        query: Optional[np.ndarray] = None,
    ) -> LocalGeometry:
        """
        Analyse one neighborhood.

        Args:
            neighbors: (n, D) coordinates of the neighborhood
            query: Point the neighborhood belongs to. The density radius is the
                largest distance from this point to a neighbor; when omitted the
                centroid is used.

        Returns:
            LocalGeometry with centroid, sorted eigen-decomposition and density
        """
        pts = np.asarray(neighbors, dtype=float)
        dim = pts.shape[1]
        if len(pts) == 0:
            return LocalGeometry(
                centroid=np.full(dim, np.nan),
                eigen=EigenDecomposition(np.zeros(dim), np.eye(dim)),
                density=0.0,
                n_points=0,
            )

        centroid, cov = self.scatter(pts)
        eigen = self.decompose(cov)
        center = centroid if query is None else np.asarray(query, dtype=float)
        radius = float(np.max(np.linalg.norm(pts - center, axis=1)))
        density = float(density_from_radius(len(pts), radius, dim))
        return LocalGeometry(centroid=centroid, eigen=eigen, density=density, n_points=len(pts))

    def estimate_batch(
        self,
        neighborhoods: np.ndarray,
        valid: Optional[np.ndarray] = None,
        radii: Optional[np.ndarray] = None,
    ) -> dict[str, np.ndarray]:
        """
        Analyse many neighborhoods at once.

        Args:
            neighborhoods: (M, k, D) neighbor coordinates
            valid: Optional (M, k) mask of real neighbors; masked rows are ignored
            radii: Optional (M,) neighborhood radii used for the density

        Returns:
            Dict with 'centroids' (M, D), 'eigValues' (M, D), 'eigVectors'
            (M, D, D, eigenvectors as columns), 'normals' (M, D), 'counts' (M,)
            and 'densities' (M,) when radii are given
        """
        nb = np.asarray(neighborhoods, dtype=float)
        m, k, dim = nb.shape
        if valid is None:
            valid = np.ones((m, k), dtype=bool)
        w = valid.astype(float)
        counts = w.sum(axis=1)
        safe_counts = np.maximum(counts, 1.0)

        # Masked entries may hold placeholder coordinates; zero them before summing
        nb = np.where(valid[:, :, None], nb, 0.0)
        centroids = nb.sum(axis=1) / safe_counts[:, None]
        centered = (nb - centroids[:, None, :]) * w[:, :, None]
        covs = np.einsum("mki,mkj->mij", centered, centered) / safe_counts[:, None, None]

        values, vectors = sorted_eigh(covs)

        n_degenerate = int(np.count_nonzero(counts < MIN_NEIGHBORS))
        if n_degenerate:
            logger.debug(
                "%d of %d neighborhoods have fewer than %d points; eigen-decomposition is best-effort",
                n_degenerate, m, MIN_NEIGHBORS,
            )

        out = {
            "centroids": centroids,
            "eigValues": values,
            "eigVectors": vectors,
            "normals": vectors[:, :, 0],
            "counts": counts.astype(np.int64),
        }
        if radii is not None:
            out["densities"] = density_from_radius(counts, radii, dim)
        return out
