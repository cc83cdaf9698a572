"""
Nearest neighbor search wrapper.

Provides a unified k-NN / radius query interface over a fixed point set:
- kdtree: scipy cKDTree (supports approximate search and a distance bound)
- sklearn: sklearn NearestNeighbors with a KD-Tree (exact search)

Queries are read-only; the index is never modified after construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Literal

import numpy as np
from scipy.spatial import cKDTree
from sklearn.neighbors import NearestNeighbors as SklearnNN

from ..core.errors import ConfigurationError
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

Backend = Literal["kdtree", "sklearn"]
NeighborFactory = Callable[[np.ndarray], "NeighborQuery"]


@dataclass
class NeighborResult:
    """
    Result of a k-NN query.

    Attributes:
        indices: (Q, k) neighbor indices sorted by ascending distance; -1 marks
            a missing neighbor (fewer candidates than k within max_dist)
        distances: (Q, k) Euclidean distances; inf for missing neighbors
    """

    indices: np.ndarray
    distances: np.ndarray

    @property
    def valid(self) -> np.ndarray:
        return self.indices >= 0

    def counts(self) -> np.ndarray:
        return self.valid.sum(axis=1)

    def row(self, i: int) -> tuple[np.ndarray, np.ndarray]:
        """Valid (indices, distances) of query i."""
        mask = self.indices[i] >= 0
        return self.indices[i][mask], self.distances[i][mask]


class NeighborQuery:
    """
    k-NN and radius queries over a point set.

    Parameters
    ----------
    points : np.ndarray, shape (n_points, n_dims)
        Reference points
    backend : {'kdtree', 'sklearn'}, default='kdtree'
        Search implementation
    leaf_size : int, default=16
        Leaf size of the tree
    """

    def __init__(self, points: np.ndarray, backend: Backend = "kdtree", leaf_size: int = 16):
        if backend not in ("kdtree", "sklearn"):
            raise ConfigurationError(f"Unknown neighbor backend '{backend}'")
        self.points = np.asarray(points, dtype=float)
        self.backend = backend
        self.leaf_size = leaf_size
        self._tree = None
        self._model = None

        n = len(self.points)
        if n == 0:
            logger.debug("NeighborQuery built on an empty point set")
        elif backend == "kdtree":
            self._tree = cKDTree(self.points, leafsize=leaf_size)
        else:
            self._model = SklearnNN(algorithm="kd_tree", leaf_size=leaf_size).fit(self.points)

    @property
    def n_points(self) -> int:
        return len(self.points)

    def knn_search(
        self,
        queries: np.ndarray,
        k: int,
        epsilon: float = 0.0,
        max_dist: float = np.inf,
    ) -> NeighborResult:
        """
        Find up to k nearest neighbors of each query point.

        Args:
            queries: (Q, D) query coordinates
            k: Number of neighbors requested (a query point that belongs to the
                reference set is returned as its own first neighbor)
            epsilon: Approximation factor; returned neighbors are within
                (1 + epsilon) of the true k-th distance. Ignored by 'sklearn'.
            max_dist: Neighbors farther than this are reported as missing

        Returns:
            NeighborResult with arrays of shape (Q, k)
        """
        queries = np.atleast_2d(np.asarray(queries, dtype=float))
        n_q = len(queries)
        indices = np.full((n_q, k), -1, dtype=np.int64)
        distances = np.full((n_q, k), np.inf)
        if n_q == 0 or self.n_points == 0 or k <= 0:
            return NeighborResult(indices, distances)

        if self._tree is not None:
            dist, idx = self._tree.query(
                queries,
                k=k,
                eps=epsilon,
                distance_upper_bound=max_dist if np.isfinite(max_dist) else np.inf,
            )
            dist = np.asarray(dist, dtype=float).reshape(n_q, k)
            idx = np.asarray(idx).reshape(n_q, k)
            # cKDTree reports missing neighbors with index n and infinite distance
            found = idx < self.n_points
            indices[found] = idx[found]
            distances[found] = dist[found]
        else:
            if epsilon > 0:
                logger.debug("sklearn backend performs exact search; epsilon=%g ignored", epsilon)
            k_eff = min(k, self.n_points)
            dist, idx = self._model.kneighbors(queries, n_neighbors=k_eff)
            found = dist < max_dist if np.isfinite(max_dist) else np.ones_like(dist, dtype=bool)
            sub_idx = np.where(found, idx, -1)
            sub_dist = np.where(found, dist, np.inf)
            indices[:, :k_eff] = sub_idx
            distances[:, :k_eff] = sub_dist

        # Strict upper bound, same semantics for both backends
        if np.isfinite(max_dist):
            too_far = distances >= max_dist
            indices[too_far] = -1
            distances[too_far] = np.inf

        return NeighborResult(indices, distances)

    def radius_search(self, queries: np.ndarray, radius: float) -> List[np.ndarray]:
        """Indices of all points within radius of each query, sorted by distance."""
        queries = np.atleast_2d(np.asarray(queries, dtype=float))
        if self.n_points == 0:
            return [np.empty(0, dtype=np.int64) for _ in range(len(queries))]

        out: List[np.ndarray] = []
        if self._tree is not None:
            for q, inds in zip(queries, self._tree.query_ball_point(queries, r=radius)):
                inds = np.asarray(inds, dtype=np.int64)
                d = np.linalg.norm(self.points[inds] - q, axis=1)
                out.append(inds[np.lexsort((inds, d))])
        else:
            _, ind_lists = self._model.radius_neighbors(queries, radius=radius, sort_results=True)
            out = [np.asarray(inds, dtype=np.int64) for inds in ind_lists]
        return out

    @staticmethod
    def all_points_as_neighbors(first: int, last: int) -> np.ndarray:
        """Treat the index range [first, last) as one neighborhood."""
        return np.arange(first, last, dtype=np.int64)


def make_neighbor_factory(backend: Backend = "kdtree", leaf_size: int = 16) -> NeighborFactory:
    """Build a callable creating NeighborQuery objects with fixed settings."""
    if backend not in ("kdtree", "sklearn"):
        raise ConfigurationError(f"Unknown neighbor backend '{backend}'")

    def factory(points: np.ndarray) -> NeighborQuery:
        return NeighborQuery(points, backend=backend, leaf_size=leaf_size)

    return factory
