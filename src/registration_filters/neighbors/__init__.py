"""
Nearest Neighbor Search Module

k-NN and radius queries used by the normal estimation and compression filters.
"""

from .query import NeighborQuery, NeighborResult, make_neighbor_factory

__all__ = [
    "NeighborQuery",
    "NeighborResult",
    "make_neighbor_factory",
]
