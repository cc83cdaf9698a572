"""
Labeled point set

Point coordinates ("features") plus named per-point attribute matrices
("descriptors") that stay index-aligned with the features.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping

import numpy as np

from .errors import InputContractViolation

NORMALS = "normals"
DENSITIES = "densities"
EIG_VALUES = "eigValues"
EIG_VECTORS = "eigVectors"
MATCHED_IDS = "matchedIds"
COVARIANCE = "covariance"
WEIGHT_SUM = "weightSum"
NB_POINTS = "nbPoints"


def _as_descriptor(name: str, values: np.ndarray, n_points: int) -> np.ndarray:
    arr = np.asarray(values)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    if arr.ndim != 2:
        raise InputContractViolation(
            f"Descriptor '{name}' must be 1-D or 2-D, got shape {arr.shape}"
        )
    if arr.shape[0] != n_points:
        raise InputContractViolation(
            f"Descriptor '{name}' has {arr.shape[0]} rows but the point set has {n_points} points"
        )
    return arr


@dataclass
class LabeledPointSet:
    """
    Point coordinates with aligned per-point descriptors.

    Attributes:
        features: (N, D) array of point coordinates
        descriptors: Mapping from descriptor name to an (N, k) array. Row i of
            every descriptor belongs to point i of ``features``.
    """

    features: np.ndarray
    descriptors: Dict[str, np.ndarray] = field(default_factory=dict)

    def __post_init__(self) -> None:
        feats = np.asarray(self.features, dtype=float)
        if feats.ndim == 1 and feats.size == 0:
            feats = feats.reshape(0, 3)
        if feats.ndim != 2:
            raise InputContractViolation(
                f"Features must be an (N, D) array, got shape {feats.shape}"
            )
        self.features = feats
        self.descriptors = {
            name: _as_descriptor(name, values, len(feats))
            for name, values in dict(self.descriptors).items()
        }

    # -- Basic properties -------------------------------------------------

    @property
    def n_points(self) -> int:
        return int(self.features.shape[0])

    @property
    def dim(self) -> int:
        return int(self.features.shape[1])

    def __len__(self) -> int:
        return self.n_points

    def descriptor_names(self) -> list[str]:
        return list(self.descriptors.keys())

    def has_descriptor(self, name: str) -> bool:
        return name in self.descriptors

    def get_descriptor(self, name: str) -> np.ndarray:
        """Return the (N, k) matrix of a descriptor or raise InputContractViolation."""
        try:
            return self.descriptors[name]
        except KeyError:
            raise InputContractViolation(
                f"Required descriptor '{name}' is missing "
                f"(available: {sorted(self.descriptors)})"
            ) from None

    def require_descriptors(self, names: Iterable[str], *, owner: str = "filter") -> None:
        missing = [n for n in names if n not in self.descriptors]
        if missing:
            raise InputContractViolation(
                f"{owner} requires descriptor(s) {missing}; "
                f"available: {sorted(self.descriptors)}"
            )

    # -- Derivation ---------------------------------------------------------

    def copy(self) -> "LabeledPointSet":
        return LabeledPointSet(
            features=self.features.copy(),
            descriptors={k: v.copy() for k, v in self.descriptors.items()},
        )

    def select(self, selector: np.ndarray) -> "LabeledPointSet":
        """
        Keep a subset of points, in the order given by ``selector``.

        Args:
            selector: Boolean mask of length N or an array of point indices

        Returns:
            New point set with features and all descriptors indexed identically
        """
        sel = np.asarray(selector)
        if sel.dtype == bool and sel.shape != (self.n_points,):
            raise InputContractViolation(
                f"Boolean selector has shape {sel.shape}, expected ({self.n_points},)"
            )
        return LabeledPointSet(
            features=self.features[sel].copy(),
            descriptors={k: v[sel].copy() for k, v in self.descriptors.items()},
        )

    def with_descriptors(self, **new: np.ndarray) -> "LabeledPointSet":
        """Return a copy with descriptors added or replaced."""
        merged = {k: v.copy() for k, v in self.descriptors.items()}
        merged.update(new)
        return LabeledPointSet(features=self.features.copy(), descriptors=merged)

    def without_descriptors(self, names: Iterable[str]) -> "LabeledPointSet":
        drop = set(names)
        return LabeledPointSet(
            features=self.features.copy(),
            descriptors={k: v.copy() for k, v in self.descriptors.items() if k not in drop},
        )

    def replace_contents(self, other: "LabeledPointSet") -> None:
        """Take over the features and descriptors of ``other`` (in-place filtering)."""
        self.features = other.features
        self.descriptors = other.descriptors

    @classmethod
    def from_arrays(
        cls,
        features: np.ndarray,
        descriptors: Mapping[str, np.ndarray] | None = None,
    ) -> "LabeledPointSet":
        return cls(features=np.asarray(features, dtype=float), descriptors=dict(descriptors or {}))

    def __repr__(self) -> str:
        descs = ", ".join(f"{k}:{v.shape[1]}" for k, v in self.descriptors.items())
        return f"LabeledPointSet({self.n_points} pts, dim={self.dim}, descriptors=[{descs}])"
