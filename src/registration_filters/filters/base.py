"""
Base classes for data points filters.

Architecture:
- FilterParams: pydantic schema of a filter's named parameters (default,
  bounds and type-specific parsing per key), validated at construction
- DataPointsFilter: abstract base class, ``filter(cloud) -> cloud``
- Registry: canonical filter name -> class, used by the config-driven chain
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from ..core.errors import ConfigurationError
from ..core.point_set import LabeledPointSet
from ..neighbors.query import NeighborFactory, NeighborQuery
from ..utils.logging import setup_logger

logger = setup_logger(__name__)


class FilterParams(BaseModel):
    """
    Parameter schema shared by all filters.

    Keys are accepted in camelCase ("maxDist") or snake_case ("max_dist");
    unknown keys are rejected. String values are parsed to the declared type
    ("5" -> 5, "inf" -> inf, "1"/"0" -> True/False).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class DataPointsFilter(ABC):
    """
    Abstract base class for all filters.

    Subclasses declare their parameter schema in ``Params`` and their
    descriptor contract in the class attributes below, and implement
    ``_filter``. Filters never modify their input.
    """

    name: ClassVar[str] = "DataPointsFilter"
    description: ClassVar[str] = ""
    Params: ClassVar[Type[FilterParams]] = FilterParams

    required_descriptors: ClassVar[Tuple[str, ...]] = ()
    produced_descriptors: ClassVar[Tuple[str, ...]] = ()
    altered_descriptors: ClassVar[Tuple[str, ...]] = ()
    altered_features: ClassVar[str] = "none"

    uses_neighbors: ClassVar[bool] = False

    def __init__(
        self,
        params: Optional[Mapping[str, Any]] = None,
        *,
        neighbor_factory: Optional[NeighborFactory] = None,
        **kwargs: Any,
    ):
        """
        Args:
            params: Named parameter mapping (string keys, values or strings)
            neighbor_factory: Callable building a NeighborQuery over an (N, D)
                array; defaults to the scipy KD-Tree backend
            **kwargs: Additional parameters, merged over ``params``
        """
        raw: Dict[str, Any] = {**dict(params or {}), **kwargs}
        try:
            self.params = self.Params.model_validate(raw)
        except ValidationError as e:
            # Re-raise with context to help users fix their parameters
            raise ConfigurationError(f"Invalid parameters for {self.name}: {e}") from e
        self._neighbor_factory: NeighborFactory = neighbor_factory or NeighborQuery
        logger.debug("Created %s with %s", self.name, self.get_params())

    def get_params(self) -> dict:
        """Validated parameters under their camelCase names."""
        return self.params.model_dump(by_alias=True)

    def init(self) -> None:
        """Reset per-registration state. No-op for stateless filters."""

    def filter(self, cloud: LabeledPointSet) -> LabeledPointSet:
        """Apply the filter and return a new point set."""
        cloud.require_descriptors(self.required_descriptors, owner=self.name)
        if cloud.n_points == 0:
            logger.debug("%s called on an empty point set; passing through", self.name)
            return cloud.copy()
        return self._filter(cloud)

    def in_place_filter(self, cloud: LabeledPointSet) -> None:
        """Apply the filter, storing the result into ``cloud``."""
        cloud.replace_contents(self.filter(cloud))

    def __call__(self, cloud: LabeledPointSet) -> LabeledPointSet:
        return self.filter(cloud)

    @abstractmethod
    def _filter(self, cloud: LabeledPointSet) -> LabeledPointSet:
        """Core logic; ``cloud`` is non-empty and has the required descriptors."""
        ...

    def _neighbors(self, points):
        return self._neighbor_factory(points)

    def __repr__(self) -> str:
        return f"{self.name}({self.get_params()})"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_REGISTRY: Dict[str, Type[DataPointsFilter]] = {}


def register_filter(cls: Type[DataPointsFilter]) -> Type[DataPointsFilter]:
    """Class decorator adding a filter to the registry under ``cls.name``."""
    if cls.name in _REGISTRY and _REGISTRY[cls.name] is not cls:
        raise ValueError(f"Filter name '{cls.name}' registered twice")
    _REGISTRY[cls.name] = cls
    return cls


def get_filter_class(name: str) -> Type[DataPointsFilter]:
    try:
        return _REGISTRY[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown filter '{name}'. Available: {sorted(_REGISTRY)}"
        ) from None


def create_filter(
    name: str,
    params: Optional[Mapping[str, Any]] = None,
    neighbor_factory: Optional[NeighborFactory] = None,
) -> DataPointsFilter:
    """Instantiate a registered filter by name."""
    cls = get_filter_class(name)
    if cls.uses_neighbors:
        return cls(params, neighbor_factory=neighbor_factory)
    return cls(params)


def available_filters() -> Dict[str, str]:
    """Registered filter names with their one-line descriptions."""
    return {name: cls.description for name, cls in sorted(_REGISTRY.items())}
