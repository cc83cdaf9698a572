"""
Filter chain

Feeds a point set through an ordered list of filters; each filter's output
is the next filter's input.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..core.point_set import LabeledPointSet
from ..filters.base import DataPointsFilter, create_filter
from ..neighbors.query import make_neighbor_factory
from ..utils.config import AppConfig, load_config
from ..utils.logging import set_package_log_level, setup_logger

logger = setup_logger(__name__)


@dataclass
class ChainStepStats:
    """Point counts and timing of one filter in a chain run."""

    name: str
    points_before: int
    points_after: int
    duration_s: float
    params: dict = field(default_factory=dict)

    @property
    def points_removed(self) -> int:
        return self.points_before - self.points_after

    @property
    def retention_rate(self) -> float:
        if self.points_before == 0:
            return 1.0
        return self.points_after / self.points_before


class FilterChain:
    """
    Ordered list of filters applied in sequence.

    Usage:
        chain = FilterChain([
            MaxDistDataPointsFilter(maxDist=30.0),
            SamplingSurfaceNormalDataPointsFilter(binSize=10),
            OrientNormalsDataPointsFilter(),
        ])
        filtered = chain.apply(cloud)
    """

    def __init__(self, filters: Optional[List[DataPointsFilter]] = None):
        self.filters: List[DataPointsFilter] = list(filters or [])
        self.last_stats: List[ChainStepStats] = []

    def add(self, flt: DataPointsFilter) -> "FilterChain":
        """Append a filter. Returns self for chaining."""
        self.filters.append(flt)
        return self

    def init(self) -> None:
        """Reset the per-registration state of every filter."""
        for flt in self.filters:
            flt.init()

    def apply(self, cloud: LabeledPointSet) -> LabeledPointSet:
        self.last_stats = []
        current = cloud
        t_chain = time.time()
        for flt in self.filters:
            n_before = current.n_points
            t0 = time.time()
            current = flt.filter(current)
            duration = time.time() - t0
            self.last_stats.append(
                ChainStepStats(
                    name=flt.name,
                    points_before=n_before,
                    points_after=current.n_points,
                    duration_s=duration,
                    params=flt.get_params(),
                )
            )
            logger.info("%s: %d -> %d points (%.3f s)", flt.name, n_before, current.n_points, duration)

        logger.debug("Filter chain of %d filters completed in %.3f s", len(self.filters), time.time() - t_chain)
        return current

    def __call__(self, cloud: LabeledPointSet) -> LabeledPointSet:
        return self.apply(cloud)

    def __len__(self) -> int:
        return len(self.filters)

    @classmethod
    def from_config(cls, config: AppConfig | str | Path | None = None) -> "FilterChain":
        """
        Build a chain from an AppConfig or a YAML file.

        Entries with ``enabled: false`` are skipped. The logging section is
        applied to the package loggers.
        """
        cfg = config if isinstance(config, AppConfig) else load_config(config)
        set_package_log_level(cfg.logging.level, cfg.logging.file)

        factory = make_neighbor_factory(cfg.neighbors.backend, cfg.neighbors.leaf_size)
        chain = cls()
        for entry in cfg.filters:
            if not entry.enabled:
                logger.debug("Skipping disabled filter %s", entry.name)
                continue
            chain.add(create_filter(entry.name, entry.params, neighbor_factory=factory))
        logger.info("Built filter chain: %s", [f.name for f in chain.filters])
        return chain

    def __repr__(self) -> str:
        return f"FilterChain({[f.name for f in self.filters]})"
