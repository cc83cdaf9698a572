"""
Configuration management for registration-filters.

Provides a typed pydantic model and YAML loader with sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, List, Any, Dict

from pydantic import BaseModel, Field, ValidationError
import yaml

from ..core.errors import ConfigurationError


# -----------------------
# Typed config structures
# -----------------------


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class NeighborsConfig(BaseModel):
    backend: Literal["kdtree", "sklearn"] = Field(
        default="kdtree",
        description="Nearest-neighbor backend: scipy cKDTree ('kdtree') or sklearn NearestNeighbors ('sklearn')",
    )
    leaf_size: int = Field(default=16, ge=1, description="Leaf size of the search tree")


class FilterEntryConfig(BaseModel):
    name: str = Field(description="Registered filter name, e.g. 'SurfaceNormalDataPointsFilter'")
    enabled: bool = Field(default=True)
    params: Dict[str, Any] = Field(default_factory=dict)


class AppConfig(BaseModel):
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    neighbors: NeighborsConfig = Field(default_factory=NeighborsConfig)
    filters: List[FilterEntryConfig] = Field(default_factory=list)


# -----------------------
# Loader
# -----------------------


def _project_root() -> Path:
    """
    Resolve the repository root directory.

    File is at: repo_root/src/registration_filters/utils/config.py
    parents sequence:
      0 -> .../src/registration_filters/utils
      1 -> .../src/registration_filters
      2 -> .../src
      3 -> repo_root   <-- correct root
    """
    return Path(__file__).resolve().parents[3]


def load_config(path: Optional[str | Path] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Load configuration from YAML into a typed AppConfig.

    Search order when path is None:
    1) repo_root/config/default.yaml
    2) if missing and allow_missing=True: return default AppConfig()

    Args:
        path: Explicit YAML file path.
        allow_missing: If True, returns defaults when file missing; otherwise raises.

    Returns:
        AppConfig instance
    """
    cfg_path: Path
    if path is None:
        cfg_path = _project_root() / "config" / "default.yaml"
    else:
        cfg_path = Path(path)

    if not cfg_path.exists():
        if allow_missing:
            return AppConfig()
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as f:
        try:
            raw: Dict[str, Any] = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Malformed YAML in {cfg_path}: {e}") from e

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        # Re-raise with context to help users fix the YAML
        raise ConfigurationError(f"Invalid configuration in {cfg_path}: {e}") from e
