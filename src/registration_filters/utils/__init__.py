"""
Utility Functions Module

- Logging setup shared by all modules
- Typed YAML configuration
"""

from .logging import setup_logger, set_package_log_level
from .config import AppConfig, load_config

__all__ = [
    "setup_logger",
    "set_package_log_level",
    "AppConfig",
    "load_config",
]
