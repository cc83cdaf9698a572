"""
Filter Chain Module

Sequential application of filters, built by hand or from YAML configuration.
"""

from .chain import ChainStepStats, FilterChain

__all__ = [
    "FilterChain",
    "ChainStepStats",
]
