"""
Exception types raised by the filters.

Configuration problems are detected when a filter is constructed; missing
input descriptors are detected when a filter is applied. Numerical
degeneracies (too few neighbours, singular scatter matrices) are never
reported through exceptions.
"""


class RegistrationFiltersError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(ValueError, RegistrationFiltersError):
    """Invalid filter parameter, unknown filter name or malformed config file."""


class InputContractViolation(ValueError, RegistrationFiltersError):
    """A point set does not satisfy what a filter requires (e.g. a missing descriptor)."""
