"""Custom exceptions for attribution analytics."""

from __future__ import annotations


class AttributionError(Exception):
    """Base exception for attribution analytics errors."""

    pass


class ConfigurationError(AttributionError):
    """Raised when analytics configuration values are invalid."""

    pass
