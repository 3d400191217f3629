"""Custom exceptions for identity resolution."""

from __future__ import annotations


class IdentityError(Exception):
    """Base exception for identity resolution errors."""

    pass


class ConfigurationError(IdentityError):
    """Raised when identity configuration values are invalid."""

    pass


class IdentityNotFoundError(IdentityError):
    """Raised when a canonical identity does not exist in the repository."""

    pass


class InvalidMergeError(IdentityError):
    """Raised when a merge request cannot be applied."""

    pass


class ReviewCaseError(IdentityError):
    """Raised when a pending review case is missing or already resolved."""

    pass


class AliasError(IdentityError):
    """Raised when an alias edge is malformed."""

    pass
