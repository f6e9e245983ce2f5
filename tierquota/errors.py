"""Exception classes for tierquota.

Denials are never exceptions; these cover administrative write failures and
collaborator failures the HTTP layer maps to status codes.
"""

from __future__ import annotations


class TierQuotaError(Exception):
    """Base exception for all tierquota errors."""

    def __init__(self, message: str, *, code: str) -> None:
        super().__init__(message)
        self.code = code


class NotFoundError(TierQuotaError):
    """A referenced tier, model or user does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="not_found")


class ConflictError(TierQuotaError):
    """A write would break a uniqueness or referential invariant."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="conflict")


class InvalidConfigError(TierQuotaError):
    """Malformed administrative input, e.g. a negative limit."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="invalid")


class ProviderError(TierQuotaError):
    """The image provider call failed or returned nothing usable."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message, code="provider_error")
        self.status = status
