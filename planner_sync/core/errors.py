"""Exceptions raised by the sync core."""

from typing import Any


class PlannerSyncError(Exception):
    """Base exception for planner sync errors."""


class NotAuthenticatedError(PlannerSyncError):
    """No valid credential is stored for the provider."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"Not authenticated with {provider}")
        self.provider = provider


class AuthenticationExpiredError(PlannerSyncError):
    """The provider rejected the bearer token (HTTP 401).

    The stored credential has already been purged when this is raised.
    """

    def __init__(self, provider: str) -> None:
        super().__init__(f"Authentication with {provider} expired, please sign in again")
        self.provider = provider


class ProviderUnavailableError(PlannerSyncError):
    """A remote call failed for any reason other than authorization."""

    def __init__(self, message: str, status_code: int | None = None, response: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class ResourceNotFoundError(ProviderUnavailableError):
    """HTTP 404 from a remote call. Adapters normalize it to an absent result."""


class InvalidProviderError(PlannerSyncError):
    """Operation requested against an unknown or unconfigured provider."""

    def __init__(self, provider: str | None, reason: str = "unknown provider") -> None:
        super().__init__(f"Invalid provider {provider!r}: {reason}")
        self.provider = provider


class SyncAbortedError(PlannerSyncError):
    """A step of a sync cycle failed; wraps the underlying cause."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
