"""Core sync functionality."""

from .auth import AuthFlow, AuthOutcome, AuthResult, AuthState, BrowserNavigator
from .client import ProviderClient
from .engine import SyncEngine
from .errors import (
    AuthenticationExpiredError,
    InvalidProviderError,
    NotAuthenticatedError,
    PlannerSyncError,
    ProviderUnavailableError,
    ResourceNotFoundError,
    SyncAbortedError,
)
from .merge import merge_documents
from .providers import ProviderAdapter, create_adapter
from .storage import LocalStorage
from .tokens import TokenStore

__all__ = [
    "AuthFlow",
    "AuthOutcome",
    "AuthResult",
    "AuthState",
    "AuthenticationExpiredError",
    "BrowserNavigator",
    "InvalidProviderError",
    "LocalStorage",
    "NotAuthenticatedError",
    "PlannerSyncError",
    "ProviderAdapter",
    "ProviderClient",
    "ProviderUnavailableError",
    "ResourceNotFoundError",
    "SyncAbortedError",
    "SyncEngine",
    "TokenStore",
    "create_adapter",
    "merge_documents",
]
