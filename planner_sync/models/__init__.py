"""Data models for the planner sync system."""

from .config import (
    Provider,
    ProviderConfig,
    SyncConfig,
    SyncSettings,
    sanitize_key,
)
from .records import (
    Credential,
    ErrorKind,
    RemoteFile,
    RemoteFolder,
    SyncResult,
    SyncSnapshot,
)

__all__ = [
    "Credential",
    "ErrorKind",
    "Provider",
    "ProviderConfig",
    "RemoteFile",
    "RemoteFolder",
    "SyncConfig",
    "SyncResult",
    "SyncSettings",
    "SyncSnapshot",
    "sanitize_key",
]
