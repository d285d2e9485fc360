"""Storage provider adapters."""

import requests

from ...models.config import SyncSettings
from ..client import ProviderClient
from ..errors import InvalidProviderError
from ..tokens import TokenStore
from .base import ProviderAdapter
from .box import BoxAdapter
from .gdrive import GoogleDriveAdapter
from .onedrive import OneDriveAdapter

ADAPTERS: dict[str, type[ProviderAdapter]] = {
    BoxAdapter.provider: BoxAdapter,
    OneDriveAdapter.provider: OneDriveAdapter,
    GoogleDriveAdapter.provider: GoogleDriveAdapter,
}


def create_adapter(
    provider: str,
    token_store: TokenStore,
    settings: SyncSettings | None = None,
    session: requests.Session | None = None,
) -> ProviderAdapter:
    """Build the adapter for a provider identifier.

    Args:
        provider: One of the supported provider identifiers
        token_store: Credential and folder-id store
        settings: Sync settings (folder name, request timeout)
        session: Optional requests session to share

    Returns:
        A fresh adapter with an empty folder memo

    Raises:
        InvalidProviderError: Unknown provider identifier
    """
    adapter_cls = ADAPTERS.get(provider)
    if adapter_cls is None:
        raise InvalidProviderError(provider)

    settings = settings or SyncSettings()
    client = ProviderClient(provider, token_store, session=session, timeout=settings.request_timeout)
    return adapter_cls(client, token_store, settings)


__all__ = [
    "ADAPTERS",
    "BoxAdapter",
    "GoogleDriveAdapter",
    "OneDriveAdapter",
    "ProviderAdapter",
    "create_adapter",
]
