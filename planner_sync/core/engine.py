"""Round-trip synchronization of the planner document and settings."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

from ..models.config import Provider, SyncConfig
from ..models.records import ErrorKind, RemoteFolder, SyncResult, SyncSnapshot
from .errors import (
    AuthenticationExpiredError,
    InvalidProviderError,
    NotAuthenticatedError,
    PlannerSyncError,
    ProviderUnavailableError,
    SyncAbortedError,
)
from .merge import merge_documents
from .providers import ProviderAdapter, create_adapter
from .storage import LocalStorage
from .tokens import TokenStore

logger = logging.getLogger(__name__)


class SyncEngine:
    """Drives download -> merge -> upload against the selected provider.

    Callers only ever see the ProviderAdapter contract; which concrete
    adapter serves a provider is decided by the adapter factory.
    """

    ACTIVE_PROVIDER_KEY = "cloud-sync-provider"

    def __init__(
        self,
        config: SyncConfig,
        storage: LocalStorage | None = None,
        token_store: TokenStore | None = None,
        adapter_factory: Callable[[str], ProviderAdapter] | None = None,
    ) -> None:
        """Initialize sync engine.

        Args:
            config: Sync configuration
            storage: Local storage (created from settings.state_dir if not provided)
            token_store: Token store (created over storage if not provided)
            adapter_factory: Builds the adapter for a provider identifier
        """
        self.config = config
        self.storage = storage or LocalStorage(Path(config.settings.state_dir))
        self.token_store = token_store or TokenStore(self.storage)
        self._adapter_factory = adapter_factory or self._default_adapter
        self._adapter: ProviderAdapter | None = None

        # Restore the selection made in an earlier session
        try:
            saved = self.storage.get_item(self.ACTIVE_PROVIDER_KEY)
        except ValueError:
            logger.warning("Ignoring unreadable provider selection")
            saved = None
        self.provider: str | None = saved if saved in Provider.ALL else None

    def _default_adapter(self, provider: str) -> ProviderAdapter:
        return create_adapter(provider, self.token_store, self.config.settings)

    # -------------------------------------------------------------------------
    # Provider selection
    # -------------------------------------------------------------------------

    def select_provider(self, provider: str) -> bool:
        """Make a provider the active one.

        Args:
            provider: Provider identifier

        Returns:
            True if a valid credential is already stored for it

        Raises:
            InvalidProviderError: Unknown or unconfigured provider
        """
        if provider not in Provider.ALL or self.config.get_provider(provider) is None:
            raise InvalidProviderError(provider)

        if provider != self.provider:
            self._adapter = None
        self.provider = provider
        self.storage.set_item(self.ACTIVE_PROVIDER_KEY, provider)
        return self.token_store.has_credential(provider)

    @property
    def adapter(self) -> ProviderAdapter:
        """Adapter of the active provider, created on first use."""
        if self.provider is None:
            raise InvalidProviderError(None, "no provider selected")
        if self._adapter is None:
            self._adapter = self._adapter_factory(self.provider)
        return self._adapter

    def disconnect(self) -> None:
        """Forget the active provider's credential and folder cache."""
        if self.provider is None:
            return
        self.token_store.clear(self.provider)
        self._adapter = None
        logger.info("Disconnected from %s", self.provider)

    def status(self) -> dict[str, Any]:
        """Get a summary of the engine state."""
        credential = self.token_store.load(self.provider) if self.provider else None
        return {
            "provider": self.provider,
            "authenticated": credential is not None,
            "expires_at": credential.expires_at.isoformat() if credential and credential.expires_at else None,
            "folder_id": self.token_store.load_folder_id(self.provider) if self.provider else None,
            "state_dir": str(self.storage.state_dir),
        }

    # -------------------------------------------------------------------------
    # Local documents
    # -------------------------------------------------------------------------

    def _local_key(self, is_settings: bool) -> str:
        settings = self.config.settings
        return settings.settings_key if is_settings else settings.document_key

    def read_local(self, is_settings: bool = False) -> dict[str, Any]:
        """Read the local document (or settings); missing means empty."""
        key = self._local_key(is_settings)
        try:
            value = self.storage.get_item(key, {})
        except ValueError as e:
            raise SyncAbortedError(f"Local {key} is not valid JSON", e) from e
        if not isinstance(value, dict):
            raise SyncAbortedError(f"Local {key} is not a JSON object")
        return value

    def write_local(self, data: dict[str, Any], is_settings: bool = False) -> None:
        self.storage.set_item(self._local_key(is_settings), data)

    # -------------------------------------------------------------------------
    # Remote documents
    # -------------------------------------------------------------------------

    def _file_name(self, is_settings: bool) -> str:
        settings = self.config.settings
        return settings.settings_file_name if is_settings else settings.document_file_name

    @staticmethod
    def _decode(payload: bytes | None, name: str) -> dict[str, Any] | None:
        if not payload:
            return None
        try:
            data = json.loads(payload.decode("utf-8"))
        except ValueError as e:
            raise SyncAbortedError(f"Remote {name} is not valid JSON", e) from e
        if not isinstance(data, dict):
            raise SyncAbortedError(f"Remote {name} is not a JSON object")
        return data

    async def _download(
        self, adapter: ProviderAdapter, folder: RemoteFolder, is_settings: bool
    ) -> dict[str, Any] | None:
        name = self._file_name(is_settings)
        return self._decode(await adapter.download(folder, name), name)

    async def _upload(
        self, adapter: ProviderAdapter, folder: RemoteFolder, data: dict[str, Any], is_settings: bool
    ) -> None:
        payload = json.dumps(data).encode("utf-8")
        await adapter.upload(folder, self._file_name(is_settings), payload)

    async def upload_data(self, data: dict[str, Any], is_settings: bool = False) -> None:
        """Upload the document (or settings) to the active provider."""
        adapter = self.adapter
        adapter.reset_file_cache()
        folder = await adapter.ensure_folder()
        await self._upload(adapter, folder, data, is_settings)

    async def download_data(self, is_settings: bool = False) -> dict[str, Any] | None:
        """Download the document (or settings) from the active provider.

        Returns:
            The remote JSON object, or None if it does not exist yet
        """
        adapter = self.adapter
        adapter.reset_file_cache()
        folder = await adapter.ensure_folder()
        return await self._download(adapter, folder, is_settings)

    @staticmethod
    async def _both(first: Awaitable[Any], second: Awaitable[Any]) -> list[Any]:
        """Run two independent calls concurrently; both finish before an error is raised.

        A 401 on one side purges the credential, so the other side may fail
        with NotAuthenticatedError afterwards. The expiry is the real cause
        and is raised in preference to whichever error came first.
        """
        results = await asyncio.gather(first, second, return_exceptions=True)
        errors = [result for result in results if isinstance(result, BaseException)]
        for error in errors:
            if isinstance(error, AuthenticationExpiredError):
                raise error
        if errors:
            raise errors[0]
        return results

    # -------------------------------------------------------------------------
    # Sync cycle
    # -------------------------------------------------------------------------

    async def sync_data(self) -> SyncResult:
        """Run one sync cycle against the active provider.

        Downloads both remote files, merges each into its local counterpart
        (remote keys win), stores the merged values locally, then uploads
        them. The cycle is not atomic: if the upload fails the local write
        stands and the next cycle reconciles.

        Returns:
            SyncResult; failures are reported, never raised
        """
        try:
            adapter = self.adapter
            adapter.reset_file_cache()
            folder = await adapter.ensure_folder()

            remote_document, remote_settings = await self._both(
                self._download(adapter, folder, is_settings=False),
                self._download(adapter, folder, is_settings=True),
            )
            snapshot = SyncSnapshot(
                local_document=self.read_local(is_settings=False),
                local_settings=self.read_local(is_settings=True),
                remote_document=remote_document,
                remote_settings=remote_settings,
            )

            merged_document = merge_documents(snapshot.local_document, snapshot.remote_document)
            merged_settings = merge_documents(snapshot.local_settings, snapshot.remote_settings)

            self.write_local(merged_document, is_settings=False)
            self.write_local(merged_settings, is_settings=True)

            await self._both(
                self._upload(adapter, folder, merged_document, is_settings=False),
                self._upload(adapter, folder, merged_settings, is_settings=True),
            )
        except (PlannerSyncError, OSError) as e:
            return self._failed(e)

        result = SyncResult(
            success=True,
            provider=self.provider,
            document=merged_document,
            settings=merged_settings,
            remote_document_found=snapshot.remote_document is not None,
            remote_settings_found=snapshot.remote_settings is not None,
        )
        logger.info(result.summary())
        return result

    def _failed(self, error: Exception) -> SyncResult:
        if isinstance(error, AuthenticationExpiredError):
            # Credential and folder cache were purged by the client
            self._adapter = None
            kind = ErrorKind.AUTHENTICATION_EXPIRED
        elif isinstance(error, NotAuthenticatedError):
            kind = ErrorKind.NOT_AUTHENTICATED
        elif isinstance(error, InvalidProviderError):
            kind = ErrorKind.INVALID_PROVIDER
        elif isinstance(error, ProviderUnavailableError):
            kind = ErrorKind.PROVIDER_UNAVAILABLE
        else:
            kind = ErrorKind.SYNC_ABORTED

        logger.error("Sync with %s failed: %s", self.provider, error)
        return SyncResult(success=False, provider=self.provider, error=str(error), error_kind=kind)
