"""Common contract of the storage provider adapters."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, TypeVar

from ...models.config import SyncSettings
from ...models.records import RemoteFile, RemoteFolder
from ..client import ProviderClient
from ..errors import ProviderUnavailableError, ResourceNotFoundError
from ..tokens import TokenStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Marks a logical name that has not been looked up during the current cycle
_UNRESOLVED = object()


class ProviderAdapter(ABC):
    """Folder resolution and file upsert/fetch against one provider.

    Subclasses implement the REST dialect hooks; the public coroutines
    (ensure_folder, find_file, upload, download) are shared.
    """

    provider: str = ""

    def __init__(
        self,
        client: ProviderClient,
        token_store: TokenStore,
        settings: SyncSettings | None = None,
    ) -> None:
        """Initialize adapter.

        Args:
            client: Authenticated HTTP client for this provider
            token_store: Holds the persisted folder id cache
            settings: Sync settings (folder name)
        """
        self.client = client
        self.token_store = token_store
        self.settings = settings or SyncSettings()
        self._folder: RemoteFolder | None = None
        self._folder_lock = asyncio.Lock()
        self._files: dict[tuple[str, str], object] = {}

    @property
    def folder_name(self) -> str:
        return self.settings.folder_name

    # -------------------------------------------------------------------------
    # Folder resolution
    # -------------------------------------------------------------------------

    async def ensure_folder(self) -> RemoteFolder:
        """Resolve the application folder, creating it if needed.

        The result is memoized for the lifetime of the adapter. Concurrent
        callers wait on the first caller's resolution, so at most one
        create call is issued per session.

        Returns:
            The application folder
        """
        if self._folder is not None:
            return self._folder

        async with self._folder_lock:
            if self._folder is None:
                self._folder = await self._resolve_folder()
            return self._folder

    async def _resolve_folder(self) -> RemoteFolder:
        cached_id = self.token_store.load_folder_id(self.provider)
        if cached_id:
            logger.debug("Using cached %s folder id %s", self.provider, cached_id)
            return RemoteFolder(id=cached_id, name=self.folder_name)

        folder = await self._search_folder(self.folder_name)
        if folder is None:
            folder = await self._create_folder(self.folder_name)
            logger.info("Created %s folder %r (%s)", self.provider, folder.name, folder.id)

        self.token_store.save_folder_id(self.provider, folder.id)
        return folder

    def invalidate_folder(self) -> None:
        """Forget the resolved folder, in memory and in the folder cache."""
        logger.warning("Invalidating cached %s folder", self.provider)
        self._folder = None
        self._files.clear()
        self.token_store.forget_folder_id(self.provider)

    async def _in_folder(self, call: Awaitable[T], folder: RemoteFolder) -> T:
        """Await a call that references the folder.

        A 404 or 403 means the cached folder is gone or no longer ours, so it
        is invalidated and the next session resolves it again.
        """
        try:
            return await call
        except ProviderUnavailableError as e:
            if e.status_code in (403, 404):
                self.invalidate_folder()
                raise ProviderUnavailableError(
                    f"{self.provider} folder {folder.name!r} ({folder.id}) is no longer available",
                    e.status_code,
                    e.response,
                ) from e
            raise

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    def reset_file_cache(self) -> None:
        """Start a new cycle: forget file ids resolved by earlier lookups."""
        self._files.clear()

    async def find_file(self, folder: RemoteFolder, logical_name: str) -> RemoteFile | None:
        """Find a file by exact name inside the folder.

        Returns:
            The file, or None when it does not exist yet
        """
        remote = await self._in_folder(self._find_file(folder, logical_name), folder)
        self._files[(folder.id, logical_name)] = remote
        return remote

    async def _lookup(self, folder: RemoteFolder, logical_name: str) -> RemoteFile | None:
        """find_file, reusing a lookup already made during this cycle."""
        cached = self._files.get((folder.id, logical_name), _UNRESOLVED)
        if cached is not _UNRESOLVED:
            return cached  # type: ignore[return-value]
        return await self.find_file(folder, logical_name)

    async def upload(self, folder: RemoteFolder, logical_name: str, payload: bytes) -> None:
        """Overwrite the file when it exists, otherwise create it."""
        existing = await self._lookup(folder, logical_name)
        if existing is not None:
            await self._update_file(existing, payload)
            logger.info("Updated %s/%s on %s", folder.name, logical_name, self.provider)
            return

        created = await self._in_folder(self._create_file(folder, logical_name, payload), folder)
        self._files[(folder.id, logical_name)] = created
        logger.info("Created %s/%s on %s", folder.name, logical_name, self.provider)

    async def download(self, folder: RemoteFolder, logical_name: str) -> bytes | None:
        """Fetch a file's content.

        Returns:
            Raw content, or None when the file does not exist
        """
        remote = await self._lookup(folder, logical_name)
        if remote is None:
            return None
        try:
            return await self._fetch_content(remote)
        except ResourceNotFoundError:
            logger.debug("%s content of %s not found, treating as absent", self.provider, logical_name)
            self._files[(folder.id, logical_name)] = None
            return None

    # -------------------------------------------------------------------------
    # REST dialect hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    async def _search_folder(self, name: str) -> RemoteFolder | None:
        """Find an existing application folder by name."""

    @abstractmethod
    async def _create_folder(self, name: str) -> RemoteFolder:
        """Create the application folder."""

    @abstractmethod
    async def _find_file(self, folder: RemoteFolder, name: str) -> RemoteFile | None:
        """List the folder and match a file by exact name."""

    @abstractmethod
    async def _create_file(self, folder: RemoteFolder, name: str, payload: bytes) -> RemoteFile:
        """Create a new file in the folder."""

    @abstractmethod
    async def _update_file(self, remote: RemoteFile, payload: bytes) -> None:
        """Overwrite an existing file's content."""

    @abstractmethod
    async def _fetch_content(self, remote: RemoteFile) -> bytes:
        """Download a file's content."""
