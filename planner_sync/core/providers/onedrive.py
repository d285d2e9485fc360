"""OneDrive adapter (Microsoft Graph v1.0)."""

import logging
from typing import Any
from urllib.parse import quote

from ...models.config import Provider
from ...models.records import RemoteFile, RemoteFolder
from ..errors import ProviderUnavailableError, ResourceNotFoundError
from .base import ProviderAdapter

logger = logging.getLogger(__name__)


class OneDriveAdapter(ProviderAdapter):
    """OneDrive addresses items by path, so a PUT by name always upserts."""

    provider = Provider.ONEDRIVE

    GRAPH_URL = "https://graph.microsoft.com/v1.0"

    async def _search_folder(self, name: str) -> RemoteFolder | None:
        try:
            item = await self.client.get_json(f"{self.GRAPH_URL}/me/drive/root:/{quote(name)}")
        except ResourceNotFoundError:
            return None

        if "folder" not in item:
            raise ProviderUnavailableError(f"OneDrive item {name!r} exists but is not a folder")
        return RemoteFolder(id=item["id"], name=item.get("name", name))

    async def _create_folder(self, name: str) -> RemoteFolder:
        try:
            item = await self.client.send_json(
                "POST",
                f"{self.GRAPH_URL}/me/drive/root/children",
                {"name": name, "folder": {}, "@microsoft.graph.conflictBehavior": "fail"},
            )
        except ProviderUnavailableError as e:
            if e.status_code != 409:
                raise
            # nameAlreadyExists: created elsewhere since the lookup
            existing = await self._search_folder(name)
            if existing is None:
                raise
            return existing
        return RemoteFolder(id=item["id"], name=item.get("name", name))

    async def _find_file(self, folder: RemoteFolder, name: str) -> RemoteFile | None:
        url: str | None = f"{self.GRAPH_URL}/me/drive/items/{folder.id}/children"
        params: dict[str, str] | None = {"$select": "id,name,file"}
        while url:
            page: dict[str, Any] = await self.client.get_json(url, params=params)
            for item in page.get("value", []):
                if "file" in item and item.get("name") == name:
                    return RemoteFile(id=item["id"], name=name, folder_id=folder.id)
            # nextLink already carries the query string
            url, params = page.get("@odata.nextLink"), None
        return None

    async def upload(self, folder: RemoteFolder, logical_name: str, payload: bytes) -> None:
        created = await self._in_folder(self._create_file(folder, logical_name, payload), folder)
        self._files[(folder.id, logical_name)] = created
        logger.info("Uploaded %s/%s to onedrive", folder.name, logical_name)

    async def _create_file(self, folder: RemoteFolder, name: str, payload: bytes) -> RemoteFile:
        response = await self.client.request(
            "PUT",
            f"{self.GRAPH_URL}/me/drive/items/{folder.id}:/{quote(name)}:/content",
            data=payload,
            headers={"Content-Type": "application/json"},
        )
        item = self.client.parse_json(response)
        return RemoteFile(id=item.get("id", ""), name=name, folder_id=folder.id)

    async def _update_file(self, remote: RemoteFile, payload: bytes) -> None:
        # Not reached through upload(); same path PUT, since it replaces in place
        folder = RemoteFolder(id=remote.folder_id, name="")
        await self._create_file(folder, remote.name, payload)

    async def _fetch_content(self, remote: RemoteFile) -> bytes:
        return await self.client.get_content(f"{self.GRAPH_URL}/me/drive/items/{remote.id}/content")
