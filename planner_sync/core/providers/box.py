"""Box adapter (Box Content API 2.0)."""

import json
import logging
from typing import Any

from ...models.config import Provider
from ...models.records import RemoteFile, RemoteFolder
from ..errors import ProviderUnavailableError
from .base import ProviderAdapter

logger = logging.getLogger(__name__)


class BoxAdapter(ProviderAdapter):
    """Box keys files by opaque id, so uploads find-then-branch."""

    provider = Provider.BOX

    API_URL = "https://api.box.com/2.0"
    UPLOAD_URL = "https://upload.box.com/api/2.0"
    ROOT_FOLDER_ID = "0"
    PAGE_SIZE = 1000

    async def _list_items(self, folder_id: str) -> list[dict[str, Any]]:
        """List all items of a folder, following offset paging."""
        items: list[dict[str, Any]] = []
        offset = 0
        while True:
            page = await self.client.get_json(
                f"{self.API_URL}/folders/{folder_id}/items",
                params={"fields": "id,name,type", "limit": str(self.PAGE_SIZE), "offset": str(offset)},
            )
            entries = page.get("entries", [])
            items.extend(entries)
            offset += len(entries)
            if not entries or offset >= page.get("total_count", 0):
                return items

    async def _search_folder(self, name: str) -> RemoteFolder | None:
        for item in await self._list_items(self.ROOT_FOLDER_ID):
            if item.get("type") == "folder" and item.get("name") == name:
                return RemoteFolder(id=str(item["id"]), name=name)
        return None

    async def _create_folder(self, name: str) -> RemoteFolder:
        try:
            created = await self.client.send_json(
                "POST",
                f"{self.API_URL}/folders",
                {"name": name, "parent": {"id": self.ROOT_FOLDER_ID}},
            )
        except ProviderUnavailableError as e:
            # 409 item_name_in_use: another client created it first
            conflict_id = self._conflicting_id(e) if e.status_code == 409 else None
            if conflict_id is None:
                raise
            logger.info("Box folder %r already exists (%s), adopting it", name, conflict_id)
            return RemoteFolder(id=conflict_id, name=name)
        return RemoteFolder(id=str(created["id"]), name=created.get("name", name))

    @staticmethod
    def _conflicting_id(error: ProviderUnavailableError) -> str | None:
        try:
            conflicts = error.response.json()["context_info"]["conflicts"]
        except (AttributeError, KeyError, TypeError, ValueError):
            return None
        if isinstance(conflicts, dict):
            conflicts = [conflicts]
        return str(conflicts[0]["id"]) if conflicts else None

    async def _find_file(self, folder: RemoteFolder, name: str) -> RemoteFile | None:
        for item in await self._list_items(folder.id):
            if item.get("type") == "file" and item.get("name") == name:
                return RemoteFile(id=str(item["id"]), name=name, folder_id=folder.id)
        return None

    @staticmethod
    def _form(attributes: dict[str, Any], name: str, payload: bytes) -> dict[str, Any]:
        # Box requires the attributes part to precede the file part
        return {
            "attributes": (None, json.dumps(attributes), "application/json"),
            "file": (name, payload, "application/json"),
        }

    async def _create_file(self, folder: RemoteFolder, name: str, payload: bytes) -> RemoteFile:
        response = await self.client.request(
            "POST",
            f"{self.UPLOAD_URL}/files/content",
            files=self._form({"name": name, "parent": {"id": folder.id}}, name, payload),
        )
        entries = self.client.parse_json(response).get("entries") or [{}]
        return RemoteFile(id=str(entries[0].get("id", "")), name=name, folder_id=folder.id)

    async def _update_file(self, remote: RemoteFile, payload: bytes) -> None:
        await self.client.request(
            "POST",
            f"{self.UPLOAD_URL}/files/{remote.id}/content",
            files=self._form({"name": remote.name}, remote.name, payload),
        )

    async def _fetch_content(self, remote: RemoteFile) -> bytes:
        return await self.client.get_content(f"{self.API_URL}/files/{remote.id}/content")
