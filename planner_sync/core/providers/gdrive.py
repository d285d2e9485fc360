"""Google Drive adapter (Drive API v3)."""

import json
import secrets
from typing import Any

from ...models.config import Provider
from ...models.records import RemoteFile, RemoteFolder
from .base import ProviderAdapter

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


def escape_query_value(value: str) -> str:
    """Escape a string literal for a Drive search query."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_multipart_related(metadata: dict[str, Any], payload: bytes) -> tuple[bytes, str]:
    """Build a multipart/related body (metadata part, then media part).

    Returns:
        Tuple of (body, content type header value)
    """
    boundary = f"planner-sync-{secrets.token_hex(12)}"
    body = b"".join([
        f"--{boundary}\r\nContent-Type: application/json; charset=UTF-8\r\n\r\n".encode(),
        json.dumps(metadata).encode("utf-8"),
        f"\r\n--{boundary}\r\nContent-Type: application/json\r\n\r\n".encode(),
        payload,
        f"\r\n--{boundary}--\r\n".encode(),
    ])
    return body, f"multipart/related; boundary={boundary}"


class GoogleDriveAdapter(ProviderAdapter):
    """Google Drive keys files by opaque id and allows duplicate names,
    so lookups filter on parent, name and trash state."""

    provider = Provider.GDRIVE

    API_URL = "https://www.googleapis.com/drive/v3"
    UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"

    async def _query(self, query: str) -> list[dict[str, Any]]:
        result = await self.client.get_json(
            f"{self.API_URL}/files",
            params={"q": query, "fields": "files(id, name)", "spaces": "drive"},
        )
        return result.get("files", [])

    async def _search_folder(self, name: str) -> RemoteFolder | None:
        query = (
            f"name = '{escape_query_value(name)}' and mimeType = '{FOLDER_MIME_TYPE}' "
            "and 'root' in parents and trashed = false"
        )
        files = await self._query(query)
        if not files:
            return None
        return RemoteFolder(id=files[0]["id"], name=files[0].get("name", name))

    async def _create_folder(self, name: str) -> RemoteFolder:
        created = await self.client.send_json(
            "POST",
            f"{self.API_URL}/files",
            {"name": name, "mimeType": FOLDER_MIME_TYPE},
            params={"fields": "id, name"},
        )
        return RemoteFolder(id=created["id"], name=created.get("name", name))

    async def _find_file(self, folder: RemoteFolder, name: str) -> RemoteFile | None:
        query = (
            f"'{escape_query_value(folder.id)}' in parents and name = '{escape_query_value(name)}' "
            "and trashed = false"
        )
        files = await self._query(query)
        if not files:
            return None
        return RemoteFile(id=files[0]["id"], name=name, folder_id=folder.id)

    async def _create_file(self, folder: RemoteFolder, name: str, payload: bytes) -> RemoteFile:
        metadata = {"name": name, "mimeType": "application/json", "parents": [folder.id]}
        body, content_type = build_multipart_related(metadata, payload)
        response = await self.client.request(
            "POST",
            f"{self.UPLOAD_URL}/files",
            params={"uploadType": "multipart", "fields": "id, name"},
            data=body,
            headers={"Content-Type": content_type},
        )
        created = self.client.parse_json(response)
        return RemoteFile(id=created.get("id", ""), name=name, folder_id=folder.id)

    async def _update_file(self, remote: RemoteFile, payload: bytes) -> None:
        # Parents cannot be set on update; only content and type change
        body, content_type = build_multipart_related({"mimeType": "application/json"}, payload)
        await self.client.request(
            "PATCH",
            f"{self.UPLOAD_URL}/files/{remote.id}",
            params={"uploadType": "multipart"},
            data=body,
            headers={"Content-Type": content_type},
        )

    async def _fetch_content(self, remote: RemoteFile) -> bytes:
        return await self.client.get_content(f"{self.API_URL}/files/{remote.id}", params={"alt": "media"})
