"""Tests for the Box, OneDrive and Google Drive adapters."""

import asyncio
import json

import pytest

from conftest import Call, FakeResponse
from planner_sync.core.client import ProviderClient
from planner_sync.core.errors import AuthenticationExpiredError, ProviderUnavailableError
from planner_sync.core.providers import (
    BoxAdapter,
    GoogleDriveAdapter,
    OneDriveAdapter,
    create_adapter,
)
from planner_sync.core.providers.gdrive import build_multipart_related, escape_query_value
from planner_sync.core.errors import InvalidProviderError
from planner_sync.models.config import SyncSettings
from planner_sync.models.records import RemoteFile, RemoteFolder

BOX_API = "https://api.box.com/2.0"
BOX_UPLOAD = "https://upload.box.com/api/2.0"
GRAPH = "https://graph.microsoft.com/v1.0"
DRIVE_API = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD = "https://www.googleapis.com/upload/drive/v3"


@pytest.fixture
def make_adapter(token_store, session):
    def factory(adapter_cls):
        token_store.save(adapter_cls.provider, "tok")
        client = ProviderClient(adapter_cls.provider, token_store, session=session)
        return adapter_cls(client, token_store, SyncSettings())
    return factory


class TestCreateAdapter:
    """Tests for the adapter factory."""

    def test_known_providers(self, token_store) -> None:
        assert isinstance(create_adapter("box", token_store), BoxAdapter)
        assert isinstance(create_adapter("onedrive", token_store), OneDriveAdapter)
        assert isinstance(create_adapter("gdrive", token_store), GoogleDriveAdapter)

    def test_unknown_provider(self, token_store) -> None:
        with pytest.raises(InvalidProviderError):
            create_adapter("dropbox", token_store)

    def test_timeout_from_settings(self, token_store) -> None:
        adapter = create_adapter("box", token_store, SyncSettings(request_timeout=5))
        assert adapter.client.timeout == 5


class TestBoxAdapter:
    """Tests for BoxAdapter."""

    def _empty_root(self, session) -> None:
        session.add("GET", f"{BOX_API}/folders/0/items", FakeResponse(200, {"entries": [], "total_count": 0}))
        session.add("POST", f"{BOX_API}/folders", FakeResponse(201, {"id": "111", "name": "Planner"}))

    def test_ensure_folder_creates_once(self, make_adapter, session, token_store) -> None:
        self._empty_root(session)
        adapter = make_adapter(BoxAdapter)

        first = asyncio.run(adapter.ensure_folder())
        second = asyncio.run(adapter.ensure_folder())

        assert first == second == RemoteFolder(id="111", name="Planner")
        assert session.count("POST", f"{BOX_API}/folders") == 1
        assert session.calls[1].kwargs["json"] == {"name": "Planner", "parent": {"id": "0"}}
        assert token_store.load_folder_id("box") == "111"

    def test_concurrent_ensure_folder_single_create(self, make_adapter, session) -> None:
        self._empty_root(session)
        adapter = make_adapter(BoxAdapter)

        async def resolve_twice():
            return await asyncio.gather(adapter.ensure_folder(), adapter.ensure_folder())

        first, second = asyncio.run(resolve_twice())

        assert first == second
        assert session.count("GET", f"{BOX_API}/folders/0/items") == 1
        assert session.count("POST", f"{BOX_API}/folders") == 1

    def test_ensure_folder_finds_existing(self, make_adapter, session) -> None:
        session.add("GET", f"{BOX_API}/folders/0/items", FakeResponse(200, {
            "entries": [
                {"type": "file", "id": "5", "name": "Planner"},
                {"type": "folder", "id": "222", "name": "Planner"},
            ],
            "total_count": 2,
        }))
        adapter = make_adapter(BoxAdapter)

        folder = asyncio.run(adapter.ensure_folder())

        assert folder.id == "222"
        assert session.count("POST", f"{BOX_API}/folders") == 0

    def test_ensure_folder_adopts_conflicting_folder(self, make_adapter, session) -> None:
        session.add("GET", f"{BOX_API}/folders/0/items", FakeResponse(200, {"entries": [], "total_count": 0}))
        session.add("POST", f"{BOX_API}/folders", FakeResponse(409, {
            "code": "item_name_in_use",
            "context_info": {"conflicts": [{"type": "folder", "id": "333", "name": "Planner"}]},
        }))
        adapter = make_adapter(BoxAdapter)

        assert asyncio.run(adapter.ensure_folder()).id == "333"

    def test_ensure_folder_uses_cached_id(self, make_adapter, session, token_store) -> None:
        token_store.save_folder_id("box", "444")
        adapter = make_adapter(BoxAdapter)

        assert asyncio.run(adapter.ensure_folder()).id == "444"
        assert session.calls == []

    def test_download_missing_file_is_absent(self, make_adapter, session) -> None:
        session.add("GET", f"{BOX_API}/folders/111/items", FakeResponse(200, {"entries": [], "total_count": 0}))
        adapter = make_adapter(BoxAdapter)
        folder = RemoteFolder(id="111", name="Planner")

        assert asyncio.run(adapter.download(folder, "planner-data.json")) is None

    def test_download_content_not_found_is_absent(self, make_adapter, session) -> None:
        session.add("GET", f"{BOX_API}/folders/111/items", FakeResponse(200, {
            "entries": [{"type": "file", "id": "f1", "name": "planner-data.json"}],
            "total_count": 1,
        }))
        session.add("GET", f"{BOX_API}/files/f1/content", FakeResponse(404, {"code": "not_found"}))
        adapter = make_adapter(BoxAdapter)
        folder = RemoteFolder(id="111", name="Planner")

        assert asyncio.run(adapter.download(folder, "planner-data.json")) is None

    def test_download_existing_file(self, make_adapter, session) -> None:
        session.add("GET", f"{BOX_API}/folders/111/items", FakeResponse(200, {
            "entries": [{"type": "file", "id": "f1", "name": "planner-data.json"}],
            "total_count": 1,
        }))
        session.add("GET", f"{BOX_API}/files/f1/content", FakeResponse(200, content=b'{"a": 1}'))
        adapter = make_adapter(BoxAdapter)
        folder = RemoteFolder(id="111", name="Planner")

        assert asyncio.run(adapter.download(folder, "planner-data.json")) == b'{"a": 1}'

    def test_upload_creates_then_updates(self, make_adapter, session) -> None:
        entries: list[dict] = []

        def list_items(call: Call) -> FakeResponse:
            return FakeResponse(200, {"entries": list(entries), "total_count": len(entries)})

        def create(call: Call) -> FakeResponse:
            attributes = json.loads(call.kwargs["files"]["attributes"][1])
            entries.append({"type": "file", "id": "f1", "name": attributes["name"]})
            return FakeResponse(201, {"entries": [{"id": "f1", "name": attributes["name"]}]})

        session.add("GET", f"{BOX_API}/folders/111/items", list_items)
        session.add("POST", f"{BOX_UPLOAD}/files/content", create)
        session.add("POST", f"{BOX_UPLOAD}/files/f1/content", FakeResponse(201, {"entries": [{"id": "f1"}]}))
        adapter = make_adapter(BoxAdapter)
        folder = RemoteFolder(id="111", name="Planner")

        asyncio.run(adapter.upload(folder, "planner-data.json", b"{}"))
        adapter.reset_file_cache()
        asyncio.run(adapter.upload(folder, "planner-data.json", b'{"v": 2}'))

        assert session.count("POST", f"{BOX_UPLOAD}/files/content") == 1
        assert session.count("POST", f"{BOX_UPLOAD}/files/f1/content") == 1
        create_call = session.calls[1]
        attributes = json.loads(create_call.kwargs["files"]["attributes"][1])
        assert attributes == {"name": "planner-data.json", "parent": {"id": "111"}}
        assert create_call.kwargs["files"]["file"][1] == b"{}"

    def test_lookup_reused_within_cycle(self, make_adapter, session) -> None:
        session.add("GET", f"{BOX_API}/folders/111/items", FakeResponse(200, {"entries": [], "total_count": 0}))
        session.add("POST", f"{BOX_UPLOAD}/files/content", FakeResponse(201, {"entries": [{"id": "f1"}]}))
        adapter = make_adapter(BoxAdapter)
        folder = RemoteFolder(id="111", name="Planner")

        async def cycle():
            assert await adapter.download(folder, "planner-data.json") is None
            await adapter.upload(folder, "planner-data.json", b"{}")

        asyncio.run(cycle())

        assert session.count("GET", f"{BOX_API}/folders/111/items") == 1

    def test_unauthorized_clears_credential(self, make_adapter, session, token_store) -> None:
        session.add("GET", f"{BOX_API}/folders/0/items", FakeResponse(401, {"code": "unauthorized"}))
        adapter = make_adapter(BoxAdapter)

        with pytest.raises(AuthenticationExpiredError):
            asyncio.run(adapter.ensure_folder())

        assert token_store.load("box") is None

    def test_missing_folder_invalidates_cache(self, make_adapter, session, token_store) -> None:
        token_store.save_folder_id("box", "stale")
        session.add("GET", f"{BOX_API}/folders/stale/items", FakeResponse(404, {"code": "not_found"}))
        adapter = make_adapter(BoxAdapter)

        async def cycle():
            folder = await adapter.ensure_folder()
            await adapter.find_file(folder, "planner-data.json")

        with pytest.raises(ProviderUnavailableError, match="no longer available"):
            asyncio.run(cycle())

        assert token_store.load_folder_id("box") is None
        assert adapter._folder is None


class TestOneDriveAdapter:
    """Tests for OneDriveAdapter."""

    def test_ensure_folder_creates_once(self, make_adapter, session, token_store) -> None:
        session.add("GET", f"{GRAPH}/me/drive/root:/Planner", FakeResponse(404, {"error": {"code": "itemNotFound"}}))
        session.add("POST", f"{GRAPH}/me/drive/root/children", FakeResponse(201, {"id": "od-folder", "name": "Planner"}))
        adapter = make_adapter(OneDriveAdapter)

        asyncio.run(adapter.ensure_folder())
        folder = asyncio.run(adapter.ensure_folder())

        assert folder.id == "od-folder"
        assert session.count("POST", f"{GRAPH}/me/drive/root/children") == 1
        body = session.calls[1].kwargs["json"]
        assert body["folder"] == {}
        assert body["@microsoft.graph.conflictBehavior"] == "fail"
        assert token_store.load_folder_id("onedrive") == "od-folder"

    def test_existing_item_must_be_folder(self, make_adapter, session) -> None:
        session.add("GET", f"{GRAPH}/me/drive/root:/Planner", FakeResponse(200, {"id": "x", "file": {}}))
        adapter = make_adapter(OneDriveAdapter)

        with pytest.raises(ProviderUnavailableError, match="not a folder"):
            asyncio.run(adapter.ensure_folder())

    def test_upload_puts_by_path(self, make_adapter, session) -> None:
        url = f"{GRAPH}/me/drive/items/od-folder:/planner-settings.json:/content"
        session.add("PUT", url, FakeResponse(201, {"id": "od-file"}))
        adapter = make_adapter(OneDriveAdapter)
        folder = RemoteFolder(id="od-folder", name="Planner")

        asyncio.run(adapter.upload(folder, "planner-settings.json", b'{"theme": "dark"}'))

        call = session.calls[0]
        assert call.kwargs["data"] == b'{"theme": "dark"}'
        assert call.headers["Content-Type"] == "application/json"
        # No lookup needed: PUT by path upserts
        assert len(session.calls) == 1

    def test_update_file_puts_by_path(self, make_adapter, session) -> None:
        url = f"{GRAPH}/me/drive/items/od-folder:/planner-data.json:/content"
        session.add("PUT", url, FakeResponse(200, {"id": "od-file"}))
        adapter = make_adapter(OneDriveAdapter)
        remote = RemoteFile(id="od-file", name="planner-data.json", folder_id="od-folder")

        asyncio.run(adapter._update_file(remote, b'{"a": 1}'))

        assert session.count("PUT", url) == 1
        assert session.calls[0].kwargs["data"] == b'{"a": 1}'

    def test_download_content_not_found_is_absent(self, make_adapter, session) -> None:
        session.add("GET", f"{GRAPH}/me/drive/items/od-folder/children", FakeResponse(200, {
            "value": [{"id": "od-file", "name": "planner-data.json", "file": {}}],
        }))
        session.add("GET", f"{GRAPH}/me/drive/items/od-file/content", FakeResponse(404, {"error": {"code": "itemNotFound"}}))
        adapter = make_adapter(OneDriveAdapter)
        folder = RemoteFolder(id="od-folder", name="Planner")

        assert asyncio.run(adapter.download(folder, "planner-data.json")) is None

    def test_unauthorized_clears_credential(self, make_adapter, session, token_store) -> None:
        session.add("GET", f"{GRAPH}/me/drive/root:/Planner", FakeResponse(401, {"error": {"code": "InvalidAuthenticationToken"}}))
        adapter = make_adapter(OneDriveAdapter)

        with pytest.raises(AuthenticationExpiredError):
            asyncio.run(adapter.ensure_folder())

        assert token_store.load("onedrive") is None

    def test_download_absent_and_present(self, make_adapter, session) -> None:
        session.add("GET", f"{GRAPH}/me/drive/items/od-folder/children", FakeResponse(200, {
            "value": [
                {"id": "sub", "name": "planner-data.json", "folder": {}},
                {"id": "od-file", "name": "planner-settings.json", "file": {}},
            ],
        }))
        session.add("GET", f"{GRAPH}/me/drive/items/od-file/content", FakeResponse(200, content=b'{"x": 1}'))
        adapter = make_adapter(OneDriveAdapter)
        folder = RemoteFolder(id="od-folder", name="Planner")

        assert asyncio.run(adapter.download(folder, "planner-data.json")) is None
        assert asyncio.run(adapter.download(folder, "planner-settings.json")) == b'{"x": 1}'

    def test_find_file_follows_next_link(self, make_adapter, session) -> None:
        next_link = f"{GRAPH}/me/drive/items/od-folder/children?$skiptoken=abc"
        session.add("GET", f"{GRAPH}/me/drive/items/od-folder/children", FakeResponse(200, {
            "value": [], "@odata.nextLink": next_link,
        }))
        session.add("GET", next_link, FakeResponse(200, {
            "value": [{"id": "late", "name": "planner-data.json", "file": {}}],
        }))
        adapter = make_adapter(OneDriveAdapter)
        folder = RemoteFolder(id="od-folder", name="Planner")

        remote = asyncio.run(adapter.find_file(folder, "planner-data.json"))

        assert remote is not None and remote.id == "late"


class TestGoogleDriveAdapter:
    """Tests for GoogleDriveAdapter."""

    def _routes(self, session, existing_file: bool = False) -> None:
        def search(call: Call) -> FakeResponse:
            query = call.kwargs["params"]["q"]
            if "mimeType" in query:
                return FakeResponse(200, {"files": []})
            files = [{"id": "g-file", "name": "planner-data.json"}] if existing_file else []
            return FakeResponse(200, {"files": files})

        session.add("GET", f"{DRIVE_API}/files", search)
        session.add("POST", f"{DRIVE_API}/files", FakeResponse(200, {"id": "g-folder", "name": "Planner"}))
        session.add("POST", f"{DRIVE_UPLOAD}/files", FakeResponse(200, {"id": "g-file"}))
        session.add("PATCH", f"{DRIVE_UPLOAD}/files/g-file", FakeResponse(200, {"id": "g-file"}))
        session.add("GET", f"{DRIVE_API}/files/g-file", FakeResponse(200, content=b'{"b": 3}'))

    def test_ensure_folder_creates_once(self, make_adapter, session) -> None:
        self._routes(session)
        adapter = make_adapter(GoogleDriveAdapter)

        asyncio.run(adapter.ensure_folder())
        folder = asyncio.run(adapter.ensure_folder())

        assert folder.id == "g-folder"
        assert session.count("POST", f"{DRIVE_API}/files") == 1
        assert session.calls[1].kwargs["json"]["mimeType"] == "application/vnd.google-apps.folder"

    def test_upload_creates_with_parent(self, make_adapter, session) -> None:
        self._routes(session)
        adapter = make_adapter(GoogleDriveAdapter)
        folder = RemoteFolder(id="g-folder", name="Planner")

        asyncio.run(adapter.upload(folder, "planner-data.json", b'{"a": 1}'))

        create = [c for c in session.calls if c.method == "POST"][0]
        assert create.kwargs["params"]["uploadType"] == "multipart"
        assert create.headers["Content-Type"].startswith("multipart/related; boundary=")
        assert b'"parents": ["g-folder"]' in create.kwargs["data"]
        assert b'{"a": 1}' in create.kwargs["data"]
        assert session.count("PATCH", f"{DRIVE_UPLOAD}/files/g-file") == 0

    def test_upload_updates_existing(self, make_adapter, session) -> None:
        self._routes(session, existing_file=True)
        adapter = make_adapter(GoogleDriveAdapter)
        folder = RemoteFolder(id="g-folder", name="Planner")

        asyncio.run(adapter.upload(folder, "planner-data.json", b'{"a": 2}'))

        assert session.count("PATCH", f"{DRIVE_UPLOAD}/files/g-file") == 1
        assert session.count("POST", f"{DRIVE_UPLOAD}/files") == 0

    def test_find_file_query(self, make_adapter, session) -> None:
        self._routes(session)
        adapter = make_adapter(GoogleDriveAdapter)
        folder = RemoteFolder(id="g-folder", name="Planner")

        assert asyncio.run(adapter.find_file(folder, "planner-data.json")) is None
        query = session.calls[0].kwargs["params"]["q"]
        assert "'g-folder' in parents" in query
        assert "name = 'planner-data.json'" in query
        assert "trashed = false" in query

    def test_download_uses_alt_media(self, make_adapter, session) -> None:
        self._routes(session, existing_file=True)
        adapter = make_adapter(GoogleDriveAdapter)
        folder = RemoteFolder(id="g-folder", name="Planner")

        assert asyncio.run(adapter.download(folder, "planner-data.json")) == b'{"b": 3}'
        assert session.calls[-1].kwargs["params"] == {"alt": "media"}

    def test_download_content_not_found_is_absent(self, make_adapter, session) -> None:
        self._routes(session, existing_file=True)
        session.add("GET", f"{DRIVE_API}/files/g-file", FakeResponse(404, {"error": {"code": 404}}))
        adapter = make_adapter(GoogleDriveAdapter)
        folder = RemoteFolder(id="g-folder", name="Planner")

        assert asyncio.run(adapter.download(folder, "planner-data.json")) is None

    def test_unauthorized_clears_credential(self, make_adapter, session, token_store) -> None:
        token_store.save_folder_id("gdrive", "g-folder")
        session.add("GET", f"{DRIVE_API}/files", FakeResponse(401, {"error": {"code": 401}}))
        adapter = make_adapter(GoogleDriveAdapter)
        folder = RemoteFolder(id="g-folder", name="Planner")

        with pytest.raises(AuthenticationExpiredError):
            asyncio.run(adapter.find_file(folder, "planner-data.json"))

        assert token_store.load("gdrive") is None
        assert token_store.load_folder_id("gdrive") is None

    def test_escape_query_value(self) -> None:
        assert escape_query_value("O'Brien's") == "O\\'Brien\\'s"
        assert escape_query_value("a\\b") == "a\\\\b"

    def test_multipart_related_layout(self) -> None:
        body, content_type = build_multipart_related({"name": "x.json"}, b'{"k": "v"}')
        boundary = content_type.split("boundary=")[1]

        assert body.startswith(f"--{boundary}\r\n".encode())
        assert body.endswith(f"--{boundary}--\r\n".encode())
        assert body.index(b'"name": "x.json"') < body.index(b'{"k": "v"}')
