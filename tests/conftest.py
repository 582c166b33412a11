"""Shared fixtures: an in-process fake download service and config helpers."""

import io
import zipfile
from typing import Any

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from workshop_emu.models.config import EmuConfig

JOB_ID = "0b7d4a62-job"
STORAGE_PATH = "480/2503622437/item.zip"


def make_zip(files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def status(state: str, progress: int, **extra: Any) -> dict[str, Any]:
    return {"status": state, "progress": progress, **extra}


def prepared(**extra: Any) -> dict[str, Any]:
    return status("prepared", 100, **extra)


class FakeWorkshopService:
    """
    Stand-in for the remote download service.

    `statuses` is consumed one entry per status request; the last entry repeats.
    An entry may be a dict (sent as the job's status) or a str (sent as a raw
    body, to simulate garbage responses).
    """

    def __init__(self):
        self.submit_body: Any = {"uuid": JOB_ID}
        self.statuses: list[Any] = [prepared()]
        self.storage_path = STORAGE_PATH
        self.archive = make_zip({"mod.txt": b"hello", "data/level.bin": b"\x00\x01"})
        self.storage_status = 200
        self.submitted: list[dict] = []
        self.status_requests: list[dict] = []
        self.downloads: list[str] = []
        self.node = ""
        self.base_url = ""

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/prod/api/download/request", self.handle_submit)
        app.router.add_post("/prod/api/download/status", self.handle_status)
        app.router.add_get("/storage/{path:.*}", self.handle_storage)
        return app

    async def handle_submit(self, request: web.Request) -> web.StreamResponse:
        self.submitted.append(await request.json())
        if isinstance(self.submit_body, str):
            return web.Response(text=self.submit_body)
        return web.json_response(self.submit_body)

    async def handle_status(self, request: web.Request) -> web.StreamResponse:
        body = await request.json()
        self.status_requests.append(body)
        index = min(len(self.status_requests), len(self.statuses)) - 1
        entry = self.statuses[index]
        if isinstance(entry, str):
            return web.Response(text=entry)
        entry = {"storageNode": self.node, "storagePath": self.storage_path, **entry}
        return web.json_response({uuid: entry for uuid in body["uuids"]})

    async def handle_storage(self, request: web.Request) -> web.StreamResponse:
        self.downloads.append(request.query.get("uuid", ""))
        if self.storage_status != 200:
            return web.Response(status=self.storage_status, text="storage error")
        return web.Response(body=self.archive, content_type="application/zip")


@pytest_asyncio.fixture
async def fake_service():
    service = FakeWorkshopService()
    server = TestServer(service.make_app())
    await server.start_server()
    service.node = f"{server.host}:{server.port}"
    service.base_url = str(server.make_url("/prod/api/"))
    yield service
    await server.close()


@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides: Any) -> EmuConfig:
        values = {
            "items_path": str(tmp_path / "items"),
            "api_base_url": "http://127.0.0.1:9/prod/api/",
            "storage_url_template": "http://{node}/storage/{path}",
            "poll_interval": 0.02,
            "stall_timeout": 1.0,
            "request_timeout": 1.0,
            "unsubscribe_wait_interval": 0.02,
        }
        values.update(overrides)
        return EmuConfig(**values)

    return _make


class RecordingBridge:
    """Notification bridge that remembers every call."""

    def __init__(self, registry_probe=None):
        self.subscribed: list[int] = []
        self.results: list[tuple[int, bool, Any]] = []
        self.states_on_subscribe: list[Any] = []
        self.registry = registry_probe

    def notify_subscribed(self, item_id: int) -> None:
        self.subscribed.append(item_id)
        if self.registry is not None:
            self.states_on_subscribe.append(self.registry.get_state(item_id))

    def notify_download_result(self, item_id: int, success: bool, app_id) -> None:
        self.results.append((item_id, success, app_id))


@pytest.fixture
def bridge():
    return RecordingBridge()
