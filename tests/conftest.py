"""
Shared fixtures: a stub tracking proxy served by aiohttp, temporary storage,
and an in-memory tracking client for the API tests
"""
import asyncio
import json
from typing import Dict, List, Tuple

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from config import TrackingConfig
from fallback import fallback
from shipment_store import LocalStorage
from tracking_api import TrackingClient


def provider_response(data, code=200, message="Request response is successful") -> str:
    """Body shaped like a TrackingMore answer"""
    return json.dumps({"meta": {"code": code, "message": message}, "data": data})


class ProxyStub:
    """Records requests and answers with canned responses"""

    def __init__(self):
        self.calls: List[dict] = []
        self.responses: Dict[str, Tuple[int, str]] = {}
        self.default = (200, provider_response({"delivery_status": "transit", "latest_event": "Departed hub"}))
        self.delay = 0.0
        self.url = ""

    def respond(self, tracking_number: str, status: int, body: str):
        self.responses[tracking_number] = (status, body)

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.calls.append(body)
        if self.delay:
            await asyncio.sleep(self.delay)
        status, text = self.responses.get(body.get("tracking_number"), self.default)
        return web.Response(status=status, text=text, content_type="application/json")


@pytest_asyncio.fixture
async def proxy_stub():
    stub = ProxyStub()
    app = web.Application()
    app.router.add_post("/api/track", stub.handle)
    async with TestServer(app) as server:
        stub.url = str(server.make_url("/api/track"))
        yield stub


@pytest.fixture
def client_for():
    """Build a TrackingClient pointed at a given URL"""
    def build(url: str, timeout: float = 5) -> TrackingClient:
        return TrackingClient(TrackingConfig(api_key="test-key", backend_url=url, timeout=timeout))
    return build


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "storage.json")


class FakeTrackingClient:
    """Answers every lookup with the simulated result for the code"""

    def __init__(self):
        self.calls = []

    async def lookup(self, code, courier, session=None):
        self.calls.append((code, courier))
        return fallback(code, courier)

    async def lookup_many(self, items):
        return list(await asyncio.gather(*(self.lookup(code, courier) for code, courier in items)))


@pytest.fixture
def fake_client() -> FakeTrackingClient:
    return FakeTrackingClient()
