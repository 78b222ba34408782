"""HTTP data service over a mocked transport."""

import json

import httpx
import pytest

from host_bridge.data import HttpDataService
from host_bridge.errors import FetchError
from host_bridge.transport.http import HttpClient


def make_service(handler) -> HttpDataService:
    return HttpDataService(HttpClient("https://api.example.com", transport=httpx.MockTransport(handler)))


class TestHttpDataService:
    @pytest.mark.asyncio
    async def test_fetch_maps_key_to_path(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"status": "success", "data": ["welcome"]})

        service = make_service(handler)
        assert await service.fetch(("park-123", "comms"), token="tok") == ["welcome"]
        assert seen == {"path": "/parks/park-123/comms", "auth": "Bearer tok"}
        await service.close()

    @pytest.mark.asyncio
    async def test_mutate_puts_json(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(204)

        service = make_service(handler)
        assert await service.mutate(("park-123", "comms", "1"), {"title": "new"}, token="tok") is None
        assert seen == {"method": "PUT", "body": {"title": "new"}}
        await service.close()

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        service = make_service(lambda request: httpx.Response(503, text="maintenance"))
        with pytest.raises(FetchError) as exc:
            await service.fetch(("park-123",), token="tok")
        assert exc.value.code == "http_error"
        await service.close()
