"""
REST HTTP client for the remote data service.
"""

from typing import Any, Optional

import httpx

from host_bridge.errors import FetchError

USER_AGENT = "host-bridge/0.1.0"


class HttpClient:
    def __init__(self, base_url: str, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @staticmethod
    def _auth_headers(token: Optional[str]) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def _unwrap(json_data: Any) -> Any:
        """Unwrap { "status": "success", "data": <actual_data> } responses."""
        if isinstance(json_data, dict) and "status" in json_data and "data" in json_data:
            return json_data["data"]
        return json_data

    def _check(self, resp: httpx.Response) -> Any:
        if resp.status_code >= 400:
            raise FetchError(f"HTTP {resp.status_code}: {resp.text[:200]}", code="http_error")
        if not resp.content:
            return None
        return self._unwrap(resp.json())

    async def get(self, path: str, token: Optional[str] = None) -> Any:
        resp = await self._client.get(path, headers=self._auth_headers(token))
        return self._check(resp)

    async def put(self, path: str, body: Any = None, token: Optional[str] = None) -> Any:
        resp = await self._client.put(path, json=body, headers=self._auth_headers(token))
        return self._check(resp)

    async def close(self) -> None:
        await self._client.aclose()
