"""
Remote data service over HTTP: keys map onto URL paths.

("park-123", "comms") -> GET /parks/park-123/comms with the default prefix.
"""

from typing import Any
from urllib.parse import quote

from host_bridge.transport.http import HttpClient


class HttpDataService:
    def __init__(self, http: HttpClient, prefix: str = "/parks"):
        self._http = http
        self._prefix = prefix.rstrip("/")

    def path_for(self, key: tuple) -> str:
        segments = [quote(str(s), safe="") for s in key if s is not None]
        return "/".join([self._prefix, *segments])

    async def fetch(self, key: tuple, *, token: str) -> Any:
        return await self._http.get(self.path_for(key), token=token)

    async def mutate(self, key: tuple, value: Any, *, token: str) -> Any:
        return await self._http.put(self.path_for(key), value, token=token)

    async def close(self) -> None:
        await self._http.close()
