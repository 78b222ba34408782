"""
Socket.IO host channel: carries envelopes to and from a host relay.

Each envelope is emitted under its kind as the event name; every inbound event
is handed to the bound bus receiver with the relay URL as fallback origin.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import socketio

logger = logging.getLogger(__name__)

SOCKETIO_PATH = "/socket.io/"
_LIFECYCLE_EVENTS = ("connect", "disconnect", "connect_error")


class SocketIOChannel:
    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        transports: Optional[list[str]] = None,
        socketio_path: str = SOCKETIO_PATH,
        connect_timeout: float = 15.0,
    ):
        self._url = url
        self._token = token
        self._transports = transports or ["websocket"]
        self._socketio_path = socketio_path
        self._connect_timeout = connect_timeout
        self._sio: Optional[socketio.AsyncClient] = None
        self._receiver: Optional[Callable[..., Any]] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def connected(self) -> bool:
        return self._sio is not None and self._sio.connected

    def bind(self, receiver: Callable[..., Any]) -> None:
        """Attach the inbound receiver. A channel serves exactly one bus."""
        if self._receiver is not None and self._receiver != receiver:
            raise RuntimeError("SocketIOChannel is already bound to a message bus")
        self._receiver = receiver

    async def connect(self) -> None:
        if self._sio and self._sio.connected:
            return

        self._sio = socketio.AsyncClient()

        @self._sio.on("*")
        async def on_any(event: str, data: Any = None) -> None:
            if event in _LIFECYCLE_EVENTS or self._receiver is None:
                return
            raw = data if isinstance(data, dict) and "kind" in data else {"kind": event, "payload": data}
            origin = raw.get("origin") or self._url
            self._receiver(raw, origin)

        @self._sio.event
        async def disconnect(_reason: str = "") -> None:
            logger.info("Host relay disconnected")

        auth = {"token": self._token} if self._token else None
        try:
            await asyncio.wait_for(
                self._sio.connect(
                    self._url,
                    auth=auth,
                    transports=self._transports,
                    socketio_path=self._socketio_path,
                ),
                timeout=self._connect_timeout,
            )
        except asyncio.TimeoutError:
            raise TimeoutError(f"Timed out connecting to host relay after {self._connect_timeout}s")

    def post(self, message: dict[str, Any]) -> None:
        """Schedule the emit on the running loop. Failures are logged, not raised."""
        if not self._sio or not self._sio.connected:
            raise RuntimeError("Socket.IO not connected")
        kind = message["kind"]

        async def _do_emit() -> None:
            try:
                await self._sio.emit(kind, message)  # type: ignore[union-attr]
            except Exception as e:
                logger.error("Emit failed for %s: %s", kind, e)

        task = asyncio.get_running_loop().create_task(_do_emit())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def disconnect(self) -> None:
        if self._sio:
            await self._sio.disconnect()
            self._sio = None
