"""
Route sync: keeps the host's view of our navigation state current.

Local changes are reported as pathChange/paramChange, deduplicated against the
last emitted location. A host-initiated navigate records its target as emitted
before navigating, so the local-change hook it triggers stays silent.
"""

import logging
from typing import TYPE_CHECKING, Callable, Optional, Protocol
from urllib.parse import urlsplit

from host_bridge.models.envelope import PathChangePayload
from host_bridge.models.events import OutboundKind

if TYPE_CHECKING:
    from host_bridge.runtime import RuntimeContext

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]


class Navigator(Protocol):
    """The embedded app's router."""

    def navigate(self, url: str) -> None: ...

    def on_change(self, listener: ChangeListener) -> Callable[[], None]: ...


class MemoryNavigator:
    """In-process router: navigating fires the change hook synchronously."""

    def __init__(self, initial: str = "/"):
        self.current = initial
        self.history: list[str] = []
        self._listeners: list[ChangeListener] = []

    def navigate(self, url: str) -> None:
        self.current = url
        self.history.append(url)
        for listener in list(self._listeners):
            listener(url)

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return remove


def split_location(url: str) -> tuple[str, str]:
    """("/a/b?x=1") -> ("/a/b?x=1", "x=1") with an empty path normalized to "/"."""
    parts = urlsplit(url)
    path = parts.path or "/"
    location = f"{path}?{parts.query}" if parts.query else path
    return location, parts.query


class RouteSync:
    def __init__(self, ctx: "RuntimeContext", navigator: Navigator):
        self._bus = ctx.bus
        self._app_name = ctx.config.app_name
        self._navigator = navigator
        self._last_path: Optional[str] = None
        self._last_query = ""
        self._detach: Optional[Callable[[], None]] = None
        self._active = True

    @property
    def last_emitted_path(self) -> Optional[str]:
        return self._last_path

    def attach(self) -> None:
        if self._detach is None:
            self._detach = self._navigator.on_change(self.on_local_change)

    def on_local_change(self, url: str) -> None:
        if not self._active:
            return
        location, query = split_location(url)
        if location == self._last_path:
            return
        self._last_path = location
        self._bus.publish(
            OutboundKind.PATH_CHANGE,
            PathChangePayload(app_name=self._app_name, url=location).model_dump(by_alias=True),
        )
        if query != self._last_query:
            self._last_query = query
            self._bus.publish(OutboundKind.PARAM_CHANGE, query)

    def handle_navigate(self, target: str) -> None:
        """Host asked us to navigate. Not echoed back."""
        if not self._active:
            logger.debug("Route sync inactive, ignoring navigate to %s", target)
            return
        location, query = split_location(target)
        self._last_path = location
        self._last_query = query
        self._navigator.navigate(location)

    def dispose(self) -> None:
        self._active = False
        if self._detach is not None:
            self._detach()
            self._detach = None
