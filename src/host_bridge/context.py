"""
Context store: holds the host-provided scoping entity.

With a launch session the host is authoritative: the store asks for the
context and gated consumers wait for it. Without one the store is
authoritative-empty and None is a steady state.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Optional

from host_bridge.errors import RequestTimeoutError, TransportError
from host_bridge.models.context import ContextEntity
from host_bridge.models.events import InboundKind, OutboundKind
from host_bridge.transport.bus import Subscription

if TYPE_CHECKING:
    from host_bridge.runtime import RuntimeContext

logger = logging.getLogger(__name__)

ContextListener = Callable[[Optional[ContextEntity]], None]


class ContextStore:
    def __init__(self, ctx: "RuntimeContext"):
        self._bus = ctx.bus
        self._standalone = ctx.standalone
        self._timeout = ctx.config.context_request_timeout_s
        self._attempts = ctx.config.context_request_attempts
        self._value: Optional[ContextEntity] = None
        self._waiters: list[asyncio.Future] = []
        self._listeners: list[Subscription] = []
        self._request_task: Optional[asyncio.Task] = None
        self._request_error: Optional[RequestTimeoutError] = None
        self._active = True

    @property
    def value(self) -> Optional[ContextEntity]:
        return self._value

    @property
    def standalone(self) -> bool:
        return self._standalone

    @property
    def active(self) -> bool:
        return self._active

    async def initialize(self) -> None:
        """Ask the host for the current context. Returns without waiting for it."""
        if self._standalone or self._request_task is not None or not self._active:
            return
        self._request_task = asyncio.ensure_future(self._request())

    async def _request(self) -> None:
        last: Optional[RequestTimeoutError] = None
        for attempt in range(1, self._attempts + 1):
            if self._value is not None or not self._active:
                return
            try:
                reply = await self._bus.request(
                    OutboundKind.REQUEST_CONTEXT, None, InboundKind.SET_CONTEXT, timeout=self._timeout,
                )
            except RequestTimeoutError as e:
                logger.warning("No context from host (attempt %d/%d): %s", attempt, self._attempts, e)
                last = e
                continue
            # Inbound handlers have run by now; a dropped reply leaves no value.
            if self._value is not None or not self._active:
                return
            logger.warning("Host reply carried no usable context (attempt %d/%d)", attempt, self._attempts)
            last = RequestTimeoutError("Host replied without a usable context", request_id=reply.request_id)
        if last is not None:
            self._fail_waiters(last)

    async def wait_for_context(self) -> Optional[ContextEntity]:
        """Resolve with the held context, or with the first one the host sends."""
        if self._value is not None or self._standalone:
            return self._value
        if not self._active:
            raise TransportError("Context store disposed")
        if self._request_error is not None:
            raise self._request_error
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await waiter
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def set_context(self, entity: Optional[ContextEntity]) -> None:
        """Replace the held context wholesale and notify subscribers."""
        if not self._active:
            logger.debug("Context store inactive, ignoring update")
            return
        self._value = entity
        if entity is not None:
            self._request_error = None
            waiters, self._waiters = self._waiters, []
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(entity)
        for sub in list(self._listeners):
            if sub.cancelled:
                continue
            try:
                sub.callback(entity)
            except Exception:
                logger.exception("Context listener failed")

    def subscribe(self, listener: ContextListener) -> Subscription:
        sub = Subscription(lambda _value: True, listener, on_cancel=self._listeners.remove)
        self._listeners.append(sub)
        return sub

    def _fail_waiters(self, error: RequestTimeoutError) -> None:
        self._request_error = error
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(error)

    def dispose(self) -> None:
        self._active = False
        if self._request_task is not None and not self._request_task.done():
            self._request_task.cancel()
        for sub in list(self._listeners):
            sub.cancel()
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(TransportError("Context store disposed"))
