"""
Message bus: typed envelope pub/sub over the host channel.

Delivery is at-most-once. Inbound envelopes are dispatched synchronously in
arrival order, so ordering within a kind is preserved. Publishing is
fire-and-forget; request/response with timeout is layered on top through the
pending-request table.
"""

import asyncio
import logging
import uuid
from typing import Any, Callable, Iterable, Optional, Protocol

from host_bridge.errors import RequestTimeoutError, TransportError
from host_bridge.models.envelope import MessageEnvelope
from host_bridge.models.events import InboundKind, OutboundKind
from host_bridge.transport.envelope import build_envelope, parse_envelope

logger = logging.getLogger(__name__)

Handler = Callable[[MessageEnvelope], None]


class HostChannel(Protocol):
    """The narrow boundary to the host page."""

    def bind(self, receiver: Callable[[Any], None]) -> None: ...

    def post(self, message: dict[str, Any]) -> None: ...


class Subscription:
    """A live listener. Calling the subscription cancels it."""

    __slots__ = ("predicate", "callback", "cancelled", "_on_cancel")

    def __init__(
        self,
        predicate: Callable[[Any], bool],
        callback: Callable[..., Any],
        on_cancel: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.predicate = predicate
        self.callback = callback
        self.cancelled = False
        self._on_cancel = on_cancel

    @property
    def active(self) -> bool:
        return not self.cancelled

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self._on_cancel is not None:
            self._on_cancel(self)

    __call__ = cancel


class _PendingRequest:
    __slots__ = ("request_id", "reply_kind", "future")

    def __init__(self, request_id: str, reply_kind: InboundKind, future: "asyncio.Future[MessageEnvelope]"):
        self.request_id = request_id
        self.reply_kind = reply_kind
        self.future = future


class MessageBus:
    def __init__(self, channel: Optional[HostChannel] = None, trusted_origins: Iterable[str] = ()):
        self._channel = channel
        self._trusted_origins = tuple(trusted_origins)
        self._subscriptions: list[Subscription] = []
        self._pending: dict[str, _PendingRequest] = {}
        self._disposed = False
        if channel is not None:
            channel.bind(self.deliver)

    @property
    def standalone(self) -> bool:
        return self._channel is None

    def publish(self, kind: OutboundKind, payload: Any = None, request_id: Optional[str] = None) -> None:
        """Send one envelope toward the host. Never retried."""
        if self._disposed:
            logger.debug("Bus disposed, dropping %s", kind.value)
            return
        if self._channel is None:
            logger.debug("No host channel, dropping %s", kind.value)
            return
        message = build_envelope(kind, payload, request_id=request_id)
        try:
            self._channel.post(message)
        except Exception as e:
            err = TransportError(f"Failed to post {kind.value}: {e}")
            logger.warning("%s", err)

    def subscribe(self, kind: InboundKind, handler: Handler) -> Subscription:
        sub = Subscription(lambda env: env.kind is kind, handler, on_cancel=self._remove)
        self._subscriptions.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        try:
            self._subscriptions.remove(sub)
        except ValueError:
            pass

    def deliver(self, raw: Any, origin: Optional[str] = None) -> Optional[MessageEnvelope]:
        """Inbound entry point. Returns the dispatched envelope, or None if dropped."""
        if self._disposed:
            return None
        envelope = parse_envelope(raw, origin=origin, trusted_origins=self._trusted_origins)
        if envelope is None:
            kind = raw.get("kind") if isinstance(raw, dict) else None
            logger.warning("Dropping unrecognized or malformed envelope (kind=%r)", kind)
            return None
        if not envelope.verified:
            logger.debug("Envelope %s from unverified origin %r", envelope.kind.value, envelope.origin)

        self._resolve_pending(envelope)

        for sub in list(self._subscriptions):
            if sub.cancelled or not sub.predicate(envelope):
                continue
            try:
                sub.callback(envelope)
            except Exception:
                logger.exception("Handler for %s failed", envelope.kind.value)
        return envelope

    async def request(
        self,
        kind: OutboundKind,
        payload: Any,
        reply_kind: InboundKind,
        timeout: float = 10.0,
    ) -> MessageEnvelope:
        """Publish and wait for the matching reply envelope."""
        request_id = str(uuid.uuid4())
        future: asyncio.Future[MessageEnvelope] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = _PendingRequest(request_id, reply_kind, future)
        try:
            self.publish(kind, payload, request_id=request_id)
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise RequestTimeoutError(
                f"Timed out waiting for {reply_kind.value} after {timeout}s", request_id=request_id,
            )
        finally:
            self._pending.pop(request_id, None)

    def _resolve_pending(self, envelope: MessageEnvelope) -> None:
        pending = self._pending.get(envelope.request_id) if envelope.request_id else None
        if pending is not None and pending.reply_kind is not envelope.kind:
            pending = None
        if pending is None:
            # Hosts that do not echo the correlation id: oldest waiter for this kind.
            pending = next(
                (p for p in self._pending.values() if p.reply_kind is envelope.kind and not p.future.done()),
                None,
            )
        if pending is not None and not pending.future.done():
            pending.future.set_result(envelope)

    def dispose(self) -> None:
        self._disposed = True
        for sub in list(self._subscriptions):
            sub.cancel()
        for pending in self._pending.values():
            if not pending.future.done():
                pending.future.cancel()
        self._pending.clear()
