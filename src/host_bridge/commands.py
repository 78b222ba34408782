"""
Command router: validates inbound envelopes and hands each to one component.
"""

import logging
from typing import TYPE_CHECKING, Annotated, Any, Callable, Optional

import pydantic
from pydantic import StringConstraints, TypeAdapter

from host_bridge.errors import ValidationError
from host_bridge.models.context import ContextEntity
from host_bridge.models.envelope import MessageEnvelope
from host_bridge.models.events import InboundKind
from host_bridge.transport.bus import Subscription

if TYPE_CHECKING:
    from host_bridge.context import ContextStore
    from host_bridge.routing import RouteSync
    from host_bridge.runtime import RuntimeContext

logger = logging.getLogger(__name__)

PAYLOAD_SCHEMAS: dict[InboundKind, TypeAdapter] = {
    InboundKind.NAVIGATE: TypeAdapter(Annotated[str, StringConstraints(strict=True, min_length=1)]),
    InboundKind.SET_CONTEXT: TypeAdapter(Optional[ContextEntity]),
    InboundKind.SIGN_OUT: TypeAdapter(None),
}


class CommandRouter:
    def __init__(self, ctx: "RuntimeContext", contexts: "ContextStore", routes: "RouteSync"):
        self._bus = ctx.bus
        self._handlers: dict[InboundKind, Callable[[MessageEnvelope, Any], None]] = {
            InboundKind.NAVIGATE: lambda _env, target: routes.handle_navigate(target),
            InboundKind.SET_CONTEXT: lambda _env, entity: contexts.set_context(entity),
            InboundKind.SIGN_OUT: lambda env, _payload: ctx.session.handle_sign_out(env),
        }
        self._subscriptions: list[Subscription] = []

    def attach(self) -> None:
        if self._subscriptions:
            return
        for kind in self._handlers:
            self._subscriptions.append(self._bus.subscribe(kind, self.dispatch))

    def validate(self, envelope: MessageEnvelope) -> Any:
        schema = PAYLOAD_SCHEMAS.get(envelope.kind)
        if schema is None:
            raise ValidationError(f"No schema for {envelope.kind}", kind=str(envelope.kind))
        try:
            return schema.validate_python(envelope.payload)
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Invalid {envelope.kind.value} payload: {e.error_count()} error(s)", kind=envelope.kind.value,
            ) from e

    def dispatch(self, envelope: MessageEnvelope) -> bool:
        """Route one envelope. Returns False when it was dropped."""
        handler = self._handlers.get(envelope.kind)
        if handler is None:
            logger.debug("Ignoring envelope kind %s", envelope.kind)
            return False
        try:
            payload = self.validate(envelope)
        except ValidationError as e:
            logger.warning("Dropping envelope: %s", e)
            return False
        handler(envelope, payload)
        return True

    def detach(self) -> None:
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions.clear()
