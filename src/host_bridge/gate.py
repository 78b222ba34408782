"""
Access gate: decides whether gated content may render.
"""

from enum import Enum
from typing import TYPE_CHECKING, Optional

from host_bridge.errors import AuthError
from host_bridge.models.context import ContextEntity
from host_bridge.models.session import Failed, SessionState
from host_bridge.transport.bus import Subscription

if TYPE_CHECKING:
    from host_bridge.auth import SessionCoordinator
    from host_bridge.context import ContextStore


class GateStatus(str, Enum):
    PENDING = "pending"
    LOGIN_REQUIRED = "login_required"
    BLOCKED = "blocked"
    READY = "ready"


class AccessGate:
    def __init__(self, session: "SessionCoordinator", contexts: "ContextStore"):
        self._session = session
        self._contexts = contexts
        self._blocked_reason: Optional[str] = None
        self._subscription: Subscription = session.subscribe(self._on_session)

    def _on_session(self, state: SessionState) -> None:
        if isinstance(state, Failed):
            self._blocked_reason = state.reason

    @property
    def blocked_reason(self) -> Optional[str]:
        return self._blocked_reason

    @property
    def status(self) -> GateStatus:
        phase = self._session.state.phase
        if phase == "failed":
            return GateStatus.BLOCKED
        if phase == "no_account":
            return GateStatus.LOGIN_REQUIRED
        if phase not in ("authenticated", "silent_refreshing"):
            return GateStatus.PENDING
        if not self._contexts.standalone and self._contexts.value is None:
            return GateStatus.PENDING
        return GateStatus.READY

    async def wait_open(self) -> Optional[ContextEntity]:
        """Authenticate (prompting if needed) and wait for the host context.

        Raises AuthError when the session has failed; the block is permanent.
        """
        state = self._session.state
        if isinstance(state, Failed):
            raise AuthError(state.reason, code="auth_failed")
        await self._session.get_token()
        if self._contexts.standalone:
            return self._contexts.value
        return await self._contexts.wait_for_context()

    def dispose(self) -> None:
        self._subscription.cancel()
