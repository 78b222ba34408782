"""
Session coordinator: the authentication state machine.

    Uninitialized -> ResolvingHandoff -> NoAccount | Authenticated
    NoAccount -> AcquiringInteractive -> Authenticated | Failed
    Authenticated -> SilentRefreshing -> Authenticated | AcquiringInteractive
    Authenticated | SilentRefreshing | NoAccount -> NoAccount   (host sign-out)
    * -> Failed

Failed is terminal. Token acquisitions are coalesced per scope set.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from host_bridge.errors import AuthError, InvalidTransitionError
from host_bridge.models.envelope import MessageEnvelope
from host_bridge.models.session import (
    AccessToken,
    AcquiringInteractive,
    Authenticated,
    AuthResult,
    Failed,
    InteractionMode,
    NoAccount,
    ResolvingHandoff,
    SessionState,
    SilentRefreshing,
    Uninitialized,
)
from host_bridge.providers import (
    CredentialStore,
    IdentityProvider,
    MemoryCredentialStore,
    account_from_record,
    account_record,
)
from host_bridge.transport.bus import Subscription

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_MARGIN = timedelta(minutes=5)

TRANSITIONS: dict[str, frozenset[str]] = {
    "uninitialized": frozenset({"resolving_handoff"}),
    "resolving_handoff": frozenset({"no_account", "authenticated"}),
    "no_account": frozenset({"acquiring_interactive", "no_account"}),
    "acquiring_interactive": frozenset({"authenticated"}),
    "authenticated": frozenset({"silent_refreshing", "no_account"}),
    "silent_refreshing": frozenset({"authenticated", "acquiring_interactive", "no_account"}),
    "failed": frozenset(),
}

StateListener = Callable[[SessionState], None]


class SessionCoordinator:
    def __init__(
        self,
        identity: IdentityProvider,
        store: Optional[CredentialStore] = None,
        *,
        origin: str,
        scopes: Iterable[str] = (),
        launch_session_id: Optional[str] = None,
        safety_margin: timedelta = DEFAULT_SAFETY_MARGIN,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self._identity = identity
        self._store = store if store is not None else MemoryCredentialStore()
        self._origin = origin
        self._default_scopes = frozenset(scopes)
        self._launch_session_id = launch_session_id
        self._safety_margin = safety_margin
        self._now = now or (lambda: datetime.now(timezone.utc))

        self._state: SessionState = Uninitialized()
        self._listeners: list[Subscription] = []
        self._inflight: dict[frozenset[str], asyncio.Future] = {}
        self._lock = asyncio.Lock()
        self._starting: Optional[asyncio.Future] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def interaction_mode(self) -> InteractionMode:
        # Launched with a session: never prompt inside the frame.
        if self._launch_session_id:
            return InteractionMode.HANDOFF
        return InteractionMode.OVERLAY

    def subscribe(self, listener: StateListener) -> Subscription:
        sub = Subscription(lambda _state: True, listener, on_cancel=self._listeners.remove)
        self._listeners.append(sub)
        return sub

    def _transition(self, target: SessionState) -> None:
        source = self._state.phase
        if target.phase != "failed" and target.phase not in TRANSITIONS[source]:
            raise InvalidTransitionError(source, target.phase)
        if source == "failed":
            raise InvalidTransitionError(source, target.phase)
        self._state = target
        logger.info("Session %s -> %s", source, target.phase)
        for sub in list(self._listeners):
            if sub.cancelled:
                continue
            try:
                sub.callback(target)
            except Exception:
                logger.exception("Session state listener failed")

    def fail(self, reason: str) -> None:
        """Unrecoverable error: enter the terminal Failed state."""
        if isinstance(self._state, Failed):
            return
        logger.error("Authentication failed: %s", reason)
        self._transition(Failed(reason=reason))

    async def start(self) -> SessionState:
        if self._starting is None:
            self._starting = asyncio.ensure_future(self._resolve())
        await asyncio.shield(self._starting)
        return self._state

    async def _resolve(self) -> None:
        self._transition(ResolvingHandoff(session_id=self._launch_session_id))
        try:
            account = account_from_record(self._store.get(self._origin))
        except Exception as e:
            self.fail(f"Could not read stored session: {e}")
            return
        if account is None:
            self._transition(NoAccount())
            return
        try:
            result = await self._identity.acquire_silent(sorted(self._default_scopes), account)
        except Exception as e:
            if isinstance(self._state, Failed):
                return
            logger.info("Stored account %s needs interactive login: %s", account.id, e)
            self._transition(NoAccount())
            return
        if isinstance(self._state, Failed):
            return
        self._authenticated(result)

    def _authenticated(self, result: AuthResult) -> AccessToken:
        self._transition(Authenticated(account=result.account, token=result.token))
        try:
            self._store.set(self._origin, account_record(result.account))
        except Exception:
            logger.exception("Could not persist account %s", result.account.id)
        return result.token

    def _usable(self, scopes: frozenset[str]) -> Optional[AccessToken]:
        state = self._state
        if (
            isinstance(state, Authenticated)
            and state.token.covers(scopes)
            and state.token.valid_for(self._safety_margin, self._now())
        ):
            return state.token
        return None

    async def get_token(self, scopes: Optional[Iterable[str]] = None) -> str:
        """Current access token for ``scopes``, acquiring one if needed.

        Concurrent calls for the same scope set share one acquisition. Raises
        AuthError once the session has failed.
        """
        key = frozenset(scopes) if scopes is not None else self._default_scopes
        if isinstance(self._state, Uninitialized) or self._starting is not None:
            await self.start()
        if isinstance(self._state, Failed):
            raise AuthError(self._state.reason, code="auth_failed")
        token = self._usable(key)
        if token is not None:
            return token.value

        pending = self._inflight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._acquire(key))
            self._inflight[key] = pending
            pending.add_done_callback(lambda fut, k=key: self._forget(k, fut))
        token = await asyncio.shield(pending)
        return token.value

    def _forget(self, key: frozenset[str], fut: asyncio.Future) -> None:
        if self._inflight.get(key) is fut:
            del self._inflight[key]
        if not fut.cancelled():
            fut.exception()

    async def login(self, scopes: Optional[Iterable[str]] = None) -> Authenticated:
        """Explicit login request from NoAccount."""
        await self.get_token(scopes)
        state = self._state
        if not isinstance(state, Authenticated):
            raise AuthError(f"Login did not complete (state {state.phase})", code="login_required")
        return state

    async def _acquire(self, scopes: frozenset[str]) -> AccessToken:
        async with self._lock:
            state = self._state
            if isinstance(state, Failed):
                raise AuthError(state.reason, code="auth_failed")
            token = self._usable(scopes)
            if token is not None:
                return token

            if isinstance(state, Authenticated):
                self._transition(SilentRefreshing(account=state.account))
                try:
                    result = await self._identity.acquire_silent(sorted(scopes), state.account)
                except Exception as e:
                    logger.warning("Silent token refresh failed, falling back to interactive: %s", e)
                else:
                    if isinstance(self._state, SilentRefreshing):
                        return self._authenticated(result)
                    raise AuthError("Session changed during refresh", code="login_required")
                if not isinstance(self._state, SilentRefreshing):
                    raise AuthError("Session changed during refresh", code="login_required")
            elif not isinstance(state, NoAccount):
                raise AuthError(f"Cannot acquire token in state {state.phase}", code="login_required")

            return await self._interactive(scopes)

    async def _interactive(self, scopes: frozenset[str]) -> AccessToken:
        mode = self.interaction_mode
        self._transition(AcquiringInteractive(mode=mode))
        try:
            result = await self._identity.acquire_interactive(sorted(scopes), mode)
        except Exception as e:
            self.fail(f"Interactive login failed: {e}")
            raise AuthError(f"Interactive login failed: {e}", code="auth_failed") from e
        return self._authenticated(result)

    def sign_out(self) -> None:
        if self._state.phase not in ("authenticated", "silent_refreshing", "no_account"):
            logger.warning("Ignoring sign-out in state %s", self._state.phase)
            return
        try:
            self._store.delete(self._origin)
        finally:
            self._transition(NoAccount())

    def handle_sign_out(self, envelope: MessageEnvelope) -> bool:
        """Host-initiated sign-out. Unverified envelopes never touch session state."""
        if not envelope.verified:
            logger.warning("Rejecting %s from unverified origin %r", envelope.kind.value, envelope.origin)
            return False
        self.sign_out()
        return True

    def dispose(self) -> None:
        for sub in list(self._listeners):
            sub.cancel()
        for fut in list(self._inflight.values()):
            fut.cancel()
        self._inflight.clear()
        if self._starting is not None and not self._starting.done():
            self._starting.cancel()
