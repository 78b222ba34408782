"""Shared fakes for the host channel, identity provider and data service."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from host_bridge.auth import SessionCoordinator
from host_bridge.config import RuntimeConfig
from host_bridge.models.session import AccessToken, Account, AuthResult, InteractionMode
from host_bridge.providers import MemoryCredentialStore, account_record
from host_bridge.runtime import RuntimeContext
from host_bridge.transport.bus import MessageBus

HOST_ORIGIN = "https://host.example.com"
APP_ORIGIN = "https://app.example.com"
SCOPES = ["parks.read"]


def make_result(account_id: str = "ranger", scopes=SCOPES, lifetime: timedelta = timedelta(hours=1), value: Optional[str] = None) -> AuthResult:
    return AuthResult(
        account=Account(id=account_id, username=f"{account_id}@example.com"),
        token=AccessToken(
            value=value or f"token-{account_id}",
            expires_at=datetime.now(timezone.utc) + lifetime,
            scopes=frozenset(scopes),
        ),
    )


class RecordingChannel:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.receiver = None

    def bind(self, receiver) -> None:
        self.receiver = receiver

    def post(self, message: dict[str, Any]) -> None:
        self.sent.append(message)

    def kinds(self) -> list[str]:
        return [m["kind"] for m in self.sent]

    def of_kind(self, kind: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m["kind"] == kind]

    def inject(self, kind: str, payload: Any = None, origin: Optional[str] = HOST_ORIGIN, **extra: Any):
        return self.receiver({"kind": kind, "payload": payload, **extra}, origin)


class FakeIdentity:
    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.silent_fails = False
        self.interactive_fails = False
        self.lifetime = timedelta(hours=1)
        self.silent_calls = 0
        self.interactive_calls = 0
        self.modes: list[InteractionMode] = []

    async def acquire_silent(self, scopes: list[str], account: Account) -> AuthResult:
        self.silent_calls += 1
        await asyncio.sleep(self.delay)
        if self.silent_fails:
            raise RuntimeError("interaction_required")
        return make_result(account.id, scopes, self.lifetime, value=f"silent-{self.silent_calls}")

    async def acquire_interactive(self, scopes: list[str], mode: InteractionMode) -> AuthResult:
        self.interactive_calls += 1
        self.modes.append(mode)
        await asyncio.sleep(self.delay)
        if self.interactive_fails:
            raise RuntimeError("user_cancelled")
        return make_result("ranger", scopes, self.lifetime, value=f"interactive-{self.interactive_calls}")


class FakeDataService:
    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.data: dict[tuple, Any] = {}
        self.failures: dict[tuple, int] = {}
        self.fetch_calls: list[tuple] = []
        self.mutate_calls: list[tuple] = []
        self.mutate_fails = False
        self.tokens: list[str] = []

    async def fetch(self, key: tuple, *, token: str) -> Any:
        self.fetch_calls.append(key)
        self.tokens.append(token)
        await asyncio.sleep(self.delay)
        if self.failures.get(key, 0) > 0:
            self.failures[key] -= 1
            raise ConnectionError(f"service unavailable for {key}")
        return self.data.get(key)

    async def mutate(self, key: tuple, value: Any, *, token: str) -> Any:
        self.mutate_calls.append((key, value))
        await asyncio.sleep(self.delay)
        if self.mutate_fails:
            raise ConnectionError("write rejected")
        self.data[key] = value
        return {"ok": True}


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_config(**overrides: Any) -> RuntimeConfig:
    values = dict(
        app_name="parks-app",
        origin=APP_ORIGIN,
        trusted_origins=[HOST_ORIGIN],
        scopes=SCOPES,
        session_id="launch-1",
        context_request_timeout_s=0.05,
        context_request_attempts=2,
        cache_ttl_s=60.0,
        cache_gc_time_s=300.0,
        fetch_retry_delay_s=0.0,
    )
    values.update(overrides)
    return RuntimeConfig(**values)


def make_context(config: RuntimeConfig, channel=None, identity=None, store=None) -> RuntimeContext:
    bus = MessageBus(channel, trusted_origins=config.trusted_origins)
    session = SessionCoordinator(
        identity or FakeIdentity(),
        store,
        origin=config.origin,
        scopes=config.scopes,
        launch_session_id=config.session_id,
    )
    return RuntimeContext(config, bus, session)


def signed_in_store(account_id: str = "ranger") -> MemoryCredentialStore:
    return MemoryCredentialStore({APP_ORIGIN: account_record(Account(id=account_id))})


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture
def service() -> FakeDataService:
    return FakeDataService()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
