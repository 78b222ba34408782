"""
EmbeddedRuntime: composition root for the host bridge.

Owns the single MessageBus and SessionCoordinator of a runtime instance and
hands them to every other component through a RuntimeContext.
"""

import logging
from datetime import timedelta
from typing import Optional

from host_bridge.auth import SessionCoordinator
from host_bridge.commands import CommandRouter
from host_bridge.config import RuntimeConfig
from host_bridge.context import ContextStore
from host_bridge.gate import AccessGate
from host_bridge.providers import CredentialStore, DataService, IdentityProvider
from host_bridge.query import QueryCache
from host_bridge.routing import MemoryNavigator, Navigator, RouteSync
from host_bridge.transport.bus import HostChannel, MessageBus

logger = logging.getLogger(__name__)


class RuntimeContext:
    """Shared collaborators passed to each component at construction."""

    __slots__ = ("config", "bus", "session")

    def __init__(self, config: RuntimeConfig, bus: MessageBus, session: SessionCoordinator):
        self.config = config
        self.bus = bus
        self.session = session

    @property
    def launch_session_id(self) -> Optional[str]:
        return self.config.session_id

    @property
    def standalone(self) -> bool:
        return not self.config.session_id


class EmbeddedRuntime:
    def __init__(
        self,
        config: RuntimeConfig,
        *,
        identity: IdentityProvider,
        data_service: DataService,
        credential_store: Optional[CredentialStore] = None,
        channel: Optional[HostChannel] = None,
        navigator: Optional[Navigator] = None,
    ):
        bus = MessageBus(channel, trusted_origins=config.trusted_origins)
        session = SessionCoordinator(
            identity,
            credential_store,
            origin=config.origin,
            scopes=config.scopes,
            launch_session_id=config.session_id,
            safety_margin=timedelta(seconds=config.token_safety_margin_s),
        )
        self.context = RuntimeContext(config, bus, session)
        self.navigator = navigator or MemoryNavigator()
        self.contexts = ContextStore(self.context)
        self.routes = RouteSync(self.context, self.navigator)
        self.router = CommandRouter(self.context, self.contexts, self.routes)
        self.queries = QueryCache(self.context, self.contexts, data_service)
        self.gate = AccessGate(session, self.contexts)
        self._initialized = False
        self._disposed = False

    @property
    def bus(self) -> MessageBus:
        return self.context.bus

    @property
    def session(self) -> SessionCoordinator:
        return self.context.session

    async def init(self) -> None:
        if self._initialized:
            raise RuntimeError("EmbeddedRuntime.init() called twice")
        if self._disposed:
            raise RuntimeError("EmbeddedRuntime has been disposed")
        self._initialized = True
        self.router.attach()
        self.routes.attach()
        await self.session.start()
        await self.contexts.initialize()
        logger.info(
            "Runtime %s initialized (%s)",
            self.context.config.app_name,
            "standalone" if self.context.standalone else f"session {self.context.launch_session_id}",
        )

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self.router.detach()
        self.routes.dispose()
        self.contexts.dispose()
        self.queries.dispose()
        self.gate.dispose()
        self.session.dispose()
        self.bus.dispose()

    async def __aenter__(self) -> "EmbeddedRuntime":
        await self.init()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.dispose()
