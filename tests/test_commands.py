"""CommandRouter: validation and routing of inbound envelopes."""

import logging

import pytest

from host_bridge.commands import CommandRouter
from host_bridge.context import ContextStore
from host_bridge.errors import ValidationError
from host_bridge.models.envelope import MessageEnvelope
from host_bridge.models.events import InboundKind
from host_bridge.models.session import Authenticated
from host_bridge.routing import MemoryNavigator, RouteSync

from conftest import make_config, make_context, signed_in_store


def make_router(channel, store=None):
    ctx = make_context(make_config(), channel, store=store)
    contexts = ContextStore(ctx)
    navigator = MemoryNavigator()
    routes = RouteSync(ctx, navigator)
    router = CommandRouter(ctx, contexts, routes)
    router.attach()
    return router, contexts, navigator, ctx


class TestRouting:
    def test_set_context_reaches_store(self, channel):
        _, contexts, _, _ = make_router(channel)
        channel.inject("setContext", {"id": "park-123", "name": "Test Park"})
        assert contexts.value.id == "park-123"

    def test_null_context(self, channel):
        _, contexts, _, _ = make_router(channel)
        channel.inject("setContext", {"id": "park-123"})
        channel.inject("setContext", None)
        assert contexts.value is None

    def test_navigate_reaches_navigator(self, channel):
        _, _, navigator, _ = make_router(channel)
        channel.inject("navigate", "/marketing")
        assert navigator.current == "/marketing"

    def test_detach_stops_routing(self, channel):
        router, contexts, _, _ = make_router(channel)
        router.detach()
        channel.inject("setContext", {"id": "park-123"})
        assert contexts.value is None


class TestValidation:
    def test_malformed_context_dropped_and_logged(self, channel, caplog):
        _, contexts, _, _ = make_router(channel)
        with caplog.at_level(logging.WARNING):
            channel.inject("setContext", {"name": "no id"})
        assert contexts.value is None
        assert "setContext" in caplog.text

    @pytest.mark.parametrize("payload", [42, None, "", {"path": "/a"}])
    def test_bad_navigate_payload_dropped(self, channel, payload):
        _, _, navigator, _ = make_router(channel)
        channel.inject("navigate", payload)
        assert navigator.history == []

    def test_validate_raises_validation_error(self, channel):
        router, _, _, _ = make_router(channel)
        envelope = MessageEnvelope(kind=InboundKind.NAVIGATE, payload=7)
        with pytest.raises(ValidationError) as exc:
            router.validate(envelope)
        assert exc.value.kind == "navigate"

    def test_unknown_kind_ignored(self, channel):
        _, contexts, navigator, _ = make_router(channel)
        channel.inject("setTheme", {"dark": True})
        assert contexts.value is None
        assert navigator.history == []


class TestSignOut:
    @pytest.mark.asyncio
    async def test_unverified_sign_out_ignored(self, channel):
        _, _, _, ctx = make_router(channel, store=signed_in_store())
        await ctx.session.start()

        channel.inject("signOut", origin="https://evil.example.com")
        assert isinstance(ctx.session.state, Authenticated)

    @pytest.mark.asyncio
    async def test_verified_sign_out(self, channel):
        _, _, _, ctx = make_router(channel, store=signed_in_store())
        await ctx.session.start()

        channel.inject("signOut")
        assert ctx.session.state.phase == "no_account"
