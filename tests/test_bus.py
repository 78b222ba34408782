"""MessageBus: envelopes, dispatch, trust flags and request/response."""

import asyncio
import logging

import pytest

from host_bridge.errors import RequestTimeoutError
from host_bridge.models.events import InboundKind, OriginTrust, OutboundKind
from host_bridge.transport.bus import MessageBus

from conftest import HOST_ORIGIN, RecordingChannel


def make_bus(channel: RecordingChannel) -> MessageBus:
    return MessageBus(channel, trusted_origins=[HOST_ORIGIN])


class TestPublish:
    def test_publish_builds_envelope(self, channel):
        bus = make_bus(channel)
        bus.publish(OutboundKind.PATH_CHANGE, {"appName": "parks-app", "url": "/essential"})

        assert len(channel.sent) == 1
        message = channel.sent[0]
        assert message["kind"] == "pathChange"
        assert message["payload"] == {"appName": "parks-app", "url": "/essential"}
        assert message["metadata"]["event_id"]
        assert message["metadata"]["version"] == 1
        assert "origin_trust" not in message

    def test_publish_without_channel_is_dropped(self):
        bus = MessageBus()
        assert bus.standalone
        bus.publish(OutboundKind.REQUEST_CONTEXT)

    def test_channel_failure_is_logged_not_raised(self, caplog):
        class BrokenChannel(RecordingChannel):
            def post(self, message):
                raise OSError("frame detached")

        bus = make_bus(BrokenChannel())
        with caplog.at_level(logging.WARNING):
            bus.publish(OutboundKind.PARAM_CHANGE, "a=1")
        assert "frame detached" in caplog.text


class TestDeliver:
    def test_handlers_run_in_arrival_order(self, channel):
        bus = make_bus(channel)
        seen = []
        bus.subscribe(InboundKind.NAVIGATE, lambda env: seen.append(env.payload))

        channel.inject("navigate", "/a")
        channel.inject("navigate", "/b")
        channel.inject("setContext", None)

        assert seen == ["/a", "/b"]

    def test_unsubscribe_by_calling_subscription(self, channel):
        bus = make_bus(channel)
        seen = []
        sub = bus.subscribe(InboundKind.NAVIGATE, seen.append)
        sub()

        channel.inject("navigate", "/a")
        assert seen == []
        assert sub.cancelled

    def test_unknown_kind_is_dropped(self, channel, caplog):
        bus = make_bus(channel)
        seen = []
        bus.subscribe(InboundKind.NAVIGATE, seen.append)

        with caplog.at_level(logging.WARNING):
            assert channel.inject("launchRockets", {}) is None
        assert seen == []
        assert "launchRockets" in caplog.text

    def test_non_dict_is_dropped(self, channel):
        bus = make_bus(channel)
        assert bus.deliver("navigate:/a", HOST_ORIGIN) is None

    def test_origin_trust_flag(self, channel):
        bus = make_bus(channel)
        seen = []
        bus.subscribe(InboundKind.NAVIGATE, seen.append)

        channel.inject("navigate", "/a")
        channel.inject("navigate", "/b", origin="https://evil.example.com")
        channel.inject("navigate", "/c", origin=None)

        assert [e.origin_trust for e in seen] == [
            OriginTrust.VERIFIED, OriginTrust.UNVERIFIED, OriginTrust.UNVERIFIED,
        ]

    def test_declared_origin_in_envelope(self, channel):
        bus = make_bus(channel)
        envelope = bus.deliver({"kind": "navigate", "payload": "/a", "origin": HOST_ORIGIN + "/"})
        assert envelope.verified

    def test_failing_handler_does_not_block_others(self, channel, caplog):
        bus = make_bus(channel)
        seen = []

        def broken(_env):
            raise RuntimeError("boom")

        bus.subscribe(InboundKind.NAVIGATE, broken)
        bus.subscribe(InboundKind.NAVIGATE, lambda env: seen.append(env.payload))

        with caplog.at_level(logging.ERROR):
            channel.inject("navigate", "/a")
        assert seen == ["/a"]
        assert "boom" in caplog.text

    def test_dispose_cancels_subscriptions(self, channel):
        bus = make_bus(channel)
        seen = []
        sub = bus.subscribe(InboundKind.NAVIGATE, seen.append)
        bus.dispose()

        channel.inject("navigate", "/a")
        assert sub.cancelled
        assert seen == []


class TestRequest:
    @pytest.mark.asyncio
    async def test_reply_matched_by_request_id(self, channel):
        bus = make_bus(channel)
        task = asyncio.ensure_future(
            bus.request(OutboundKind.REQUEST_CONTEXT, None, InboundKind.SET_CONTEXT, timeout=1.0)
        )
        await asyncio.sleep(0)
        request_id = channel.sent[0]["metadata"]["request_id"]

        channel.inject("setContext", {"id": "park-1"}, metadata={
            "event_id": "e1", "request_id": request_id, "timestamp": "2026-01-01T00:00:00Z",
        })
        reply = await task
        assert reply.request_id == request_id
        assert reply.payload == {"id": "park-1"}

    @pytest.mark.asyncio
    async def test_reply_without_correlation_matches_oldest(self, channel):
        bus = make_bus(channel)
        task = asyncio.ensure_future(
            bus.request(OutboundKind.REQUEST_CONTEXT, None, InboundKind.SET_CONTEXT, timeout=1.0)
        )
        await asyncio.sleep(0)

        channel.inject("navigate", "/ignored")
        channel.inject("setContext", {"id": "park-1"})
        reply = await task
        assert reply.kind is InboundKind.SET_CONTEXT

    @pytest.mark.asyncio
    async def test_timeout(self, channel):
        bus = make_bus(channel)
        with pytest.raises(RequestTimeoutError) as exc:
            await bus.request(OutboundKind.REQUEST_CONTEXT, None, InboundKind.SET_CONTEXT, timeout=0.01)
        assert exc.value.request_id == channel.sent[0]["metadata"]["request_id"]
