import asyncio
import logging

import pytest
from unittest.mock import MagicMock

from mqtt_ui_bridge.client.bridge import EventBridge
from mqtt_ui_bridge.client.connection import (
    ConnectionAcknowledged,
    EventStream,
    Outgoing,
    ProtocolEventKind,
    PublishReceived,
    SubscriptionAcknowledged,
)
from mqtt_ui_bridge.client.errors import ConnectionLostError
from mqtt_ui_bridge.client.models import InboundMessage, Notification, NotificationKind

"""
Tests for the Event Bridge: protocol event -> notification mapping and the
loop's termination rules.
"""


def start_bridge(sink):
    events = EventStream(asyncio.get_running_loop())
    task = asyncio.create_task(EventBridge(events, sink).run())
    return events, task


def test_every_event_kind_has_a_handler(recording_sink):
    bridge = EventBridge(EventStream(MagicMock()), recording_sink)
    assert set(bridge.handlers) == set(ProtocolEventKind)


@pytest.mark.asyncio
async def test_connack_emits_connected(recording_sink):
    events, task = start_bridge(recording_sink)
    events.push(ConnectionAcknowledged())
    events.finish()
    await asyncio.wait_for(task, timeout=1)

    assert recording_sink.notifications == [Notification.connected()]


@pytest.mark.asyncio
async def test_publish_emits_exactly_one_message(recording_sink):
    events, task = start_bridge(recording_sink)
    events.push(PublishReceived(topic="t", payload=bytes([1, 2, 3]), qos=1, retain=False, dup=False))
    events.finish()
    await asyncio.wait_for(task, timeout=1)

    assert recording_sink.notifications == [
        Notification.message(InboundMessage(topic="t", payload=b"\x01\x02\x03", qos=1, retained=False, dup=False))
    ]


@pytest.mark.asyncio
async def test_suback_is_logged_only(recording_sink, caplog):
    events, task = start_bridge(recording_sink)
    with caplog.at_level(logging.INFO):
        events.push(SubscriptionAcknowledged(mid=3, granted=("Granted QoS 1",)))
        events.push(Outgoing(packet="subscribe"))
        events.finish()
        await asyncio.wait_for(task, timeout=1)

    assert recording_sink.notifications == []
    assert "Subscription acknowledged" in caplog.text


@pytest.mark.asyncio
async def test_stream_error_emits_one_error_and_stops_consuming(recording_sink):
    events, task = start_bridge(recording_sink)
    events.push(ConnectionLostError("Unexpected disconnect: Keep alive timeout"))
    events.push(ConnectionAcknowledged())
    events.push(PublishReceived(topic="late", payload=b"x", qos=0, retain=False, dup=False))
    await asyncio.wait_for(task, timeout=1)

    assert recording_sink.notifications == [
        Notification.error("Connection error: Unexpected disconnect: Keep alive timeout")
    ]
    # The loop is gone; nothing reads the later events.
    await asyncio.sleep(0)
    assert len(recording_sink.notifications) == 1


@pytest.mark.asyncio
async def test_end_of_stream_ends_quietly(recording_sink):
    events, task = start_bridge(recording_sink)
    events.finish()
    await asyncio.wait_for(task, timeout=1)

    assert task.done() and not task.cancelled()
    assert recording_sink.notifications == []


@pytest.mark.asyncio
async def test_cancellation_stops_the_loop(recording_sink):
    events, task = start_bridge(recording_sink)
    await asyncio.sleep(0)

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    assert task.cancelled()


@pytest.mark.asyncio
async def test_failing_sink_does_not_stop_the_bridge():
    class FlakySink:
        def __init__(self):
            self.calls = 0
            self.kept = []

        def emit(self, notification):
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("host window closed")
            self.kept.append(notification)

    sink = FlakySink()
    events, task = start_bridge(sink)
    events.push(ConnectionAcknowledged())
    events.push(PublishReceived(topic="a", payload=b"1", qos=0, retain=True, dup=True))
    events.finish()
    await asyncio.wait_for(task, timeout=1)

    assert [n.kind for n in sink.kept] == [NotificationKind.MESSAGE]
    assert sink.kept[0].payload.retained is True
    assert sink.kept[0].payload.dup is True
