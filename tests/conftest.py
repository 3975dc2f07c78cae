"""
Pytest Configuration and Fixtures for the mqtt_ui_bridge project.

This module provides a fake protocol engine (connections whose event stream
the tests feed by hand), a recording notification sink and an embedded amqtt
broker for the tests that talk to a real broker.
"""

import asyncio
import socket
import sys
import logging
from typing import List, Optional

import pytest
import pytest_asyncio
from amqtt.broker import Broker

from mqtt_ui_bridge.client.connection import ConnectionOptions, EventStream
from mqtt_ui_bridge.client.errors import DisconnectError, SubscribeError
from mqtt_ui_bridge.client.models import Notification, QoS


class RecordingSink:
    """Keeps every notification it is handed."""
    def __init__(self):
        self.notifications: List[Notification] = []

    def emit(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def kinds(self):
        return [n.kind for n in self.notifications]


class FakeConnection:
    """Stands in for MQTTConnection; the test drives `events` directly."""
    def __init__(self, events: EventStream, subscribe_fail_on: Optional[str] = None,
                 close_error: Optional[str] = None):
        self.events = events
        self.subscriptions = []
        self.closed = False
        self.subscribe_fail_on = subscribe_fail_on
        self.close_error = close_error

    async def subscribe(self, topic_filter: str, qos: QoS) -> int:
        await asyncio.sleep(0)
        if topic_filter == self.subscribe_fail_on:
            raise SubscribeError(topic_filter, "The client is not currently connected.")
        self.subscriptions.append((topic_filter, qos))
        return len(self.subscriptions)

    async def close(self) -> None:
        await asyncio.sleep(0)
        self.closed = True
        self.events.finish()
        if self.close_error:
            raise DisconnectError(f"Disconnect failed: {self.close_error}")


class FakeEngine:
    """Connection factory handing out FakeConnections and recording options."""
    def __init__(self):
        self.opened: List[FakeConnection] = []
        self.options: List[ConnectionOptions] = []
        self.open_error: Optional[Exception] = None
        self.subscribe_fail_on: Optional[str] = None
        self.close_error: Optional[str] = None

    async def open(self, options: ConnectionOptions):
        self.options.append(options)
        await asyncio.sleep(0)
        if self.open_error is not None:
            raise self.open_error
        events = EventStream(asyncio.get_running_loop())
        connection = FakeConnection(events, self.subscribe_fail_on, self.close_error)
        self.opened.append(connection)
        return connection, events


async def _settle(rounds: int = 10):
    """Lets background tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    return _settle


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def fake_engine():
    return FakeEngine()


class EmbeddedTestBroker:
    """An amqtt broker running inside the test process on a free local port."""
    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self.url = f"mqtt://{host}:{port}"
        self.broker = Broker({
            "listeners": {
                "default": {
                    "type": "tcp",
                    "bind": f"{host}:{port}",
                }
            },
            "auth": {"allow-anonymous": True},
            "topic-check": {
                "enabled": False
            },
        })
        self.running = False

    async def start(self):
        await self.broker.start()
        self.running = True

    async def stop(self):
        if self.running:
            self.running = False
            await self.broker.shutdown()


def _free_port(host: str) -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


@pytest_asyncio.fixture
async def embedded_broker():
    """Starts an embedded broker for one test and shuts it down afterwards."""
    broker = EmbeddedTestBroker("127.0.0.1", _free_port("127.0.0.1"))
    await broker.start()
    # Give the listener a moment to accept connections
    await asyncio.sleep(0.1)
    try:
        yield broker
    finally:
        await broker.stop()


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """
    Configures the Python logging framework globally for all tests.
    Because tests bypass main.py, this ensures our logs are formatted
    and visible during test runs.
    """
    formatter = logging.Formatter(fmt="%(levelname)-8s %(message)s - %(funcName)s:%(lineno)d ")
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
