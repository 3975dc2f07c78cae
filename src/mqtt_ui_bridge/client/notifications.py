"""
Notification Sinks.

The host application receives notifications through any object with an
`emit(notification)` method. Emitting is fire-and-forget: it must not block
and the event bridge does not care what the host does with it.
"""
import asyncio
import logging
from typing import Protocol

from mqtt_ui_bridge.client.models import Notification

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def emit(self, notification: Notification) -> None: ...


class QueueSink:
    """
    Hands notifications to an asyncio.Queue for a consumer task to pick up.
    Must be used from the event loop thread.
    """
    queue: asyncio.Queue

    def __init__(self, queue: asyncio.Queue = None):
        self.queue = queue if queue is not None else asyncio.Queue()

    def emit(self, notification: Notification) -> None:
        logger.debug(f"Emitting {notification.kind.value}")
        self.queue.put_nowait(notification)
