"""
The Event Bridge.

A background loop, one per successful connect, that pulls protocol events
from a connection's EventStream and republishes them as host notifications:

- CONNACK  -> "connected"
- PUBLISH  -> "message" carrying an InboundMessage
- SUBACK   -> logged only
- OUTGOING -> ignored
- stream error -> one "error" notification, then the loop ends for good

The bridge owns nothing but its stream and a reference to the sink. It never
looks at the Client State Holder.
"""
import asyncio
import logging
from typing import Callable, Dict

from mqtt_ui_bridge.client.connection import (
    ConnectionAcknowledged,
    EventStream,
    ProtocolEvent,
    ProtocolEventKind,
    PublishReceived,
    SubscriptionAcknowledged,
)
from mqtt_ui_bridge.client.errors import ConnectionLostError
from mqtt_ui_bridge.client.models import InboundMessage, Notification
from mqtt_ui_bridge.client.notifications import NotificationSink

logger = logging.getLogger(__name__)


class EventBridge:
    events: EventStream
    sink: NotificationSink
    handlers: Dict[ProtocolEventKind, Callable[[ProtocolEvent], None]]

    def __init__(self, events: EventStream, sink: NotificationSink):
        self.events = events
        self.sink = sink
        # One handler per event kind.
        self.handlers = {
            ProtocolEventKind.CONNACK: self._on_connack,
            ProtocolEventKind.PUBLISH: self._on_publish,
            ProtocolEventKind.SUBACK: self._on_suback,
            ProtocolEventKind.OUTGOING: self._on_outgoing,
        }

    async def run(self):
        """Consumes the stream until it ends, fails or the task is cancelled."""
        logger.info("MQTT event loop started")
        try:
            while True:
                try:
                    event = await self.events.next_event()
                except ConnectionLostError as e:
                    logger.error(f"MQTT connection error: {e}")
                    self._emit(Notification.error(f"Connection error: {e}"))
                    break

                if event is None:
                    break
                self.handlers[event.kind](event)
        except asyncio.CancelledError:
            logger.info("MQTT event loop cancelled")
            raise
        finally:
            logger.info("MQTT event loop ended")

    def _emit(self, notification: Notification):
        try:
            self.sink.emit(notification)
        except Exception as e:
            logger.warning(f"Notification sink rejected {notification.kind.value}: {e}")

    def _on_connack(self, event: ConnectionAcknowledged):
        logger.info("MQTT connected successfully")
        self._emit(Notification.connected())

    def _on_publish(self, event: PublishReceived):
        message = InboundMessage(
            topic=event.topic,
            payload=event.payload,
            qos=event.qos,
            retained=event.retain,
            dup=event.dup,
        )
        logger.debug(f"Received {len(event.payload)} bytes on '{event.topic}'")
        self._emit(Notification.message(message))

    def _on_suback(self, event: SubscriptionAcknowledged):
        logger.info(f"Subscription acknowledged (mid={event.mid})")

    def _on_outgoing(self, event: ProtocolEvent):
        pass
