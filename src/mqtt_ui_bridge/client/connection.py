"""
MQTT Connection Handle and Protocol Event Stream.

This module provides:
- A wrapper around `paho-mqtt` that opens one broker connection and hands
  back a connection handle (send side: subscribe, disconnect) plus an event
  stream (receive side).
- The Async/Sync bridge: paho's network thread invokes our callbacks, which
  pass every protocol event to the asyncio loop with `call_soon_threadsafe`.
- The closed set of protocol events the event bridge dispatches on.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Optional, Tuple

import paho.mqtt.client as mqtt

from mqtt_ui_bridge.client.errors import ConnectError, ConnectionLostError, DisconnectError, SubscribeError
from mqtt_ui_bridge.client.models import ConnectionProfile, QoS
from mqtt_ui_bridge.client.url import BrokerAddress

CLIENT_ID_PREFIX = "mqttui_"
DISCONNECT_TIMEOUT = 5.0  # seconds to wait for paho to flush DISCONNECT

logger = logging.getLogger(__name__)


def generate_client_id() -> str:
    """A random client identifier, e.g. `mqttui_3f2a9c1d`."""
    return f"{CLIENT_ID_PREFIX}{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True, kw_only=True)
class ConnectionOptions:
    """Everything the protocol engine needs to open one connection."""
    host: str
    port: int
    client_id: str
    keepalive: int
    clean_start: bool
    username: Optional[str] = None
    password: Optional[str] = None
    secure: bool = False

    @classmethod
    def from_profile(cls, profile: ConnectionProfile, address: BrokerAddress) -> "ConnectionOptions":
        client_id = profile.client_id if profile.client_id is not None else generate_client_id()
        # Credentials only travel with a username; a missing password is empty.
        password = (profile.password or "") if profile.username is not None else None
        return cls(
            host=address.host,
            port=address.port,
            client_id=client_id,
            keepalive=profile.effective_keepalive,
            clean_start=profile.effective_clean_start,
            username=profile.username,
            password=password,
            secure=address.secure,
        )


# --- Protocol events (closed set, tagged by kind) ---

class ProtocolEventKind(str, Enum):
    CONNACK = "connack"
    PUBLISH = "publish"
    SUBACK = "suback"
    OUTGOING = "outgoing"


@dataclass(frozen=True)
class ProtocolEvent:
    kind: ClassVar[ProtocolEventKind]


@dataclass(frozen=True)
class ConnectionAcknowledged(ProtocolEvent):
    kind: ClassVar[ProtocolEventKind] = ProtocolEventKind.CONNACK
    session_present: bool = False


@dataclass(frozen=True, kw_only=True)
class PublishReceived(ProtocolEvent):
    kind: ClassVar[ProtocolEventKind] = ProtocolEventKind.PUBLISH
    topic: str
    payload: bytes
    qos: int
    retain: bool
    dup: bool


@dataclass(frozen=True)
class SubscriptionAcknowledged(ProtocolEvent):
    kind: ClassVar[ProtocolEventKind] = ProtocolEventKind.SUBACK
    mid: int = 0
    granted: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Outgoing(ProtocolEvent):
    kind: ClassVar[ProtocolEventKind] = ProtocolEventKind.OUTGOING
    packet: str = ""


END_OF_STREAM = object()


class EventStream:
    """
    The receive side of one connection.

    Items are protocol events, a terminal `ConnectionLostError` or the
    END_OF_STREAM marker. After a terminal item the stream yields nothing
    but None.
    """
    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()
        self._terminated = False

    def push(self, item: Any) -> None:
        """Enqueue from the event loop thread."""
        self._queue.put_nowait(item)

    def push_threadsafe(self, item: Any) -> None:
        """Enqueue from paho's network thread."""
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # Loop already closed: the process is shutting down.
            logger.debug(f"Dropped protocol event after loop shutdown: {item!r}")

    def finish(self) -> None:
        self.push(END_OF_STREAM)

    async def next_event(self) -> Optional[ProtocolEvent]:
        """
        Waits for the next protocol event.

        Returns None once the stream ended and raises ConnectionLostError
        (exactly once) when the connection failed.
        """
        if self._terminated:
            return None
        item = await self._queue.get()
        if item is END_OF_STREAM:
            self._terminated = True
            return None
        if isinstance(item, ConnectionLostError):
            self._terminated = True
            raise item
        return item


class MQTTConnection:
    """
    Send-side handle for one open paho-mqtt connection.

    Safe to share between the orchestrator and the event bridge: paho guards
    its outgoing queue, and all inbound traffic is delivered through the
    EventStream only.
    """
    _client: mqtt.Client
    _events: EventStream
    _loop: asyncio.AbstractEventLoop
    _closing: bool
    _network_stopped: Optional[asyncio.Future]

    def __init__(self, client: mqtt.Client, events: EventStream, loop: asyncio.AbstractEventLoop,
                 disconnect_timeout: float = DISCONNECT_TIMEOUT):
        self._client = client
        self._events = events
        self._loop = loop
        self._closing = False
        self._network_stopped = None
        self._disconnected = asyncio.Event()
        self._disconnect_timeout = disconnect_timeout

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        client.on_subscribe = self._on_subscribe

    @property
    def events(self) -> EventStream:
        return self._events

    async def subscribe(self, topic_filter: str, qos: QoS) -> int:
        """
        Queues a SUBSCRIBE request and returns its packet id.

        Returns once paho accepted the request for sending. The broker's
        SUBACK arrives later on the event stream.
        """
        try:
            result, mid = self._client.subscribe(topic_filter, int(qos))
        except ValueError as e:
            raise SubscribeError(topic_filter, str(e)) from e
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise SubscribeError(topic_filter, mqtt.error_string(result))
        self._events.push(Outgoing(packet="subscribe"))
        return mid

    async def close(self) -> None:
        """
        Sends DISCONNECT, stops paho's network thread and ends the stream.

        A connection that is already gone counts as closed.
        """
        self._closing = True
        self._events.push(Outgoing(packet="disconnect"))
        result = self._client.disconnect()
        try:
            if result == mqtt.MQTT_ERR_SUCCESS:
                try:
                    await asyncio.wait_for(self._disconnected.wait(), timeout=self._disconnect_timeout)
                except asyncio.TimeoutError:
                    logger.warning("Broker did not confirm DISCONNECT in time, closing anyway")
            await self._stop_network_thread()
        finally:
            self._events.finish()

        if result not in (mqtt.MQTT_ERR_SUCCESS, mqtt.MQTT_ERR_NO_CONN):
            raise DisconnectError(f"Disconnect failed: {mqtt.error_string(result)}")

    def _stop_network_thread(self) -> asyncio.Future:
        # loop_stop() joins paho's thread, so it runs in the executor.
        if self._network_stopped is None:
            self._network_stopped = self._loop.run_in_executor(None, self._client.loop_stop)
            self._network_stopped.add_done_callback(self._on_network_stopped)
        return self._network_stopped

    def _on_network_stopped(self, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning(f"Stopping the network thread failed: {error}")

    def _call_in_loop(self, callback) -> None:
        try:
            self._loop.call_soon_threadsafe(callback)
        except RuntimeError:
            logger.debug(f"Event loop closed, skipped {callback!r}")

    def _halt_threadsafe(self) -> None:
        """Stops paho from reconnecting on its own after a failure."""
        self._call_in_loop(self._stop_network_thread)

    # --- paho callbacks (run on paho's network thread) ---

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.error(f"Broker refused connection: {reason_code}")
            self._events.push_threadsafe(ConnectionLostError(f"Connection refused: {reason_code}"))
            self._halt_threadsafe()
            return
        session_present = bool(getattr(flags, "session_present", False))
        self._events.push_threadsafe(ConnectionAcknowledged(session_present=session_present))

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._call_in_loop(self._disconnected.set)
        if self._closing:
            self._events.push_threadsafe(END_OF_STREAM)
            return
        self._events.push_threadsafe(ConnectionLostError(f"Unexpected disconnect: {reason_code}"))
        self._halt_threadsafe()

    def _on_message(self, client, userdata, message):
        self._events.push_threadsafe(PublishReceived(
            topic=message.topic,
            payload=bytes(message.payload),
            qos=int(message.qos),
            retain=bool(message.retain),
            dup=bool(message.dup),
        ))

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None):
        granted = tuple(str(code) for code in reason_code_list)
        self._events.push_threadsafe(SubscriptionAcknowledged(mid=mid, granted=granted))


async def open_connection(options: ConnectionOptions) -> Tuple[MQTTConnection, EventStream]:
    """
    Opens a broker connection with paho-mqtt.

    The TCP handshake and CONNECT run in the default executor; CONNACK is
    delivered later through the returned EventStream.
    """
    loop = asyncio.get_running_loop()
    events = EventStream(loop)
    try:
        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=options.client_id,
            clean_session=options.clean_start,
            protocol=mqtt.MQTTv311,
        )
        if options.username is not None:
            client.username_pw_set(options.username, options.password)
        connection = MQTTConnection(client, events, loop)

        # connect() blocks on the socket handshake, keep it off the loop.
        await loop.run_in_executor(None, client.connect, options.host, options.port, options.keepalive)
    except (OSError, ValueError) as e:
        raise ConnectError(f"Connection failed: {e}") from e

    client.loop_start()
    logger.debug(f"Network thread started for {options.client_id}@{options.host}:{options.port}")
    return connection, events
