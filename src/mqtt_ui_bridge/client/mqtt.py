"""
MQTT Connection Lifecycle Management.

This module is responsible for:
- Resolving the broker URL and building the connection options.
- Opening the connection and registering it in the Client State Holder.
- Spawning the event bridge that turns protocol events into notifications.
- Issuing the requested subscriptions.
- Tearing the connection down again on disconnect (or before a reconnect).
"""
import logging
from typing import Awaitable, Callable, Iterable, Optional, Tuple

from mqtt_ui_bridge.client.bridge import EventBridge
from mqtt_ui_bridge.client.connection import ConnectionOptions, EventStream, open_connection
from mqtt_ui_bridge.client.errors import ConnectError, InvalidURLError, MQTTBridgeError, SubscribeError
from mqtt_ui_bridge.client.models import ConnectionProfile, SubscriptionSpec
from mqtt_ui_bridge.client.notifications import NotificationSink
from mqtt_ui_bridge.client.state import ActiveSession, ClientStateHolder, Connection
from mqtt_ui_bridge.client.url import resolve_broker_url

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[ConnectionOptions], Awaitable[Tuple[Connection, EventStream]]]


class MQTTManager:
    """
    Command surface of the client: `connect()` and `disconnect()`.

    Both commands may be called at any time and from concurrent tasks. The
    only state they share with each other (and with nothing else) is the
    ClientStateHolder.
    """
    sink: NotificationSink
    state: ClientStateHolder
    _open_connection: ConnectionFactory

    def __init__(self, sink: NotificationSink, state: Optional[ClientStateHolder] = None,
                 connection_factory: ConnectionFactory = open_connection):
        self.sink = sink
        self.state = state if state is not None else ClientStateHolder()
        self._open_connection = connection_factory

    async def connect(self, profile: ConnectionProfile, subscriptions: Iterable[SubscriptionSpec] = ()):
        """
        Connects to the broker described by `profile` and subscribes.

        Returns once every subscribe request has been sent, not once the broker
        acknowledged them; acknowledgements and the CONNACK arrive through the
        event bridge. Any session that was active before is closed first.

        Raises ConnectError (or SubscribeError) with a descriptive message.
        """
        logger.info(f"Connecting to MQTT broker: {profile.url}")

        # 1. Resolve the URL before touching any state
        try:
            address = resolve_broker_url(profile.url)
        except InvalidURLError as e:
            raise ConnectError(f"Failed to parse URL: {e}") from e
        logger.info(f"Parsed connection: host={address.host}, port={address.port}, tls={address.secure}")

        # 2. Build the connection options
        options = ConnectionOptions.from_profile(profile, address)
        if address.secure:
            logger.warning("TLS support not yet implemented, connecting without TLS")

        # 3. Only one connection at a time: retire the previous one first
        previous = await self.state.take()
        if previous is not None:
            logger.info("Closing previous connection before connecting again")
            await self._retire(previous)

        # 4. Open the connection and register it
        try:
            connection, events = await self._open_connection(options)
        except ConnectError:
            raise
        except Exception as e:
            raise ConnectError(f"Connection failed: {e}") from e

        session = ActiveSession(connection)
        displaced = await self.state.swap(session)
        if displaced is not None:
            # A concurrent connect got in between take() and swap().
            logger.info("Replacing a connection opened concurrently")
            await self._retire(displaced)

        # 5. Spawn the event bridge for this connection
        session.start_bridge(EventBridge(events, self.sink))

        # 6. Subscribe in the order given
        for subscription in subscriptions:
            qos = subscription.service_level
            try:
                await connection.subscribe(subscription.filter, qos)
            except SubscribeError:
                raise
            except Exception as e:
                raise SubscribeError(subscription.filter, str(e)) from e
            logger.info(f"Subscribed to: {subscription.filter} with QoS {qos.name}")

    async def disconnect(self):
        """
        Closes the active connection, if any. A no-op when not connected.

        The holder is cleared even when the close request fails; the failure
        is raised as DisconnectError afterwards.
        """
        logger.info("Disconnecting from MQTT broker")
        session = await self.state.take()
        if session is None:
            logger.debug("No active connection, nothing to do")
            return
        await session.close()
        logger.info("Disconnected from MQTT broker")

    async def is_connected(self) -> bool:
        return await self.state.is_connected()

    async def _retire(self, session: ActiveSession):
        """Closes a session that is being replaced. Failures are only logged."""
        try:
            await session.close()
        except MQTTBridgeError as e:
            logger.warning(f"Previous connection did not close cleanly: {e}")
