"""
Client State Holder.

One lock-guarded slot shared by the connect and disconnect commands. It holds
at most one `ActiveSession`: the connection handle plus the event bridge task
reading that connection's stream. Every mutation is an atomic swap, so no
check-then-act sequence can interleave between two commands, and the lock is
never held while waiting on the network.
"""
import asyncio
import logging
from typing import Optional, Protocol

from mqtt_ui_bridge.client.models import QoS

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """The send-side handle a session owns (see `connection.MQTTConnection`)."""

    async def subscribe(self, topic_filter: str, qos: QoS) -> int: ...

    async def close(self) -> None: ...


class ActiveSession:
    connection: Connection
    bridge_task: Optional[asyncio.Task]
    closed: bool

    def __init__(self, connection: Connection):
        self.connection = connection
        self.bridge_task = None
        self.closed = False

    def start_bridge(self, bridge) -> Optional[asyncio.Task]:
        """Spawns the event bridge for this session unless it was already closed."""
        if self.closed:
            logger.debug("Session closed before its event bridge could start")
            return None
        self.bridge_task = asyncio.create_task(bridge.run())
        return self.bridge_task

    async def close(self) -> None:
        """
        Requests a graceful close of the connection, then stops the bridge.

        The bridge is stopped even when the close request fails; the close
        error is re-raised afterwards.
        """
        self.closed = True
        try:
            await self.connection.close()
        finally:
            await self._stop_bridge()

    async def _stop_bridge(self):
        task = self.bridge_task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


class ClientStateHolder:
    """
    Mutually-exclusive cell holding the current session, if any.

    The raw session never leaves the holder except through `swap()`/`take()`,
    which hand ownership to the caller.
    """
    def __init__(self):
        self._lock = asyncio.Lock()
        self._session: Optional[ActiveSession] = None

    async def swap(self, session: Optional[ActiveSession]) -> Optional[ActiveSession]:
        """Installs `session` and returns whatever was stored before."""
        async with self._lock:
            previous, self._session = self._session, session
        return previous

    async def take(self) -> Optional[ActiveSession]:
        """Empties the slot and returns what it held."""
        return await self.swap(None)

    async def is_connected(self) -> bool:
        async with self._lock:
            return self._session is not None
