"""
Data Models for Connection Descriptors, Inbound Messages and Notifications.

Defines the entities exchanged between the host application and the client:
what to connect to, what to subscribe to, and what comes back.
"""
from dataclasses import dataclass, field
from enum import Enum, IntEnum
import json
from typing import Any, Dict, Optional, Union

DEFAULT_KEEPALIVE = 60  # seconds
DEFAULT_CLEAN_START = True


class QoS(IntEnum):
    AT_MOST_ONCE = 0
    AT_LEAST_ONCE = 1
    EXACTLY_ONCE = 2

    @classmethod
    def coerce(cls, value: Any) -> "QoS":
        """Maps 0/1/2 to a service level. Anything else is the lowest level."""
        if isinstance(value, bool):
            return cls.AT_MOST_ONCE
        try:
            return cls(value)
        except (ValueError, TypeError):
            return cls.AT_MOST_ONCE


class NotificationKind(str, Enum):
    CONNECTED = "mqtt://connected"
    MESSAGE = "mqtt://message"
    ERROR = "mqtt://error"


# --- Connection Descriptors (what the host asks for) ---

@dataclass(frozen=True, kw_only=True)
class ConnectionProfile:
    """Identity and parameters for one desired broker connection."""
    id: str
    name: str
    url: str
    client_id: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    keepalive: Optional[int] = None  # seconds
    clean_start: Optional[bool] = None

    @property
    def effective_keepalive(self) -> int:
        return DEFAULT_KEEPALIVE if self.keepalive is None else int(self.keepalive)

    @property
    def effective_clean_start(self) -> bool:
        return DEFAULT_CLEAN_START if self.clean_start is None else bool(self.clean_start)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionProfile":
        """
        Builds a profile from a host payload. Accepts the camelCase keys a UI
        sends (clientId, cleanStart) as well as snake_case keys.
        """
        def pick(*keys: str) -> Any:
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return None

        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            url=str(data["url"]),
            client_id=pick("clientId", "client_id"),
            username=pick("username"),
            password=pick("password"),
            keepalive=pick("keepalive", "keepAlive", "keep_alive"),
            clean_start=pick("cleanStart", "clean_start"),
        )


@dataclass(frozen=True)
class SubscriptionSpec:
    """One topic filter plus the requested service level."""
    filter: str
    qos: Any = 0

    @property
    def service_level(self) -> QoS:
        return QoS.coerce(self.qos)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubscriptionSpec":
        return cls(filter=str(data["filter"]), qos=data.get("qos", 0))


# --- What comes back from the broker ---

@dataclass(frozen=True, kw_only=True)
class InboundMessage:
    """One received publication, handed to the sink and then dropped."""
    topic: str
    payload: bytes
    qos: int
    retained: bool
    dup: bool

    def to_dict(self) -> Dict[str, Any]:
        """The host-facing shape: payload as a list of byte values."""
        return {
            "topic": self.topic,
            "payload": list(self.payload),
            "qos": self.qos,
            "retained": self.retained,
            "dup": self.dup,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class Notification:
    """
    A fire-and-forget event for the host application.

    `payload` is None for CONNECTED, an InboundMessage for MESSAGE and the
    error description for ERROR.
    """
    kind: NotificationKind
    payload: Union[None, InboundMessage, str] = field(default=None)

    @classmethod
    def connected(cls) -> "Notification":
        return cls(NotificationKind.CONNECTED)

    @classmethod
    def message(cls, message: InboundMessage) -> "Notification":
        return cls(NotificationKind.MESSAGE, message)

    @classmethod
    def error(cls, description: str) -> "Notification":
        return cls(NotificationKind.ERROR, description)
