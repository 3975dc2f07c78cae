"""
Client-side components: connection lifecycle, the background event bridge
and the data models exchanged with the host application.
"""
from mqtt_ui_bridge.client.errors import (
    ConnectError,
    ConnectionLostError,
    DisconnectError,
    InvalidURLError,
    MQTTBridgeError,
    SubscribeError,
)
from mqtt_ui_bridge.client.models import (
    ConnectionProfile,
    InboundMessage,
    Notification,
    NotificationKind,
    QoS,
    SubscriptionSpec,
)
from mqtt_ui_bridge.client.mqtt import MQTTManager
from mqtt_ui_bridge.client.notifications import QueueSink

__all__ = [
    "ConnectError",
    "ConnectionLostError",
    "ConnectionProfile",
    "DisconnectError",
    "InboundMessage",
    "InvalidURLError",
    "MQTTBridgeError",
    "MQTTManager",
    "Notification",
    "NotificationKind",
    "QoS",
    "QueueSink",
    "SubscribeError",
    "SubscriptionSpec",
]
