"""
Error taxonomy for the MQTT client.

Every error raised towards the caller of a command carries a human-readable
message as its `str()`. Errors that happen inside the background event bridge
never reach a caller and are reported as "error" notifications instead.
"""


class MQTTBridgeError(Exception):
    """Base class for all errors raised by this package."""


class InvalidURLError(MQTTBridgeError):
    """The broker address could not be split into host and port."""


class ConnectError(MQTTBridgeError):
    """A connect command failed (URL, network or protocol engine failure)."""


class SubscribeError(ConnectError):
    """A subscribe request could not be sent for `filter`."""

    def __init__(self, topic_filter: str, reason: str):
        self.filter = topic_filter
        self.reason = reason
        super().__init__(f"Subscription failed for '{topic_filter}': {reason}")


class DisconnectError(MQTTBridgeError):
    """The active connection refused a graceful close."""


class ConnectionLostError(MQTTBridgeError):
    """Terminal error on the protocol event stream."""
