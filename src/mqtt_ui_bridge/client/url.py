"""
Broker URL Resolver.

Splits a broker address of the form `["mqtt://" | "mqtts://"] host [":" port]`
into host, port and whether secure transport was requested. Hostnames are not
validated here; a bad one surfaces later as a connection failure.
"""
from dataclasses import dataclass

from mqtt_ui_bridge.client.errors import InvalidURLError

SECURE_SCHEME = "mqtts://"
PLAIN_SCHEME = "mqtt://"
DEFAULT_PORT = 1883
DEFAULT_SECURE_PORT = 8883
MAX_PORT = 65535


@dataclass(frozen=True)
class BrokerAddress:
    host: str
    port: int
    secure: bool


def _parse_port(text: str) -> int:
    # Decimal digits with an optional leading "+", like an unsigned 16-bit parse.
    digits = text[1:] if text.startswith("+") else text
    if not (digits.isascii() and digits.isdigit()) or int(digits) > MAX_PORT:
        raise InvalidURLError(f"Invalid port number: {text}")
    return int(digits)


def resolve_broker_url(url: str) -> BrokerAddress:
    """
    Resolves a broker address string.

    "mqtt://a:1883" -> ("a", 1883, False), "mqtts://b" -> ("b", 8883, True),
    "c" -> ("c", 1883, False). A port outside 0..65535 or more than one colon
    raises InvalidURLError.
    """
    url = url.strip()

    if url.startswith(SECURE_SCHEME):
        host_port, secure = url[len(SECURE_SCHEME):], True
    elif url.startswith(PLAIN_SCHEME):
        host_port, secure = url[len(PLAIN_SCHEME):], False
    else:
        host_port, secure = url, False

    parts = host_port.split(":")
    if len(parts) == 1:
        port = DEFAULT_SECURE_PORT if secure else DEFAULT_PORT
        return BrokerAddress(host=parts[0], port=port, secure=secure)
    if len(parts) == 2:
        return BrokerAddress(host=parts[0], port=_parse_port(parts[1]), secure=secure)

    raise InvalidURLError("Invalid MQTT URL format")
