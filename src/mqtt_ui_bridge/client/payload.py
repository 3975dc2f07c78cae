"""
Payload Preview Decoding.

Best-effort classification of raw message payloads for display: is it UTF-8
text, and is that text JSON?
"""
from dataclasses import dataclass
import json
from typing import Any, Optional

PRINTABLE_RATIO = 0.95


@dataclass(frozen=True, kw_only=True)
class DecodedPayload:
    text: Optional[str] = None
    json: Any = None
    is_json: bool = False
    is_text: bool = False
    size: int = 0


def is_likely_json(payload: bytes) -> bool:
    """True when the bytes start and end like a JSON object or array."""
    if not payload:
        return False
    first, last = payload[0], payload[-1]
    return (first, last) in ((0x7B, 0x7D), (0x5B, 0x5D))


def to_utf8(payload: bytes) -> Optional[str]:
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError:
        return None


def is_printable(text: str) -> bool:
    if not text:
        return False
    printable = sum(1 for char in text if ord(char) >= 32 or char in "\t\n\r")
    return printable / len(text) > PRINTABLE_RATIO


def decode_preview(payload: bytes, content_type: Optional[str] = None) -> DecodedPayload:
    """
    Decodes `payload` for a preview.

    JSON parsing is only attempted when the content type mentions json or the
    bytes look like a JSON document.
    """
    text = to_utf8(payload)

    parsed, is_json = None, False
    looks_json = (content_type is not None and "json" in content_type) or is_likely_json(payload)
    if text is not None and looks_json:
        try:
            parsed, is_json = json.loads(text), True
        except ValueError:
            parsed, is_json = None, False

    is_text = text is not None and is_printable(text)
    return DecodedPayload(
        text=text if is_text else None,
        json=parsed,
        is_json=is_json,
        is_text=is_text,
        size=len(payload),
    )
