"""Message payload serialization for Redis pub/sub.

Redis carries message bodies as strings. Structured values are encoded to
JSON before publishing; received bodies are decoded back into a tagged
result so handlers can tell a parsed JSON document from a plain string.
"""

import json
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Decoded:
    """Message body that parsed as a JSON object or array."""

    value: Any


@dataclass(frozen=True)
class Raw:
    """Message body passed through as received."""

    value: Union[str, bytes]


Payload = Union[Decoded, Raw]


def serialize_message(message: Any) -> Union[str, bytes]:
    """Convert a message into a body Redis can publish.

    Strings and bytes are sent unchanged. Everything else is JSON encoded,
    except None which becomes an empty string rather than "null".

    Args:
        message: Value to publish

    Returns:
        Message body
    """
    if message is None:
        return ""

    if isinstance(message, (str, bytes)):
        return message

    return json.dumps(message)


def decode_message(body: Union[str, bytes]) -> Payload:
    """Attempt to parse a received message body as JSON.

    Only objects and arrays count as decoded. Scalars such as "123",
    "true" or "null" stay raw so a plain string that happens to look like
    JSON is not coerced into a number, bool or None.

    Args:
        body: Message body as delivered by Redis

    Returns:
        Decoded with the parsed value, or Raw with the original body
    """
    try:
        value = json.loads(body)
    except (TypeError, ValueError):
        return Raw(body)

    if isinstance(value, (dict, list)):
        return Decoded(value)

    return Raw(body)
