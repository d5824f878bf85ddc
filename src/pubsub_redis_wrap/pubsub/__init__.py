"""Redis pattern pub/sub facade and payload codec."""

from .codec import Decoded, Payload, Raw, decode_message, serialize_message
from .facade import PubSubFacade

__all__ = [
    "PubSubFacade",
    "Decoded",
    "Raw",
    "Payload",
    "decode_message",
    "serialize_message",
]
