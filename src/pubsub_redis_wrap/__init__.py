"""pubsub-redis-wrap - Pattern-based Redis pub/sub facade.

Wraps two redis.asyncio connections (one in subscriber mode, one for
ordinary commands) behind a small API:

- subscribe / unsubscribe with glob-style patterns (PSUBSCRIBE)
- publish with JSON serialization of structured payloads
- listen / on_message callbacks for delivered messages

Version: 1.0.0
"""

from pubsub_redis_wrap.pubsub import (
    Decoded,
    PubSubFacade,
    Raw,
    decode_message,
    serialize_message,
)

__version__ = "1.0.0"

__all__ = [
    "PubSubFacade",
    "Decoded",
    "Raw",
    "decode_message",
    "serialize_message",
]
