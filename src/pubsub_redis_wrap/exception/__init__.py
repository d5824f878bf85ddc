"""Exception handling package.

This package provides the exception classes raised by the pub/sub facade.
"""

from pubsub_redis_wrap.exception.pubsub_exceptions import (
    ClientClosedError,
    InvalidArgumentError,
    PubSubException,
    TransportError,
)

__all__ = [
    "PubSubException",
    "InvalidArgumentError",
    "TransportError",
    "ClientClosedError",
]
