"""Redis pattern pub/sub facade.

Owns two connections built from the same settings:
- subscriber: a PubSub in subscriber mode (PSUBSCRIBE/PUNSUBSCRIBE, deliveries)
- publisher: an ordinary client for PUBLISH and any other command

A connection in subscriber mode cannot issue ordinary commands, so the two
are never used for the opposite role.
"""

import asyncio
import inspect
import logging
import re
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Pattern, Union

from redis.asyncio import Redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from pubsub_redis_wrap.config import BrokerSettings, get_settings
from pubsub_redis_wrap.exception import (
    ClientClosedError,
    InvalidArgumentError,
    TransportError,
)

from .codec import Payload, decode_message, serialize_message

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, str, Any], Optional[Awaitable[None]]]
ListenHandler = Callable[[str, Payload], Optional[Awaitable[None]]]
ChannelMatcher = Union[str, Pattern[str]]

_SUBSCRIBE = "psubscribe"
_UNSUBSCRIBE = "punsubscribe"
_MESSAGE = "pmessage"


@dataclass(eq=False)
class _PendingReply:
    """A subscribe or unsubscribe call waiting for its confirmations.

    remaining is the number of confirmations still expected, or None when
    waiting for the active pattern count to reach zero (unsubscribe all).
    """

    kind: str
    remaining: Optional[int]
    future: asyncio.Future


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, (str, bytes)) and not value)


def _channel_matches(matcher: ChannelMatcher, channel: str) -> bool:
    if isinstance(matcher, re.Pattern):
        return matcher.search(channel) is not None
    return channel == matcher


class PubSubFacade:
    """Pattern-based publish/subscribe over Redis.

    Subscriptions always use PSUBSCRIBE, so every pattern may contain
    glob-style wildcards. Deliveries are read by a background task and
    handed to registered handlers in registration order.

    Attributes:
        settings: Broker settings the connections were built from
    """

    def __init__(self, settings: Optional[BrokerSettings] = None, **connection_options: Any):
        """Build the subscriber and publisher clients.

        Args:
            settings: Broker settings (loaded from the environment if omitted)
            **connection_options: Extra options for Redis.from_url, overriding settings
        """
        self.settings = settings or get_settings()
        options = {**self.settings.connection_kwargs(), **connection_options}
        self._encoding: str = options.get("encoding", "utf-8")

        self._subscriber = Redis.from_url(self.settings.redis_url, **options)
        self._publisher = Redis.from_url(self.settings.redis_url, **options)
        self._pubsub: PubSub = self._subscriber.pubsub()

        self._handlers: List[MessageHandler] = []
        self._pending: Deque[_PendingReply] = deque()
        self._reader_task: Optional[asyncio.Task] = None
        self._connect_lock = asyncio.Lock()
        self._connected = False
        self._closed = False

    @classmethod
    async def create(
        cls, settings: Optional[BrokerSettings] = None, **connection_options: Any
    ) -> "PubSubFacade":
        """Build a facade and open both connections.

        Args:
            settings: Broker settings (loaded from the environment if omitted)
            **connection_options: Extra options for Redis.from_url

        Returns:
            Connected PubSubFacade
        """
        facade = cls(settings, **connection_options)
        await facade.connect()
        return facade

    async def __aenter__(self) -> "PubSubFacade":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def redis(self) -> Redis:
        """Client that is not in subscriber mode, for running other commands."""
        return self._publisher

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def closed(self) -> bool:
        return self._closed

    async def connect(self) -> None:
        """Open both connections and start reading deliveries.

        Raises:
            TransportError: If Redis cannot be reached
            ClientClosedError: If the facade was closed
        """
        self._ensure_open()

        async with self._connect_lock:
            if self._connected:
                return

            try:
                await self._publisher.ping()
                await self._pubsub.connect()
            except RedisError as e:
                logger.error(f"Could not connect to Redis: {e}")
                raise TransportError(f"Could not connect to Redis: {e}", command="PING") from e

            self._reader_task = asyncio.create_task(self._read_messages())
            self._connected = True
            logger.info("Pub/sub connections established")

    async def close(self) -> None:
        """Stop reading deliveries and close both connections."""
        if self._closed:
            return
        self._closed = True

        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        self._fail_pending(ClientClosedError())

        connections = (
            ("subscriber pubsub", self._pubsub),
            ("subscriber", self._subscriber),
            ("publisher", self._publisher),
        )
        for name, connection in connections:
            try:
                await connection.aclose()
            except Exception as e:
                logger.warning(f"Error closing {name} connection: {e}")

        self._connected = False
        logger.info("Pub/sub connections closed")

    async def subscribe(self, *patterns: str) -> int:
        """Subscribe to one or more channel patterns.

        Args:
            *patterns: Glob-style patterns, see https://redis.io/commands/psubscribe

        Returns:
            Number of patterns the subscriber connection is subscribed to

        Raises:
            InvalidArgumentError: If no pattern is given
            TransportError: If Redis rejects the command or the connection fails
        """
        if not patterns:
            raise InvalidArgumentError("Must provide at least one pattern", argument="patterns")

        await self._ensure_connected()
        count = await self._send_subscription(_SUBSCRIBE, patterns, len(patterns))
        logger.info(f"Subscribed to {list(patterns)} ({count} active)")
        return count

    async def unsubscribe(self, *patterns: str) -> int:
        """Unsubscribe from channel patterns.

        With no patterns, every pattern subscription is removed.

        Args:
            *patterns: Patterns previously passed to subscribe

        Returns:
            Number of patterns still subscribed

        Raises:
            TransportError: If Redis rejects the command or the connection fails
        """
        await self._ensure_connected()
        count = await self._send_subscription(_UNSUBSCRIBE, patterns, len(patterns) or None)
        logger.info(f"Unsubscribed from {list(patterns) or 'all patterns'} ({count} active)")
        return count

    async def publish(self, channel: str, message: Any) -> int:
        """Publish a message to a single channel.

        The channel is used literally; patterns are not expanded on publish.

        Args:
            channel: Channel to publish to
            message: String sent as is, or a value serialized to JSON

        Returns:
            Number of subscribers that received the message

        Raises:
            InvalidArgumentError: If channel or message is missing
            TransportError: If the publish command fails
        """
        if _is_missing(channel) or _is_missing(message):
            raise InvalidArgumentError(
                "Must provide a channel and message data",
                argument="channel" if _is_missing(channel) else "message",
            )
        self._ensure_open()

        body = serialize_message(message)
        try:
            receivers = await self._publisher.publish(channel, body)
        except RedisError as e:
            logger.error(
                f"Could not publish to the channel ({channel}) with the message ({body!r}): {e}"
            )
            raise TransportError(
                f"Could not publish to the channel ({channel}): {e}",
                command="PUBLISH",
                details={"channel": channel},
            ) from e

        logger.debug(f"Published to {channel} ({receivers} receivers)")
        return receivers

    def listen(self, matcher: ChannelMatcher, handler: ListenHandler) -> None:
        """Register a handler for messages from matching channels.

        The matcher is compared with the channel a message was published
        to, not with the subscribed pattern. JSON objects and arrays are
        handed over as Decoded, anything else as Raw.

        Args:
            matcher: Exact channel name, or a compiled regular expression searched in it
            handler: Called as handler(channel, payload)

        Raises:
            InvalidArgumentError: If matcher is neither str nor a compiled pattern
        """
        if not isinstance(matcher, (str, re.Pattern)):
            raise InvalidArgumentError(
                f"Channel matcher must be a string or compiled pattern, got {type(matcher).__name__}",
                argument="matcher",
            )

        def filter_channel(
            pattern: str, channel: Union[str, bytes], message: Any
        ) -> Optional[Awaitable[None]]:
            # decode_responses=False delivers channel names as bytes
            if isinstance(channel, bytes):
                channel = channel.decode(self._encoding, errors="replace")
            if _channel_matches(matcher, channel):
                return handler(channel, decode_message(message))
            return None

        self.on_message(filter_channel)

    def on_message(self, handler: MessageHandler) -> None:
        """Register a handler for every delivered message.

        Args:
            handler: Called as handler(pattern, channel, message) with the raw message
        """
        self._handlers.append(handler)

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClientClosedError()

    async def _ensure_connected(self) -> None:
        self._ensure_open()

        if not self._connected:
            await self.connect()
        elif self._reader_task is not None and self._reader_task.done():
            raise TransportError("Subscriber connection is no longer reading messages")

    async def _send_subscription(
        self, kind: str, patterns: tuple, expected: Optional[int]
    ) -> int:
        pending = _PendingReply(kind, expected, asyncio.get_running_loop().create_future())
        self._pending.append(pending)

        command = self._pubsub.psubscribe if kind == _SUBSCRIBE else self._pubsub.punsubscribe
        try:
            await command(*patterns)
        except RedisError as e:
            self._pending.remove(pending)
            logger.error(f"Could not {kind} {list(patterns)}: {e}")
            raise TransportError(
                f"Could not {kind} {list(patterns)}: {e}", command=kind.upper()
            ) from e

        return await pending.future

    async def _read_messages(self) -> None:
        error: Exception = TransportError("Subscriber connection stopped reading messages")
        try:
            while True:
                message = await self._pubsub.get_message(timeout=None)
                if message is not None:
                    await self._dispatch(message)
        except RedisError as e:
            logger.error(f"Subscriber connection failed, stopped reading messages: {e}")
            error = TransportError(f"Subscriber connection failed: {e}")
        except Exception as e:
            logger.exception("Message reader crashed, stopped reading messages")
            error = TransportError(f"Message reader crashed: {e}")
        finally:
            self._fail_pending(ClientClosedError() if self._closed else error)

    async def _dispatch(self, message: Dict[str, Any]) -> None:
        kind = message.get("type")

        if kind in (_SUBSCRIBE, _UNSUBSCRIBE):
            self._confirm(kind, message["data"])
        elif kind == _MESSAGE:
            await self._deliver(message["pattern"], message["channel"], message["data"])

    def _confirm(self, kind: str, count: int) -> None:
        if not self._pending or self._pending[0].kind != kind:
            logger.debug(f"Ignoring unsolicited {kind} confirmation ({count} active)")
            return

        pending = self._pending[0]
        if pending.remaining is None:
            finished = count == 0
        else:
            pending.remaining -= 1
            finished = pending.remaining == 0

        if finished:
            self._pending.popleft()
            if not pending.future.done():
                pending.future.set_result(count)

    async def _deliver(self, pattern: str, channel: str, data: Any) -> None:
        for handler in list(self._handlers):
            try:
                result = handler(pattern, channel, data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Message handler failed for channel {channel}")

    def _fail_pending(self, error: Exception) -> None:
        while self._pending:
            pending = self._pending.popleft()
            if not pending.future.done():
                pending.future.set_exception(error)
