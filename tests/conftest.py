"""Root-level pytest configuration and shared fixtures.

Adds the src/ directory to sys.path so pubsub_redis_wrap can be imported without installation.
Provides an in-process fake Redis broker so the facade can be exercised without a server.

Key exports:
    - FakePubSub: scripted stand-in for redis.asyncio.client.PubSub
    - FakeBroker: subscriber/publisher client mocks wired to one FakePubSub
    - Pytest fixtures for the broker, settings and a connected facade
"""

import asyncio
import sys
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, Dict, Iterator, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pubsub_redis_wrap.config import BrokerSettings  # noqa: E402
from pubsub_redis_wrap.pubsub import PubSubFacade  # noqa: E402

FACADE_REDIS = "pubsub_redis_wrap.pubsub.facade.Redis"


# ---------------------------------------------------------------------------
# Fake Redis pub/sub
# ---------------------------------------------------------------------------


class FakePubSub:
    """Stand-in for a PubSub connection.

    Confirmations and deliveries are queued in the order Redis would send
    them and handed out by get_message(). Queued exceptions are raised
    from get_message() to simulate a broken connection.
    """

    def __init__(self) -> None:
        self.patterns: Dict[str, None] = {}
        self.queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self.connect = AsyncMock()
        self.aclose = AsyncMock()
        self.psubscribe = AsyncMock(side_effect=self._psubscribe)
        self.punsubscribe = AsyncMock(side_effect=self._punsubscribe)
        self._fetched = False

    def _psubscribe(self, *patterns: str) -> None:
        for pattern in patterns:
            self.patterns[pattern] = None
            self.queue.put_nowait(
                {
                    "type": "psubscribe",
                    "pattern": None,
                    "channel": pattern,
                    "data": len(self.patterns),
                }
            )

    def _punsubscribe(self, *patterns: str) -> None:
        targets = list(patterns) or list(self.patterns)
        if not targets:
            self.queue.put_nowait(
                {"type": "punsubscribe", "pattern": None, "channel": None, "data": 0}
            )
        for pattern in targets:
            self.patterns.pop(pattern, None)
            self.queue.put_nowait(
                {
                    "type": "punsubscribe",
                    "pattern": None,
                    "channel": pattern,
                    "data": len(self.patterns),
                }
            )

    def deliver(self, pattern: str, channel: str, data: Any) -> None:
        """Queue a pmessage as if Redis routed a publish to this connection."""
        self.queue.put_nowait(
            {"type": "pmessage", "pattern": pattern, "channel": channel, "data": data}
        )

    def fail(self, error: Exception) -> None:
        """Make the next read raise error."""
        self.queue.put_nowait(error)

    async def get_message(
        self, ignore_subscribe_messages: bool = False, timeout: Optional[float] = 0.0
    ) -> Any:
        # Coming back for the next message means the previous one was dispatched.
        if self._fetched:
            self.queue.task_done()
            self._fetched = False

        item = await self.queue.get()
        if isinstance(item, Exception):
            self.queue.task_done()
            raise item
        self._fetched = True
        return item


class FakeBroker:
    """Subscriber and publisher client mocks sharing one FakePubSub.

    PUBLISH on the publisher routes the body to every subscribed pattern
    matching the channel and reports the number of matches.
    """

    def __init__(self) -> None:
        self.pubsub = FakePubSub()

        self.subscriber = MagicMock(name="subscriber")
        self.subscriber.pubsub.return_value = self.pubsub
        self.subscriber.aclose = AsyncMock()

        self.publisher = MagicMock(name="publisher")
        self.publisher.ping = AsyncMock(return_value=True)
        self.publisher.publish = AsyncMock(side_effect=self._publish)
        self.publisher.aclose = AsyncMock()

    def _publish(self, channel: str, body: Any) -> int:
        matched = [p for p in self.pubsub.patterns if fnmatchcase(channel, p)]
        for pattern in matched:
            self.pubsub.deliver(pattern, channel, body)
        return len(matched)

    async def drain(self) -> None:
        """Wait until every queued confirmation and delivery has been dispatched."""
        await asyncio.wait_for(self.pubsub.queue.join(), timeout=1.0)


def build_facade(broker: FakeBroker, settings: Optional[BrokerSettings] = None, **options: Any):
    """Construct a PubSubFacade whose Redis clients are the broker's mocks.

    Returns:
        Tuple of (facade, patched Redis class mock)
    """
    with patch(FACADE_REDIS) as redis_cls:
        redis_cls.from_url.side_effect = [broker.subscriber, broker.publisher]
        facade = PubSubFacade(settings or BrokerSettings(), **options)
    return facade, redis_cls


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def broker() -> FakeBroker:
    """Provide a fresh fake broker."""
    return FakeBroker()


@pytest.fixture
def settings() -> Iterator[BrokerSettings]:
    """Provide BrokerSettings built from defaults only."""
    with patch.dict("os.environ", {}, clear=True):
        yield BrokerSettings(_env_file=None)


@pytest_asyncio.fixture
async def facade(broker: FakeBroker, settings: BrokerSettings):
    """Provide a connected PubSubFacade backed by the fake broker."""
    instance, _ = build_facade(broker, settings)
    await instance.connect()
    yield instance
    await instance.close()
