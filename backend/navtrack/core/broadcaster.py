"""Fan-out of navigation events to WebSocket subscribers and optional Redis pub/sub."""

import asyncio
import logging

import orjson
import redis.asyncio as aioredis

from navtrack.config import settings

logger = logging.getLogger(__name__)

CHANNEL = "navtrack:events"
# Redis hash: event kind -> latest retained payload
SNAPSHOT_KEY = "navtrack:snapshot"
SUBSCRIBER_QUEUE_SIZE = 10


class Broadcaster:
    """Encodes navigation events once and hands the bytes to every consumer.

    Local subscribers each get a bounded queue; one that falls behind is
    dropped instead of stalling the fix pipeline. Retained kinds (latest
    progress, latest camera) are kept per kind so a new subscriber can be
    brought up to date immediately.
    """

    def __init__(self, redis_url: str | None = None) -> None:
        self._redis_url = redis_url if redis_url is not None else settings.redis_url
        self._redis: aioredis.Redis | None = None
        self._queues: set[asyncio.Queue] = set()
        self._retained: dict[str, bytes] = {}
        self.published_total = 0

    async def connect(self) -> None:
        if not self._redis_url:
            logger.info("Redis not configured; events stay in-process")
            return
        self._redis = aioredis.from_url(self._redis_url, decode_responses=False)
        logger.info("Publishing navigation events to Redis channel %s", CHANNEL)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, kind: str, data: dict, retain: bool = False) -> None:
        message = orjson.dumps({"type": kind, **data})
        self.published_total += 1
        if retain:
            self._retained[kind] = message
        await self._mirror(kind, message, retain)
        self._fan_out(message)

    async def _mirror(self, kind: str, message: bytes, retain: bool) -> None:
        if self._redis is None:
            return
        try:
            async with self._redis.pipeline(transaction=False) as pipe:
                if retain:
                    pipe.hset(SNAPSHOT_KEY, kind, message)
                pipe.publish(CHANNEL, message)
                await pipe.execute()
        except Exception:
            logger.exception("Failed to mirror %s event to Redis", kind)

    def _fan_out(self, message: bytes) -> None:
        lagging = [q for q in self._queues if q.full()]
        for q in lagging:
            self._queues.discard(q)
        if lagging:
            logger.warning("Dropped %d lagging subscriber(s)", len(lagging))
        for q in self._queues:
            q.put_nowait(message)

    def snapshot(self) -> dict[str, bytes]:
        """Latest retained message per event kind."""
        return dict(self._retained)

    def clear_state(self) -> None:
        """Forget retained messages, e.g. when navigation stops."""
        self._retained.clear()
        if self._redis is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running loop; Redis snapshot %s left in place", SNAPSHOT_KEY)
            return
        loop.create_task(self._redis.delete(SNAPSHOT_KEY))

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self._queues.add(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        self._queues.discard(q)

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)
