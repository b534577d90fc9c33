"""Realtime key-value broadcast store: full-table snapshots pushed to subscribers.

Each *path* is a table of ``key -> JSON object``. Subscribers to a path get
the whole table (or ``None`` when it is empty) right after subscribing and
again after every write or remove; never an incremental diff.
"""

import abc
import asyncio
import logging
from typing import Any, Callable

import orjson
import redis.asyncio as aioredis

from shuttle.config import settings

logger = logging.getLogger(__name__)

Snapshot = dict[str, Any]
ChangeCallback = Callable[[Snapshot | None], None]

CHANGES_SUFFIX = ":changes"
RECONNECT_DELAY_S = 1.0


class Subscription:
    """Handle returned by ``subscribe_value``; ``unsubscribe()`` may be called any number of times."""

    def __init__(self, store: "BroadcastStore", path: str, callback: ChangeCallback) -> None:
        self.store = store
        self.path = path
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.store._detach(self)

    def __call__(self) -> None:
        self.unsubscribe()

    def deliver(self, snapshot: Snapshot | None) -> None:
        if not self.active:
            return
        try:
            self.callback(snapshot)
        except Exception:
            logger.exception("Subscriber callback failed for path %s", self.path)


class BroadcastStore(abc.ABC):
    """Contract shared by the Redis and in-memory stores."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscription]] = {}

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass

    @abc.abstractmethod
    async def write(self, path: str, key: str, value: dict) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def remove(self, path: str, key: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def read(self, path: str) -> Snapshot | None:
        raise NotImplementedError

    @abc.abstractmethod
    def subscribe_value(self, path: str, on_change: ChangeCallback) -> Subscription:
        raise NotImplementedError

    def subscriber_count(self, path: str) -> int:
        return len(self._subscribers.get(path, []))

    def _attach(self, sub: Subscription) -> None:
        self._subscribers.setdefault(sub.path, []).append(sub)

    def _detach(self, sub: Subscription) -> None:
        subs = self._subscribers.get(sub.path)
        if subs and sub in subs:
            subs.remove(sub)
            if not subs:
                del self._subscribers[sub.path]

    def _fan_out(self, path: str, snapshot: Snapshot | None) -> None:
        # Copy: callbacks may unsubscribe while we iterate
        for sub in list(self._subscribers.get(path, [])):
            sub.deliver(snapshot)


class InMemoryBroadcastStore(BroadcastStore):
    """Process-local store with synchronous fan-out."""

    def __init__(self) -> None:
        super().__init__()
        self._tables: dict[str, dict[str, dict]] = {}

    async def write(self, path: str, key: str, value: dict) -> None:
        self._tables.setdefault(path, {})[key] = dict(value)
        self._fan_out(path, self._snapshot(path))

    async def remove(self, path: str, key: str) -> None:
        table = self._tables.get(path)
        if table is not None:
            table.pop(key, None)
            if not table:
                del self._tables[path]
        self._fan_out(path, self._snapshot(path))

    async def read(self, path: str) -> Snapshot | None:
        return self._snapshot(path)

    def subscribe_value(self, path: str, on_change: ChangeCallback) -> Subscription:
        sub = Subscription(self, path, on_change)
        self._attach(sub)
        sub.deliver(self._snapshot(path))
        return sub

    def _snapshot(self, path: str) -> Snapshot | None:
        table = self._tables.get(path)
        if not table:
            return None
        return {key: dict(value) for key, value in table.items()}


class RedisBroadcastStore(BroadcastStore):
    """Redis-backed store: a hash per path plus a change-notification channel.

    One listener task pattern-subscribes to every ``<prefix>*:changes``
    channel; on each notification it re-reads the hash and fans the full
    table out to that path's subscribers. A failed listener is logged and
    restarted after ``reconnect_delay`` seconds, then every subscribed path
    is refreshed.
    """

    def __init__(self, url: str | None = None, prefix: str | None = None) -> None:
        super().__init__()
        self._url = url or settings.redis_url
        self._prefix = settings.redis_key_prefix if prefix is None else prefix
        self._redis: aioredis.Redis | None = None
        self._pubsub = None
        self._listener: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self.reconnect_delay = RECONNECT_DELAY_S

    async def connect(self) -> None:
        self._redis = aioredis.from_url(self._url, decode_responses=False)
        self._pubsub = self._redis.pubsub()
        await self._pubsub.psubscribe(self._pattern())
        self._listener = asyncio.create_task(self._listen())

    async def close(self) -> None:
        if self._listener:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
        for task in list(self._tasks):
            task.cancel()
        if self._pubsub:
            await self._pubsub.aclose()
        if self._redis:
            await self._redis.aclose()

    def hash_key(self, path: str) -> str:
        return f"{self._prefix}{path}"

    def channel(self, path: str) -> str:
        return f"{self._prefix}{path}{CHANGES_SUFFIX}"

    async def write(self, path: str, key: str, value: dict) -> None:
        redis = self._require()
        await redis.hset(self.hash_key(path), key, orjson.dumps(value))
        await redis.publish(self.channel(path), key)

    async def remove(self, path: str, key: str) -> None:
        redis = self._require()
        await redis.hdel(self.hash_key(path), key)
        await redis.publish(self.channel(path), key)

    async def read(self, path: str) -> Snapshot | None:
        raw = await self._require().hgetall(self.hash_key(path))
        snapshot = {}
        for field, payload in raw.items():
            key = field.decode() if isinstance(field, bytes) else field
            try:
                snapshot[key] = orjson.loads(payload)
            except orjson.JSONDecodeError:
                logger.warning("Skipping undecodable entry %s in %s", key, path)
        return snapshot or None

    def subscribe_value(self, path: str, on_change: ChangeCallback) -> Subscription:
        sub = Subscription(self, path, on_change)
        self._attach(sub)
        # Current table goes out as soon as it has been read
        task = asyncio.get_running_loop().create_task(self._deliver_current(sub))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return sub

    async def _deliver_current(self, sub: Subscription) -> None:
        try:
            snapshot = await self.read(sub.path)
        except Exception:
            logger.exception("Failed to read initial state for %s", sub.path)
            return
        sub.deliver(snapshot)

    async def _listen(self) -> None:
        while True:
            try:
                async for message in self._pubsub.listen():
                    await self._on_message(message)
                return
            except Exception:
                logger.exception(
                    "Redis change listener failed, resubscribing in %.1fs", self.reconnect_delay,
                )
            await asyncio.sleep(self.reconnect_delay)
            try:
                await self._pubsub.psubscribe(self._pattern())
            except Exception:
                logger.exception("Failed to resubscribe to Redis change channels")
                continue
            # Changes may have been missed while the connection was down
            for path in list(self._subscribers):
                await self._refresh(path)

    async def _on_message(self, message: dict) -> None:
        if message.get("type") != "pmessage":
            return
        channel = message["channel"]
        if isinstance(channel, bytes):
            channel = channel.decode()
        path = channel[len(self._prefix):-len(CHANGES_SUFFIX)]
        if path in self._subscribers:
            await self._refresh(path)

    async def _refresh(self, path: str) -> None:
        try:
            snapshot = await self.read(path)
        except Exception:
            logger.exception("Failed to refresh %s from Redis", path)
            return
        self._fan_out(path, snapshot)

    def _pattern(self) -> str:
        return f"{self._prefix}*{CHANGES_SUFFIX}"

    def _require(self) -> aioredis.Redis:
        if self._redis is None:
            raise RuntimeError("RedisBroadcastStore is not connected")
        return self._redis


def create_store() -> BroadcastStore:
    """Build the store selected by ``settings.store_backend``."""
    if settings.store_backend == "memory":
        return InMemoryBroadcastStore()
    if settings.store_backend == "redis":
        return RedisBroadcastStore()
    raise ValueError(f"Unknown store backend {settings.store_backend!r}")
