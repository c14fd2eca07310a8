from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import redis.asyncio as aioredis

from cardflow.config import settings

logger = logging.getLogger(__name__)

REDIS_CHANNEL_PREFIX = "cardflow:live:"


@dataclass(frozen=True)
class LiveEvent:
  type: str
  data: dict[str, Any] = field(default_factory=dict)

  def to_json(self) -> str:
    return json.dumps({"type": self.type, "data": self.data}, default=str)

  @classmethod
  def from_json(cls, raw: str) -> "LiveEvent":
    obj = json.loads(raw)
    return cls(type=str(obj.get("type") or ""), data=dict(obj.get("data") or {}))


def board_topic(board_id: str) -> str:
  return f"board:{board_id}"


def user_topic(user_id: str) -> str:
  return f"user:{user_id}"


class LiveEventPublisher(Protocol):
  async def publish(self, topic: str, event: LiveEvent) -> None: ...


class Subscription:
  def __init__(self, topics: set[str], maxsize: int) -> None:
    self.topics = set(topics)
    self.queue: asyncio.Queue[tuple[str, LiveEvent]] = asyncio.Queue(maxsize=maxsize)
    self.dropped = 0


class LiveEventBroker:
  """
  Fan-out-only pub/sub for live board updates.

  Delivery is at-most-once: a subscriber whose queue is full loses the event.
  With a Redis URL configured, publishes go through Redis pub/sub and every
  process relays them to its own subscribers.
  """

  def __init__(self, *, queue_size: int = 256, redis_url: str | None = None) -> None:
    self._queue_size = queue_size
    self._redis_url = redis_url
    self._subs: set[Subscription] = set()
    self._redis: aioredis.Redis | None = None
    self._relay_task: asyncio.Task | None = None

  def subscribe(self, topics: set[str]) -> Subscription:
    sub = Subscription(topics, self._queue_size)
    self._subs.add(sub)
    return sub

  def unsubscribe(self, sub: Subscription) -> None:
    self._subs.discard(sub)

  def subscriber_count(self) -> int:
    return len(self._subs)

  async def publish(self, topic: str, event: LiveEvent) -> None:
    if self._redis is not None:
      await self._redis.publish(REDIS_CHANNEL_PREFIX + topic, event.to_json())
      return
    self._deliver_local(topic, event)

  def _deliver_local(self, topic: str, event: LiveEvent) -> int:
    n = 0
    for sub in list(self._subs):
      if topic not in sub.topics:
        continue
      try:
        sub.queue.put_nowait((topic, event))
        n += 1
      except asyncio.QueueFull:
        sub.dropped += 1
        logger.warning("live event %s on %s dropped for a slow subscriber", event.type, topic)
    return n

  async def start(self) -> None:
    if not self._redis_url or self._redis is not None:
      return
    self._redis = aioredis.from_url(self._redis_url, decode_responses=True)
    # Subscribed before start() returns, so nothing published afterwards is missed.
    pubsub = self._redis.pubsub()
    await pubsub.psubscribe(REDIS_CHANNEL_PREFIX + "*")
    self._relay_task = asyncio.create_task(self._relay_from_redis(pubsub))
    logger.info("live events relayed through redis")

  async def stop(self) -> None:
    if self._relay_task is not None:
      self._relay_task.cancel()
      try:
        await self._relay_task
      except asyncio.CancelledError:
        pass
      self._relay_task = None
    if self._redis is not None:
      await self._redis.aclose()
      self._redis = None

  async def _relay_from_redis(self, pubsub) -> None:
    try:
      async for message in pubsub.listen():
        if message.get("type") != "pmessage":
          continue
        topic = str(message.get("channel") or "")[len(REDIS_CHANNEL_PREFIX):]
        try:
          event = LiveEvent.from_json(str(message.get("data") or "{}"))
        except ValueError:
          logger.warning("ignoring malformed live event on %s", topic)
          continue
        self._deliver_local(topic, event)
    finally:
      await pubsub.aclose()


broker = LiveEventBroker(queue_size=settings.live_event_queue_size, redis_url=settings.redis_url)
