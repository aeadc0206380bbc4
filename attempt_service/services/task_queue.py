"""Lifecycle event queue backed by Redis lists.

Submit and evaluate publish an event for notification, email and
analytics consumers. An attempt is correct without any of them, so the
API only enqueues; the worker process (attempt_service.worker) drains the
queues at its own pace.

  API:    LPUSH onto ``attempt-events:<queue>``, return immediately
  Worker: BRPOP from the same list, dispatch, loop

LPUSH at the head plus BRPOP at the tail keeps events in publish order
per queue. Delivery is at-most-once: a worker that dies mid-task loses
that task. Handlers must treat the attempt row as the source of truth and
never be the only record of anything.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Protocol, runtime_checkable

from attempt_service.db.redis import redis_pool


@dataclass(frozen=True, slots=True)
class Task:
    """One queued event.

    enqueued_at is wall-clock epoch seconds at publish time; the worker
    logs the difference to its own clock as queue lag.
    """

    id: str
    queue: str
    payload: dict
    enqueued_at: float = field(default_factory=time.time)

    @classmethod
    def new(cls, queue: str, payload: dict) -> Task:
        return cls(id=str(uuid.uuid4()), queue=queue, payload=payload)

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str | bytes) -> Task:
        return cls(**json.loads(raw))


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    """Process-local queue used when REDIS_URL is unset (dev, tests)."""

    def __init__(self) -> None:
        self._queues: dict[str, list[Task]] = {}

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task.new(queue, payload)
        self._queues.setdefault(queue, []).append(task)
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        # Never blocks; the worker loop sleeps between empty polls.
        tasks = self._queues.get(queue)
        return tasks.pop(0) if tasks else None

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, []))


class RedisTaskQueue:
    _PREFIX = "attempt-events:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    def _key(self, queue: str) -> str:
        return f"{self._PREFIX}{queue}"

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task.new(queue, payload)
        await self._redis.lpush(self._key(queue), task.to_json())
        return task

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        result = await self._redis.brpop(self._key(queue), timeout=timeout)
        if result is None:
            return None
        _, raw = result
        return Task.from_json(raw)

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(self._key(queue))


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    task_queue: TaskQueue = RedisTaskQueue(redis_pool)
else:
    task_queue = InMemoryTaskQueue()
