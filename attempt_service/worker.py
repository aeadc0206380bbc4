"""Background worker process for attempt lifecycle events.

RUN:  python -m attempt_service.worker

The API publishes an event when an attempt is submitted and when it is
evaluated, then returns without waiting for anyone to act on it. This
process drains those queues and hands each event to its handler:

  attempt_submitted   hand every submission to instructor notification,
                      including attempts already evaluated on submit
  attempt_evaluated   notify the student that a result is available

In Docker/Kubernetes it is the same image with a different command:
  api:    uvicorn attempt_service.main:app --host 0.0.0.0 --port 8000
  worker: python -m attempt_service.worker

Delivery is at-most-once (see task_queue.py). Handlers must therefore not
be the only record of anything; the attempt row is the source of truth.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any

from attempt_service.core.config import SETTINGS
from attempt_service.core.logging import setup_logging
from attempt_service.services.events import ATTEMPT_EVALUATED, ATTEMPT_SUBMITTED
from attempt_service.services.task_queue import InMemoryTaskQueue, task_queue

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("attempt_service.worker")


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


def _context(payload: dict) -> dict[str, Any]:
    return {
        "attempt_id": payload.get("attempt_id"),
        "assessment_id": payload.get("assessment_id"),
        "student_id": payload.get("student_id"),
    }


# ---------------------------------------------------------------------------
# Task handlers
# ---------------------------------------------------------------------------


@register_handler(ATTEMPT_SUBMITTED)
async def handle_attempt_submitted(payload: dict) -> None:
    # Delivery to instructors (email, in-app) is owned by the
    # notification service; this hop only records the hand-off.
    logger.info(
        "Attempt submitted attempt=%s assessment=%s student=%s",
        payload["attempt_id"],
        payload["assessment_id"],
        payload["student_id"],
        extra=_context(payload),
    )


@register_handler(ATTEMPT_EVALUATED)
async def handle_attempt_evaluated(payload: dict) -> None:
    logger.info(
        "Result available attempt=%s student=%s total_score=%s",
        payload["attempt_id"],
        payload["student_id"],
        payload["total_score"],
        extra=_context(payload),
    )


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def process_one(queue_name: str, timeout: int | None = None) -> bool:
    """Dequeue and handle at most one task. Returns True if one was handled."""
    if timeout is None:
        timeout = SETTINGS.worker_poll_timeout
    task = await task_queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False

    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
        logger.info(
            "Task %s on [%s] completed lag=%.1fs",
            task.id,
            queue_name,
            max(time.time() - task.enqueued_at, 0.0),
            extra={"task_id": task.id, "queue": queue_name},
        )
    except Exception:
        # No dead-letter queue yet: log with the payload ids and move on.
        logger.exception(
            "Task %s on [%s] failed",
            task.id,
            queue_name,
            extra={"task_id": task.id, "queue": queue_name, **_context(task.payload)},
        )
    return True


async def run_worker() -> None:
    """Poll all registered queues round-robin and dispatch tasks."""
    queues = list(HANDLERS.keys())
    logger.info("Worker started, listening on queues: %s", queues)

    while True:
        for queue_name in queues:
            handled = await process_one(queue_name)
            if not handled and isinstance(task_queue, InMemoryTaskQueue):
                # The in-memory queue never blocks; avoid a hot loop.
                await asyncio.sleep(0.1)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
