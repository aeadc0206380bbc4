"""Lifecycle events emitted for downstream consumers.

Fire-and-forget: a failed enqueue is logged and counted, never raised.
Nothing in the engine depends on an event being delivered.

With a request session the enqueue is deferred until that session
commits, so a rolled-back transition never reaches the worker. Without
one (in-memory stores) the write is already visible and the event goes
out immediately.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from attempt_service.core.metrics import EVENT_PUBLISH_FAILURES, QUEUE_DEPTH
from attempt_service.db.engine import after_commit
from attempt_service.models.attempt import Attempt
from attempt_service.services.task_queue import TaskQueue

logger = logging.getLogger(__name__)

ATTEMPT_SUBMITTED = "attempt_submitted"
ATTEMPT_EVALUATED = "attempt_evaluated"


class EventPublisher:
    def __init__(self, queue: TaskQueue, session: AsyncSession | None = None) -> None:
        self._queue = queue
        self._session = session

    async def attempt_submitted(self, attempt: Attempt) -> None:
        await self._publish(
            ATTEMPT_SUBMITTED,
            {
                "attempt_id": str(attempt.id),
                "assessment_id": str(attempt.assessment_id),
                "student_id": attempt.student_id,
            },
        )

    async def attempt_evaluated(self, attempt: Attempt) -> None:
        await self._publish(
            ATTEMPT_EVALUATED,
            {
                "attempt_id": str(attempt.id),
                "assessment_id": str(attempt.assessment_id),
                "student_id": attempt.student_id,
                "total_score": attempt.total_score,
            },
        )

    async def _publish(self, queue: str, payload: dict) -> None:
        if self._session is None:
            await self._enqueue(queue, payload)
            return
        after_commit(self._session, lambda: self._enqueue(queue, payload))

    async def _enqueue(self, queue: str, payload: dict) -> None:
        try:
            task = await self._queue.enqueue(queue, payload)
            QUEUE_DEPTH.labels(queue_name=queue).set(
                await self._queue.queue_length(queue)
            )
        except Exception:
            EVENT_PUBLISH_FAILURES.labels(queue=queue).inc()
            logger.exception(
                "Failed to publish %s for attempt=%s", queue, payload["attempt_id"]
            )
            return
        logger.debug("Published %s task=%s", queue, task.id)
