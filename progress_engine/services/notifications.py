"""Badge notification dispatch.

Runs after the unit of work has committed.  It only enqueues a task for
the worker; delivery (email, in-app) happens there.  A failed enqueue is
logged and dropped: the grant is already durable and must not be undone
by a notification problem.
"""

from __future__ import annotations

import logging

from progress_engine.core.metrics import QUEUE_DEPTH
from progress_engine.models.badge import BadgeGrant
from progress_engine.services.task_queue import TaskQueue, task_queue

logger = logging.getLogger(__name__)

BADGE_QUEUE = "badge_notifications"


class NotificationDispatcher:
    def __init__(self, queue: TaskQueue) -> None:
        self._queue = queue

    async def badge_granted(self, grant: BadgeGrant) -> None:
        payload = {
            "learner_id": str(grant.learner_id),
            "badge_id": str(grant.badge_id),
            "granted_at": grant.granted_at,
            "granted_by": grant.granted_by,
        }
        try:
            task = await self._queue.enqueue(BADGE_QUEUE, payload)
            QUEUE_DEPTH.labels(queue_name=BADGE_QUEUE).set(
                await self._queue.queue_length(BADGE_QUEUE)
            )
        except Exception:
            logger.exception(
                "Badge notification enqueue failed: learner=%s badge=%s",
                grant.learner_id,
                grant.badge_id,
            )
            return
        logger.info(
            "Badge notification queued: task=%s learner=%s badge=%s",
            task.id,
            grant.learner_id,
            grant.badge_id,
            extra={"learner_id": str(grant.learner_id), "badge_id": str(grant.badge_id)},
        )


dispatcher = NotificationDispatcher(task_queue)
