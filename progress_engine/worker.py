"""Background worker process.

RUN:  python -m progress_engine.worker

Same image as the API, different command:
  api:    uvicorn progress_engine.main:app --host 0.0.0.0 --port 8000
  worker: python -m progress_engine.worker

Polls every registered queue in turn, hands each task to its handler and
logs the outcome.  A failing task is logged and dropped; it never stops
the loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any
from uuid import UUID

from progress_engine.core.config import SETTINGS
from progress_engine.core.logging import setup_logging
from progress_engine.core.metrics import QUEUE_DEPTH
from progress_engine.services.notifications import BADGE_QUEUE
from progress_engine.services.task_queue import task_queue
from progress_engine.services.unit_of_work import unit_of_work

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("progress_engine.worker")


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


@register_handler(BADGE_QUEUE)
async def handle_badge_notification(payload: dict) -> None:
    """Resolve the grant's learner and badge and hand off for delivery.

    Delivery (email, in-app) belongs to the notification service; this
    handler logs the resolved message it would send.
    """
    learner_id = UUID(payload["learner_id"])
    badge_id = UUID(payload["badge_id"])
    async with unit_of_work() as uow:
        learner = await uow.learners.get(learner_id)
        badge = await uow.badges.get(badge_id)
    if learner is None or badge is None:
        logger.warning(
            "Badge notification skipped: learner=%s badge=%s no longer exists",
            learner_id,
            badge_id,
        )
        return
    logger.info(
        "Badge notification delivered: to=%s badge=%r granted_at=%s",
        learner.email,
        badge.name,
        payload.get("granted_at"),
        extra={"learner_id": str(learner_id), "badge_id": str(badge_id)},
    )


# ---------------------------------------------------------------------------
# Worker loop
# ---------------------------------------------------------------------------


async def process_one(queue_name: str, timeout: int = 1) -> bool:
    """Dequeue and handle at most one task.  Returns False if none was waiting."""
    task = await task_queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False
    QUEUE_DEPTH.labels(queue_name=queue_name).set(
        await task_queue.queue_length(queue_name)
    )

    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except Exception:
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return True


async def run_worker() -> None:
    """Poll all registered queues and dispatch tasks to handlers."""
    queues = list(HANDLERS.keys())
    logger.info("Worker started, listening on queues: %s", queues)

    while True:
        for queue_name in queues:
            await process_one(queue_name)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
