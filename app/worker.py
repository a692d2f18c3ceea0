"""Celery worker for one-shot session reminders.

Run with: celery -A app.worker worker -Q session-reminders
Tasks carry an absolute ``eta`` and live in the Redis broker, so a reminder
survives API and worker restarts.
"""

import asyncio
import logging
from datetime import UTC, datetime

from celery import Celery
from fastapi.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.db import create_engine_for, make_session_maker
from app.services.notification_service import EmailNotifier
from app.services.reminder_service import deliver_session_reminder

logger = logging.getLogger(__name__)


def create_celery_app() -> Celery:
    app = Celery("unmuted", broker=settings.celery_broker_url)
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        # Redelivery after a worker crash; delivery is idempotent
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        task_default_queue=settings.reminder_queue,
        broker_transport_options={"visibility_timeout": 24 * 60 * 60},
    )
    return app


celery_app = create_celery_app()


async def _deliver(session_id: int) -> bool:
    # Fresh engine per task: each asyncio.run() gets its own event loop
    engine = create_engine_for(settings.database_url)
    try:
        session_maker = make_session_maker(engine)
        return await deliver_session_reminder(session_maker, session_id, EmailNotifier(session_maker))
    finally:
        await engine.dispose()


@celery_app.task(name="app.worker.send_session_reminder")
def send_session_reminder(session_id: int) -> bool:
    logger.info("Delivering reminder for session %s", session_id)
    return asyncio.run(_deliver(session_id))


class CeleryTaskScheduler:
    """TaskScheduler that enqueues send_session_reminder with an absolute eta."""

    def __init__(self, queue: str | None = None) -> None:
        self._queue = queue or settings.reminder_queue

    async def schedule_at(self, fire_at: datetime, payload: dict) -> str:
        eta = fire_at.replace(tzinfo=UTC) if fire_at.tzinfo is None else fire_at
        result = await run_in_threadpool(
            send_session_reminder.apply_async,
            kwargs=payload,
            eta=eta,
            queue=self._queue,
        )
        return result.id
