import logging
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.models.booking_session import BookingSession, SessionStatus
from app.services.notification_service import Notifier, dispatch_notifications
from app.services.session_rules import utc_naive_now

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Session starting soon ⏰"


class TaskScheduler(Protocol):
    async def schedule_at(self, fire_at: datetime, payload: dict) -> str: ...


async def _set_reminder_fields(
    session_maker: async_sessionmaker[AsyncSession], session_id: int, *conditions, **values
) -> bool:
    async with session_maker() as session:
        result = await session.execute(
            update(BookingSession)
            .where(BookingSession.id == session_id, *conditions)
            .values(**values)
        )
        await session.commit()
        return result.rowcount == 1


async def arm_session_reminder(
    session_maker: async_sessionmaker[AsyncSession],
    session_id: int,
    scheduler: TaskScheduler,
    now: datetime | None = None,
) -> str | None:
    """Schedule the pre-session reminder once per session.

    The reminder_scheduled flag is claimed with a conditional update before
    the task is enqueued, so retried payment verifications never enqueue twice.
    Returns the task handle, or None when nothing was scheduled.
    """
    now = now or utc_naive_now()
    async with session_maker() as session:
        bs = await session.get(BookingSession, session_id)
    if bs is None or bs.session_timestamp is None:
        logger.warning("Cannot arm reminder: session %s missing or unscheduled", session_id)
        return None
    if bs.status not in (SessionStatus.PAID, SessionStatus.LIVE) or bs.reminder_scheduled:
        return None

    fire_at = bs.session_timestamp - timedelta(minutes=settings.reminder_lead_minutes)
    if fire_at <= now:
        logger.info("Reminder time already passed for session %s, skipping", session_id)
        return None

    claimed = await _set_reminder_fields(
        session_maker,
        session_id,
        BookingSession.reminder_scheduled == False,  # noqa: E712
        reminder_scheduled=True,
    )
    if not claimed:
        return None

    try:
        handle = await scheduler.schedule_at(fire_at, {"session_id": session_id})
    except Exception as e:
        logger.exception("Failed to schedule reminder for session %s: %s", session_id, e)
        await _set_reminder_fields(session_maker, session_id, reminder_scheduled=False)
        return None

    await _set_reminder_fields(session_maker, session_id, reminder_task_id=str(handle))
    logger.info("Reminder for session %s scheduled at %s (task %s)", session_id, fire_at, handle)
    return str(handle)


async def deliver_session_reminder(
    session_maker: async_sessionmaker[AsyncSession],
    session_id: int,
    notifier: Notifier,
    now: datetime | None = None,
) -> bool:
    """Send the reminder. Redelivered tasks are absorbed by the reminder_sent_at claim."""
    async with session_maker() as session:
        bs = await session.get(BookingSession, session_id)
    if bs is None or bs.status not in (SessionStatus.PAID, SessionStatus.LIVE):
        logger.info("Reminder for session %s dropped (missing or not active)", session_id)
        return False

    claimed = await _set_reminder_fields(
        session_maker,
        session_id,
        BookingSession.reminder_sent_at.is_(None),
        reminder_sent_at=now or utc_naive_now(),
    )
    if not claimed:
        logger.info("Reminder for session %s already sent", session_id)
        return False

    minutes = settings.reminder_lead_minutes
    messages = [
        (bs.student_id, REMINDER_TITLE, f"Your counselling session starts in {minutes} minutes. Tap to join."),
    ]
    if bs.counselor_id is not None:
        messages.append(
            (bs.counselor_id, REMINDER_TITLE, f"Your session with {bs.student_username} starts in {minutes} minutes.")
        )
    await dispatch_notifications(notifier, messages)
    return True
