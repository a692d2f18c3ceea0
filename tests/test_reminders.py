from datetime import timedelta

import pytest

from app.models.booking_session import BookingSession
from app.services.reminder_service import (
    REMINDER_TITLE,
    arm_session_reminder,
    deliver_session_reminder,
)
from tests.conftest import RecordingNotifier, RecordingScheduler, book_session, paid_session


async def _stored(session_maker, bs_id):
    async with session_maker() as session:
        return await session.get(BookingSession, bs_id)


@pytest.mark.asyncio
async def test_reminder_armed_once(session_maker, gateway, student, counselor, future_day):
    bs = await paid_session(session_maker, gateway, student, counselor, future_day)
    scheduler = RecordingScheduler()

    first = await arm_session_reminder(session_maker, bs.id, scheduler)
    second = await arm_session_reminder(session_maker, bs.id, scheduler)

    assert first == "task-1"
    assert second is None
    assert scheduler.calls == [(bs.session_timestamp - timedelta(minutes=5), {"session_id": bs.id})]
    stored = await _stored(session_maker, bs.id)
    assert stored.reminder_scheduled
    assert stored.reminder_task_id == "task-1"


@pytest.mark.asyncio
async def test_reminder_skipped_when_too_late(session_maker, gateway, student, counselor, future_day):
    bs = await paid_session(session_maker, gateway, student, counselor, future_day)
    scheduler = RecordingScheduler()

    handle = await arm_session_reminder(
        session_maker, bs.id, scheduler, now=bs.session_timestamp - timedelta(minutes=4)
    )

    assert handle is None
    assert scheduler.calls == []
    assert not (await _stored(session_maker, bs.id)).reminder_scheduled


@pytest.mark.asyncio
async def test_reminder_claim_released_when_scheduler_fails(session_maker, gateway, student, counselor, future_day):
    bs = await paid_session(session_maker, gateway, student, counselor, future_day)

    assert await arm_session_reminder(session_maker, bs.id, RecordingScheduler(fail=True)) is None
    assert not (await _stored(session_maker, bs.id)).reminder_scheduled

    # A later attempt can still schedule it
    assert await arm_session_reminder(session_maker, bs.id, RecordingScheduler()) == "task-1"


@pytest.mark.asyncio
async def test_unpaid_session_gets_no_reminder(session_maker, student, counselor, future_day):
    bs = await book_session(session_maker, student, counselor, future_day)
    scheduler = RecordingScheduler()
    assert await arm_session_reminder(session_maker, bs.id, scheduler) is None
    assert scheduler.calls == []


@pytest.mark.asyncio
async def test_reminder_delivered_once(session_maker, gateway, student, counselor, future_day):
    bs = await paid_session(session_maker, gateway, student, counselor, future_day)
    notifier = RecordingNotifier()

    assert await deliver_session_reminder(session_maker, bs.id, notifier)
    # Broker redelivery
    assert not await deliver_session_reminder(session_maker, bs.id, notifier)

    assert [(uid, title) for uid, title, _ in notifier.sent] == [
        (student.id, REMINDER_TITLE),
        (counselor.id, REMINDER_TITLE),
    ]
    assert (await _stored(session_maker, bs.id)).reminder_sent_at is not None


@pytest.mark.asyncio
async def test_reminder_not_delivered_for_unpaid_session(session_maker, student, counselor, future_day):
    bs = await book_session(session_maker, student, counselor, future_day)
    notifier = RecordingNotifier()
    assert not await deliver_session_reminder(session_maker, bs.id, notifier)
    assert notifier.sent == []
