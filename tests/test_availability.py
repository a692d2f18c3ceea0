from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select, update

from app.core.errors import InvalidTimeLabel, PastAvailabilityDate, ProfileNotFound, TooManyTimes
from app.models.booking_session import BookingSession
from app.models.slot import Slot
from app.services.availability_service import (
    canonical_times,
    get_declared_availability,
    publish,
    publish_many,
)
from app.services.counselor_service import list_counselors
from app.services.slot_service import list_open_slots
from tests.conftest import create_counselor, create_user


async def _slots(session_maker, counselor_id):
    async with session_maker() as session:
        result = await session.execute(
            select(Slot).where(Slot.counselor_id == counselor_id).order_by(Slot.starts_at)
        )
        return list(result.scalars().all())


def test_canonical_times_dedupes_and_sorts():
    assert canonical_times(["18:00", "09:00", "18:00"]) == ["09:00", "18:00"]
    # Same wall-clock time in both spellings counts once
    assert canonical_times(["01:00 PM", "13:00"]) == ["01:00 PM"]


def test_canonical_times_caps_per_day():
    with pytest.raises(TooManyTimes):
        canonical_times(["09:00", "10:00", "11:00", "12:00"])


@pytest.mark.asyncio
async def test_publish_creates_slots_with_snapshot(session_maker, counselor, future_day):
    async with session_maker() as session:
        times = await publish(session, counselor.id, future_day, ["18:00", "09:00"])
        await session.commit()

    assert times == ["09:00", "18:00"]
    slots = await _slots(session_maker, counselor.id)
    assert [s.time for s in slots] == ["09:00", "18:00"]
    assert all(not s.is_booked for s in slots)
    assert slots[0].counselor_initials == "AB"
    assert slots[0].counselor_username == "calm_counselor"
    assert slots[0].counselor_email == "counselor@example.com"


@pytest.mark.asyncio
async def test_publish_is_idempotent(session_maker, counselor, future_day):
    for _ in range(2):
        async with session_maker() as session:
            await publish(session, counselor.id, future_day, ["09:00", "10:00"])
            await session.commit()
    assert len(await _slots(session_maker, counselor.id)) == 2


@pytest.mark.asyncio
async def test_publish_never_deletes_booked_slot(session_maker, counselor, student, future_day):
    async with session_maker() as session:
        await publish(session, counselor.id, future_day, ["09:00", "10:00"])
        await session.commit()

    slots = await _slots(session_maker, counselor.id)
    booked_id = slots[0].id
    async with session_maker() as session:
        bs = BookingSession(
            student_id=student.id,
            student_email=student.email,
            student_username="river",
            emotions=["anxious"],
        )
        session.add(bs)
        await session.flush()
        await session.execute(
            update(Slot).where(Slot.id == booked_id).values(is_booked=True, booked_by_session_id=bs.id)
        )
        await session.commit()

    async with session_maker() as session:
        times = await publish(session, counselor.id, future_day, ["11:00"])
        await session.commit()

    remaining = {s.time: s.is_booked for s in await _slots(session_maker, counselor.id)}
    assert remaining == {"09:00": True, "11:00": False}
    assert times == ["11:00"]


@pytest.mark.asyncio
async def test_publish_rejects_bad_labels(session_maker, counselor, future_day):
    async with session_maker() as session:
        with pytest.raises(InvalidTimeLabel):
            await publish(session, counselor.id, future_day, ["9am"])
        with pytest.raises(TooManyTimes):
            await publish(session, counselor.id, future_day, ["09:00", "10:00", "11:00", "12:00"])


@pytest.mark.asyncio
async def test_publish_requires_profile(session_maker, future_day):
    user = await create_user(session_maker, "noprofile@example.com", role="counselor")
    async with session_maker() as session:
        with pytest.raises(ProfileNotFound):
            await publish(session, user.id, future_day, ["09:00"])


@pytest.mark.asyncio
async def test_declared_availability_and_directory(session_maker, counselor, future_day):
    async with session_maker() as session:
        await publish_many(session, counselor.id, {future_day: ["06:30 PM", "09:00"]})
        await session.commit()

    async with session_maker() as session:
        declared = await get_declared_availability(session, counselor.id)
        directory = await list_counselors(session)

    assert declared == {future_day.isoformat(): ["09:00", "06:30 PM"]}
    assert directory[0].counselor_id == counselor.id
    assert directory[0].initials == "AB"
    assert directory[0].availability == declared


@pytest.mark.asyncio
async def test_publish_rejects_dates_already_over_in_counselor_zone(session_maker, counselor):
    day = date(2025, 6, 1)
    async with session_maker() as session:
        # 18:00 UTC is 23:30 in Kolkata, still the 1st there
        await publish(session, counselor.id, day, ["09:00"], now=datetime(2025, 6, 1, 18, 0))
        # 19:00 UTC is already the 2nd in Kolkata
        with pytest.raises(PastAvailabilityDate):
            await publish(session, counselor.id, day, ["09:00"], now=datetime(2025, 6, 1, 19, 0))
        with pytest.raises(PastAvailabilityDate):
            await publish(session, counselor.id, date.today() - timedelta(days=2), ["09:00"])


@pytest.mark.asyncio
async def test_open_slots_group_by_wall_clock_time(session_maker, counselor, future_day):
    other = await create_counselor(session_maker, email="second@example.com", username="second", initials="CD")
    async with session_maker() as session:
        await publish(session, counselor.id, future_day, ["13:00"])
        await publish(session, other.id, future_day, ["01:00 PM"])
        await session.commit()

    async with session_maker() as session:
        groups = await list_open_slots(session, future_day, future_day)

    assert len(groups) == 1
    assert {c.counselor_id for c in groups[0].counselors} == {counselor.id, other.id}
