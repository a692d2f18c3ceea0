from datetime import timedelta

import pytest
from sqlalchemy import select, update

from app.core.errors import (
    InvalidSessionState,
    JoinWindowClosed,
    NotSessionOwner,
    RoleRequired,
    SlotNotSelected,
)
from app.models.booking_record import BookingRecord
from app.models.booking_session import BookingSession, SessionStatus
from app.models.slot import Slot
from app.models.user import UserRole
from app.services.booking_service import (
    complete_session,
    get_countdown,
    join_session,
    list_abandoned_sessions,
    list_completed_cases,
    list_upcoming_cases,
    start_session,
)
from tests.conftest import COUNSELOR_LINK, book_session, create_user, identity_for, paid_session


async def _status(session_maker, bs_id):
    async with session_maker() as session:
        return (await session.get(BookingSession, bs_id)).status


@pytest.mark.asyncio
async def test_join_window_opens_five_minutes_early(session_maker, gateway, student, counselor, future_day):
    bs = await paid_session(session_maker, gateway, student, counselor, future_day)
    too_early = bs.session_timestamp - timedelta(minutes=6)
    on_time = bs.session_timestamp - timedelta(minutes=5)

    async with session_maker() as session:
        with pytest.raises(JoinWindowClosed):
            await join_session(session, identity_for(student), bs.id, now=too_early)

    async with session_maker() as session:
        joined = await join_session(session, identity_for(student), bs.id, now=on_time)
        await session.commit()
    assert joined.meeting_link == COUNSELOR_LINK
    assert joined.status == SessionStatus.LIVE

    async with session_maker() as session:
        record = (
            await session.execute(select(BookingRecord).where(BookingRecord.session_id == bs.id))
        ).scalar_one()
    assert record.status == "live"


@pytest.mark.asyncio
async def test_counselor_join_keeps_status(session_maker, gateway, student, counselor, future_day):
    bs = await paid_session(session_maker, gateway, student, counselor, future_day)
    async with session_maker() as session:
        joined = await join_session(session, identity_for(counselor), bs.id, now=bs.session_timestamp)
        await session.commit()
    assert joined.meeting_link == COUNSELOR_LINK
    assert await _status(session_maker, bs.id) == SessionStatus.PAID


@pytest.mark.asyncio
async def test_unpaid_session_cannot_be_joined(session_maker, student, counselor, future_day):
    bs = await book_session(session_maker, student, counselor, future_day)
    async with session_maker() as session:
        with pytest.raises(InvalidSessionState):
            await join_session(session, identity_for(student), bs.id, now=bs.session_timestamp)


@pytest.mark.asyncio
async def test_stranger_cannot_join(session_maker, gateway, student, counselor, future_day):
    bs = await paid_session(session_maker, gateway, student, counselor, future_day)
    stranger = await create_user(session_maker, "stranger@example.com", username="stranger")
    async with session_maker() as session:
        with pytest.raises(NotSessionOwner):
            await join_session(session, identity_for(stranger), bs.id, now=bs.session_timestamp)


@pytest.mark.asyncio
async def test_complete_is_counselor_only_and_repeatable(session_maker, gateway, student, counselor, future_day):
    bs = await paid_session(session_maker, gateway, student, counselor, future_day)

    async with session_maker() as session:
        with pytest.raises(RoleRequired):
            await complete_session(session, identity_for(student), bs.id)

    for _ in range(2):
        async with session_maker() as session:
            done = await complete_session(session, identity_for(counselor), bs.id)
            await session.commit()
        assert done.status == SessionStatus.COMPLETED
        assert done.completed_at is not None

    async with session_maker() as session:
        record = (
            await session.execute(select(BookingRecord).where(BookingRecord.session_id == bs.id))
        ).scalar_one()
        upcoming = await list_upcoming_cases(session, identity_for(counselor))
        completed = await list_completed_cases(session, identity_for(counselor))
        slot = await session.get(Slot, bs.slot_id)
    assert record.status == "completed"
    assert slot.is_booked
    assert slot.booked_by_session_id == bs.id
    assert upcoming == []
    assert [c.session_id for c in completed] == [bs.id]


@pytest.mark.asyncio
async def test_completing_unpaid_session_fails(session_maker, student, counselor, future_day):
    bs = await book_session(session_maker, student, counselor, future_day)
    async with session_maker() as session:
        with pytest.raises(InvalidSessionState):
            await complete_session(session, identity_for(counselor), bs.id)


@pytest.mark.asyncio
async def test_countdown(session_maker, gateway, student, counselor, future_day):
    bs = await paid_session(session_maker, gateway, student, counselor, future_day)
    now = bs.session_timestamp - timedelta(minutes=10)
    async with session_maker() as session:
        countdown = await get_countdown(session, identity_for(student), bs.id, now=now)
    assert countdown.remaining_seconds == 600
    assert not countdown.can_join
    assert countdown.counselor_initials == "AB"
    assert countdown.counselor_username == "calm_counselor"

    async with session_maker() as session:
        fresh = await start_session(session, identity_for(student), ["sad"])
        await session.commit()
    async with session_maker() as session:
        with pytest.raises(SlotNotSelected):
            await get_countdown(session, identity_for(student), fresh.id)


@pytest.mark.asyncio
async def test_upcoming_cases_for_counselor(session_maker, gateway, student, counselor, future_day):
    bs = await paid_session(session_maker, gateway, student, counselor, future_day)
    async with session_maker() as session:
        cases = await list_upcoming_cases(session, identity_for(counselor))
        with pytest.raises(RoleRequired):
            await list_upcoming_cases(session, identity_for(student))
    assert len(cases) == 1
    assert cases[0].session_id == bs.id
    assert cases[0].student_name == "river"
    assert cases[0].meeting_link == COUNSELOR_LINK


@pytest.mark.asyncio
async def test_abandoned_sessions_listed_for_admin(session_maker, student, counselor, future_day):
    admin = await create_user(session_maker, "ops@example.com", role=UserRole.ADMIN, username="ops")
    bs = await book_session(session_maker, student, counselor, future_day)

    async with session_maker() as session:
        stale = await start_session(session, identity_for(student), ["sad"])
        await session.flush()
        await session.execute(
            update(BookingSession)
            .where(BookingSession.id == stale.id)
            .values(created_at=stale.created_at - timedelta(hours=25))
        )
        await session.commit()

    async with session_maker() as session:
        now_list = await list_abandoned_sessions(session, identity_for(admin))
        later_list = await list_abandoned_sessions(
            session, identity_for(admin), now=bs.session_timestamp + timedelta(minutes=1)
        )
        with pytest.raises(RoleRequired):
            await list_abandoned_sessions(session, identity_for(student))

    assert [a.session_id for a in now_list] == [stale.id]
    assert {a.session_id for a in later_list} == {stale.id, bs.id}
    assert next(a for a in later_list if a.session_id == bs.id).slot_id == bs.slot_id
