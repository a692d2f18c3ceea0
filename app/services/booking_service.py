import logging
from datetime import datetime, timedelta

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import (
    EmailNotVerified,
    InvalidEmotions,
    InvalidSessionState,
    JoinWindowClosed,
    MeetingLinkMissing,
    NotSessionOwner,
    RoleRequired,
    SessionNotFound,
    SlotNotSelected,
    SlotUnavailable,
)
from app.models.booking_session import (
    CONFIRMED_STATUSES,
    PRE_PAID_STATUSES,
    PRE_SLOT_STATUSES,
    AbandonedSession,
    BookingSession,
    BookingSessionPublic,
    CounselorCase,
    PaymentOrder,
    SelectedSlot,
    SessionCountdown,
    SessionStatus,
    StudentSnapshot,
)
from app.models.user import Identity, User, UserRole
from app.services.booking_record_service import upsert_record
from app.services.counselor_service import get_profile, require_counselor
from app.services.session_rules import (
    can_join,
    join_opens_at,
    remaining_seconds,
    utc_naive_now,
)
from app.services.slot_service import get_slot, reserve

logger = logging.getLogger(__name__)


async def get_booking_session(session: AsyncSession, session_id: int) -> BookingSession:
    bs = await session.get(BookingSession, session_id)
    if bs is None:
        raise SessionNotFound()
    return bs


async def get_owned_session(session: AsyncSession, identity: Identity, session_id: int) -> BookingSession:
    bs = await get_booking_session(session, session_id)
    if bs.student_id != identity.user_id:
        raise NotSessionOwner()
    return bs


async def get_session_for_user(session: AsyncSession, identity: Identity, session_id: int) -> BookingSession:
    """Readable by the student, the booked counselor and admins."""
    bs = await get_booking_session(session, session_id)
    if identity.user_id in (bs.student_id, bs.counselor_id) or identity.role == UserRole.ADMIN:
        return bs
    raise NotSessionOwner()


async def transition_status(
    session: AsyncSession,
    bs: BookingSession,
    allowed_from: set[str] | frozenset[str],
    **values,
) -> None:
    """Conditional status update; the row must still be in one of `allowed_from`."""
    values.setdefault("updated_at", utc_naive_now())
    result = await session.execute(
        update(BookingSession)
        .where(BookingSession.id == bs.id, BookingSession.status.in_([str(s) for s in allowed_from]))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidSessionState()
    await session.refresh(bs)


def _clean_emotions(emotions: list[str]) -> list[str]:
    cleaned: list[str] = []
    for tag in emotions:
        tag = (tag or "").strip()
        if tag and tag not in cleaned:
            cleaned.append(tag)
    if not cleaned:
        raise InvalidEmotions()
    if len(cleaned) > settings.max_emotions:
        raise InvalidEmotions(f"Select at most {settings.max_emotions} emotions")
    return cleaned


async def start_session(session: AsyncSession, identity: Identity, emotions: list[str]) -> BookingSession:
    if identity.role != UserRole.STUDENT:
        raise RoleRequired("Only students can book sessions")
    if settings.require_verified_email and not identity.email_verified:
        raise EmailNotVerified()
    bs = BookingSession(
        student_id=identity.user_id,
        student_email=identity.email,
        student_username=identity.display_name,
        emotions=_clean_emotions(emotions),
        status=SessionStatus.EMOTIONS_SELECTED,
    )
    session.add(bs)
    await session.flush()
    await session.refresh(bs)
    logger.info("Student %s started session %s", identity.user_id, bs.id)
    return bs


async def save_description(
    session: AsyncSession, identity: Identity, session_id: int, description: str | None
) -> BookingSession:
    bs = await get_owned_session(session, identity, session_id)
    text = (description or "").strip() or None
    await transition_status(
        session,
        bs,
        PRE_SLOT_STATUSES,
        description=text,
        status=SessionStatus.DESCRIPTION_ADDED if text else SessionStatus.EMOTIONS_SELECTED,
    )
    return bs


async def book_slot(
    session: AsyncSession,
    identity: Identity,
    session_id: int,
    slot_id: int,
    now: datetime | None = None,
) -> BookingSession:
    """Reserve `slot_id` for the session and stamp it with the schedule.

    Everything runs in the caller's transaction; any error rolls back the
    reservation together with the session update.
    """
    now = now or utc_naive_now()
    bs = await get_owned_session(session, identity, session_id)
    if bs.status not in PRE_SLOT_STATUSES:
        raise InvalidSessionState("A slot has already been selected for this session")

    slot = await get_slot(session, slot_id)
    if slot is None or slot.is_booked or slot.starts_at <= now:
        raise SlotUnavailable()

    profile = await get_profile(session, slot.counselor_id)
    if profile is None or not (profile.meeting_link or "").strip():
        raise MeetingLinkMissing()
    counselor = await session.get(User, slot.counselor_id)

    await reserve(session, slot.id, bs.id)
    await transition_status(
        session,
        bs,
        PRE_SLOT_STATUSES,
        status=SessionStatus.SLOT_SELECTED,
        slot_id=slot.id,
        slot_date=slot.day,
        slot_time=slot.time,
        counselor_id=slot.counselor_id,
        counselor_initials=profile.initials or slot.counselor_initials,
        counselor_username=(counselor.username if counselor else None) or slot.counselor_username,
        counselor_email=counselor.email if counselor else slot.counselor_email,
        session_timestamp=slot.starts_at,
        meeting_link=profile.meeting_link.strip(),
    )
    logger.info("Session %s booked slot %s (%s %s)", bs.id, slot.id, slot.day, slot.time)
    return bs


async def join_session(
    session: AsyncSession, identity: Identity, session_id: int, now: datetime | None = None
) -> BookingSession:
    """Open the meeting link; the student's first join marks the session live."""
    now = now or utc_naive_now()
    bs = await get_booking_session(session, session_id)
    is_student = bs.student_id == identity.user_id
    if not is_student and bs.counselor_id != identity.user_id:
        raise NotSessionOwner()
    if bs.status not in (SessionStatus.PAID, SessionStatus.LIVE):
        raise InvalidSessionState("Only paid sessions can be joined")
    if not can_join(bs.session_timestamp, now):
        raise JoinWindowClosed(
            f"The session can be joined from {join_opens_at(bs.session_timestamp).isoformat()}Z"
        )
    if not bs.meeting_link:
        raise MeetingLinkMissing("Meeting link not available")
    if is_student and bs.status == SessionStatus.PAID:
        await transition_status(session, bs, {SessionStatus.PAID}, status=SessionStatus.LIVE)
        await upsert_record(session, bs)
        logger.info("Session %s is live", bs.id)
    return bs


async def complete_session(
    session: AsyncSession, identity: Identity, session_id: int, now: datetime | None = None
) -> BookingSession:
    require_counselor(identity)
    bs = await get_booking_session(session, session_id)
    if bs.counselor_id != identity.user_id:
        raise NotSessionOwner()
    if bs.status == SessionStatus.COMPLETED:
        return bs
    await transition_status(
        session,
        bs,
        {SessionStatus.PAID, SessionStatus.LIVE},
        status=SessionStatus.COMPLETED,
        completed_at=now or utc_naive_now(),
    )
    await upsert_record(session, bs)
    logger.info("Counselor %s completed session %s", identity.user_id, bs.id)
    return bs


async def get_countdown(
    session: AsyncSession, identity: Identity, session_id: int, now: datetime | None = None
) -> SessionCountdown:
    now = now or utc_naive_now()
    bs = await get_session_for_user(session, identity, session_id)
    if bs.session_timestamp is None:
        raise SlotNotSelected()
    return SessionCountdown(
        session_id=bs.id,
        status=bs.status,
        session_timestamp=bs.session_timestamp,
        date=bs.slot_date.isoformat() if bs.slot_date else None,
        time=bs.slot_time,
        counselor_initials=bs.counselor_initials or "TBD",
        counselor_username=bs.counselor_username or "Unknown",
        counselor_email=bs.counselor_email,
        remaining_seconds=remaining_seconds(bs.session_timestamp, now),
        can_join=bs.status in (SessionStatus.PAID, SessionStatus.LIVE) and can_join(bs.session_timestamp, now),
    )


async def list_sessions_for_student(session: AsyncSession, identity: Identity) -> list[BookingSession]:
    result = await session.execute(
        select(BookingSession)
        .where(BookingSession.student_id == identity.user_id)
        .order_by(BookingSession.created_at.desc(), BookingSession.id.desc())
    )
    return list(result.scalars().all())


def _to_case(bs: BookingSession) -> CounselorCase:
    return CounselorCase(
        session_id=bs.id,
        student_name=bs.student_username or "Unknown",
        session_timestamp=bs.session_timestamp,
        date=bs.slot_date.isoformat() if bs.slot_date else "",
        time=bs.slot_time or "",
        status=bs.status,
        description=bs.description,
        meeting_link=bs.meeting_link,
    )


async def list_upcoming_cases(session: AsyncSession, identity: Identity) -> list[CounselorCase]:
    require_counselor(identity)
    result = await session.execute(
        select(BookingSession)
        .where(
            BookingSession.counselor_id == identity.user_id,
            BookingSession.status.in_([SessionStatus.PAID.value, SessionStatus.LIVE.value]),
        )
        .order_by(BookingSession.session_timestamp)
    )
    return [_to_case(bs) for bs in result.scalars().all()]


async def list_completed_cases(session: AsyncSession, identity: Identity) -> list[CounselorCase]:
    require_counselor(identity)
    result = await session.execute(
        select(BookingSession)
        .where(
            BookingSession.counselor_id == identity.user_id,
            BookingSession.status == SessionStatus.COMPLETED.value,
        )
        .order_by(BookingSession.session_timestamp.desc())
    )
    return [_to_case(bs) for bs in result.scalars().all()]


async def list_abandoned_sessions(
    session: AsyncSession, identity: Identity, now: datetime | None = None
) -> list[AbandonedSession]:
    """Unpaid sessions for manual review; nothing here releases their slots."""
    if identity.role != UserRole.ADMIN:
        raise RoleRequired("Only operators can review abandoned sessions")
    now = now or utc_naive_now()
    stale_before = now - timedelta(hours=settings.abandoned_after_hours)
    result = await session.execute(
        select(BookingSession)
        .where(
            BookingSession.status.in_([s.value for s in PRE_PAID_STATUSES]),
            or_(
                and_(BookingSession.session_timestamp.is_not(None), BookingSession.session_timestamp <= now),
                BookingSession.created_at <= stale_before,
            ),
        )
        .order_by(BookingSession.created_at)
    )
    return [
        AbandonedSession(
            session_id=bs.id,
            status=bs.status,
            student_id=bs.student_id,
            student_email=bs.student_email,
            slot_id=bs.slot_id,
            session_timestamp=bs.session_timestamp,
            created_at=bs.created_at,
        )
        for bs in result.scalars().all()
    ]


def to_public(bs: BookingSession) -> BookingSessionPublic:
    selected = None
    if bs.slot_id is not None and bs.counselor_id is not None:
        selected = SelectedSlot(
            date=bs.slot_date.isoformat() if bs.slot_date else "",
            time=bs.slot_time or "",
            counselor_id=bs.counselor_id,
            counselor_initials=bs.counselor_initials,
            counselor_username=bs.counselor_username,
            counselor_email=bs.counselor_email,
            slot_doc_id=bs.slot_id,
        )
    order = None
    if bs.razorpay_order_id:
        order = PaymentOrder(
            order_id=bs.razorpay_order_id,
            amount=bs.razorpay_order_amount or 0,
            created_by=bs.razorpay_order_created_by,
            status=bs.razorpay_order_status,
        )
    return BookingSessionPublic(
        id=bs.id,
        status=bs.status,
        student=StudentSnapshot(uid=bs.student_id, email=bs.student_email, username=bs.student_username),
        emotions=list(bs.emotions or []),
        description=bs.description,
        selected_slot=selected,
        session_timestamp=bs.session_timestamp,
        # The join destination is only handed out once the session is paid
        meeting_link=bs.meeting_link if bs.status in CONFIRMED_STATUSES else None,
        razorpay_order=order,
        razorpay_payment_id=bs.razorpay_payment_id,
        reminder_scheduled=bs.reminder_scheduled,
        created_at=bs.created_at,
        updated_at=bs.updated_at,
    )
