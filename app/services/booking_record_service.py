"""Student-facing booking records.

The records table is a denormalized copy of confirmed BookingSessions. It is
written when a payment is verified and kept loosely in step afterwards, so it
can drift; reads reconcile it against the sessions, which always win.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.booking_record import BookingRecord, BookingRecordPublic, RecordStatus
from app.models.booking_session import CONFIRMED_STATUSES, BookingSession, SessionStatus
from app.services.session_rules import utc_naive_now

logger = logging.getLogger(__name__)

_SYNCED_FIELDS = ("counselor_id", "counselor_name", "date", "time", "session_timestamp", "meeting_link", "status")


def record_status_for(status: str) -> str:
    if status == SessionStatus.COMPLETED:
        return RecordStatus.COMPLETED
    if status == SessionStatus.LIVE:
        return RecordStatus.LIVE
    return RecordStatus.UPCOMING


def _expected_fields(bs: BookingSession) -> dict:
    return {
        "counselor_id": bs.counselor_id,
        "counselor_name": bs.counselor_username or "Anonymous",
        "date": bs.slot_date.isoformat() if bs.slot_date else "",
        "time": bs.slot_time or "",
        "session_timestamp": bs.session_timestamp,
        "meeting_link": bs.meeting_link or "",
        "status": record_status_for(bs.status),
    }


def _apply(record: BookingRecord, fields: dict) -> bool:
    changed = False
    for name in _SYNCED_FIELDS:
        if getattr(record, name) != fields[name]:
            setattr(record, name, fields[name])
            changed = True
    if changed:
        record.updated_at = utc_naive_now()
    return changed


async def get_record(session: AsyncSession, session_id: int) -> BookingRecord | None:
    result = await session.execute(select(BookingRecord).where(BookingRecord.session_id == session_id))
    return result.scalar_one_or_none()


async def upsert_record(session: AsyncSession, bs: BookingSession) -> BookingRecord:
    record = await get_record(session, bs.id)
    fields = _expected_fields(bs)
    if record is None:
        record = BookingRecord(student_id=bs.student_id, session_id=bs.id, **fields)
    else:
        _apply(record, fields)
    session.add(record)
    await session.flush()
    return record


def to_public(record: BookingRecord) -> BookingRecordPublic:
    return BookingRecordPublic(
        session_id=record.session_id,
        counselor_id=record.counselor_id,
        counselor_name=record.counselor_name,
        date=record.date,
        time=record.time,
        session_timestamp=record.session_timestamp,
        meeting_link=record.meeting_link,
        status=record.status,
    )


async def list_bookings_for_student(session: AsyncSession, student_id: int) -> list[BookingRecordPublic]:
    """Dashboard listing, repaired from the sessions table on the way out.

    Missing records are rebuilt, drifted ones corrected, and records without a
    confirmed session are left out of the result.
    """
    sessions_result = await session.execute(
        select(BookingSession)
        .where(
            BookingSession.student_id == student_id,
            BookingSession.status.in_([s.value for s in CONFIRMED_STATUSES]),
        )
        .order_by(BookingSession.session_timestamp, BookingSession.id)
    )
    records_result = await session.execute(select(BookingRecord).where(BookingRecord.student_id == student_id))
    by_session = {r.session_id: r for r in records_result.scalars().all()}

    out: list[BookingRecordPublic] = []
    for bs in sessions_result.scalars().all():
        record = by_session.pop(bs.id, None)
        fields = _expected_fields(bs)
        if record is None:
            logger.warning("Booking record missing for session %s; rebuilding", bs.id)
            record = BookingRecord(student_id=student_id, session_id=bs.id, **fields)
            session.add(record)
        elif _apply(record, fields):
            logger.warning("Booking record for session %s drifted; corrected", bs.id)
            session.add(record)
        out.append(to_public(record))

    for orphan in by_session.values():
        logger.warning(
            "Booking record %s has no confirmed session %s; omitted", orphan.id, orphan.session_id
        )
    await session.flush()
    return out
