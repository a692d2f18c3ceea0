import logging
from datetime import date, datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import AvailabilityConflict, PastAvailabilityDate, ProfileNotFound, TooManyTimes
from app.models.counselor import CounselorAvailability, CounselorProfile
from app.models.slot import Slot
from app.models.user import User
from app.services.session_rules import (
    build_session_timestamp,
    label_sort_key,
    local_today,
    normalize_time_label,
    utc_naive_now,
)
from app.services.slot_service import get_slots_for_counselor_day

logger = logging.getLogger(__name__)


def canonical_times(desired_times: list[str]) -> list[str]:
    """Validate, de-duplicate and sort a day's labels chronologically."""
    by_wall_time: dict[tuple[int, int], str] = {}
    for label in desired_times:
        canon = normalize_time_label(label)
        by_wall_time.setdefault(label_sort_key(canon), canon)
    if len(by_wall_time) > settings.max_times_per_day:
        raise TooManyTimes(f"At most {settings.max_times_per_day} times can be offered per day")
    return [by_wall_time[key] for key in sorted(by_wall_time)]


async def _load_counselor(session: AsyncSession, counselor_id: int) -> tuple[User, CounselorProfile]:
    result = await session.execute(
        select(User, CounselorProfile)
        .join(CounselorProfile, CounselorProfile.user_id == User.id)
        .where(User.id == counselor_id)
    )
    row = result.first()
    if not row:
        raise ProfileNotFound()
    return row[0], row[1]


async def publish(
    session: AsyncSession,
    counselor_id: int,
    day: date,
    desired_times: list[str],
    now: datetime | None = None,
) -> list[str]:
    """Reconcile the counselor's slots for `day` with `desired_times`.

    Creates missing slots, deletes unwanted ones only while still unbooked, and
    stores the canonical list as declared availability. Safe to re-run: the
    diff is recomputed from the current inventory each call.
    """
    times = canonical_times(desired_times)
    user, profile = await _load_counselor(session, counselor_id)
    if day < local_today(profile.timezone, now):
        raise PastAvailabilityDate(f"{day.isoformat()} has already passed")

    # Keyed by wall-clock time so "13:00" and "01:00 PM" name the same slot
    existing = {
        label_sort_key(slot.time): slot
        for slot in await get_slots_for_counselor_day(session, counselor_id, day)
    }
    desired = {label_sort_key(label) for label in times}

    missing = [label for label in times if label_sort_key(label) not in existing]
    for label in missing:
        session.add(
            Slot(
                counselor_id=counselor_id,
                day=day,
                time=label,
                starts_at=build_session_timestamp(day, label, profile.timezone),
                counselor_initials=profile.initials or "NA",
                counselor_username=user.username or "",
                counselor_email=user.email,
            )
        )
    try:
        await session.flush()
    except IntegrityError as e:
        # Another publish for the same counselor/day inserted first; the retry recomputes the diff
        logger.warning("Concurrent publish for counselor=%s day=%s: %s", counselor_id, day, e)
        raise AvailabilityConflict() from e

    removable = [slot.id for key, slot in existing.items() if key not in desired]
    removed = 0
    if removable:
        # is_booked is re-checked by the database so a student who booked in the meantime keeps the slot
        result = await session.execute(
            delete(Slot)
            .where(Slot.id.in_(removable), Slot.is_booked == False)  # noqa: E712
            .execution_options(synchronize_session=False)
        )
        removed = result.rowcount or 0

    await _store_declared_times(session, counselor_id, day, times)
    logger.info(
        "Published availability counselor=%s day=%s times=%s created=%d removed=%d kept_booked=%d",
        counselor_id,
        day,
        times,
        len(missing),
        removed,
        len(removable) - removed,
    )
    return times


async def publish_many(
    session: AsyncSession, counselor_id: int, timings: dict[date, list[str]]
) -> dict[date, list[str]]:
    """Sync each date independently."""
    out: dict[date, list[str]] = {}
    for day, times in sorted(timings.items()):
        out[day] = await publish(session, counselor_id, day, times)
    return out


async def _store_declared_times(
    session: AsyncSession, counselor_id: int, day: date, times: list[str]
) -> None:
    result = await session.execute(
        select(CounselorAvailability).where(
            CounselorAvailability.counselor_id == counselor_id,
            CounselorAvailability.day == day,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = CounselorAvailability(counselor_id=counselor_id, day=day, times=times)
    else:
        row.times = list(times)
        row.updated_at = utc_naive_now()
    session.add(row)
    await session.flush()


async def get_declared_availability(
    session: AsyncSession, counselor_id: int, from_date: date | None = None
) -> dict[str, list[str]]:
    q = (
        select(CounselorAvailability)
        .where(CounselorAvailability.counselor_id == counselor_id)
        .order_by(CounselorAvailability.day)
    )
    if from_date:
        q = q.where(CounselorAvailability.day >= from_date)
    result = await session.execute(q)
    return {row.day.isoformat(): list(row.times) for row in result.scalars().all() if row.times}
