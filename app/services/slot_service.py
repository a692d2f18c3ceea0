from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import SlotUnavailable
from app.models.slot import OpenSlotGroup, Slot, SlotCounselor
from app.services.session_rules import label_sort_key, utc_naive_now


async def get_slot(session: AsyncSession, slot_id: int) -> Slot | None:
    result = await session.execute(select(Slot).where(Slot.id == slot_id))
    return result.scalar_one_or_none()


async def get_slots_for_counselor_day(
    session: AsyncSession, counselor_id: int, day: date
) -> list[Slot]:
    result = await session.execute(
        select(Slot).where(Slot.counselor_id == counselor_id, Slot.day == day)
    )
    return list(result.scalars().all())


async def list_open_slots(
    session: AsyncSession,
    start_date: date,
    end_date: date,
    counselor_ids: list[int] | None = None,
    now: datetime | None = None,
) -> list[OpenSlotGroup]:
    """Unbooked, not-yet-started slots in [start_date, end_date], grouped by day and wall-clock time.

    "13:00" and "01:00 PM" land in the same group, labelled by the earliest slot.
    Past slots are filtered out but left in place.
    """
    now = now or utc_naive_now()
    q = (
        select(Slot)
        .where(
            Slot.is_booked == False,  # noqa: E712
            Slot.day >= start_date,
            Slot.day <= end_date,
            Slot.starts_at > now,
        )
        .order_by(Slot.starts_at, Slot.id)
    )
    if counselor_ids:
        q = q.where(Slot.counselor_id.in_(counselor_ids))
    result = await session.execute(q)

    groups: dict[tuple[date, tuple[int, int]], OpenSlotGroup] = {}
    for slot in result.scalars().all():
        key = (slot.day, label_sort_key(slot.time))
        group = groups.get(key)
        if group is None:
            group = OpenSlotGroup(day=slot.day, time=slot.time, starts_at_utc=slot.starts_at, counselors=[])
            groups[key] = group
        group.counselors.append(
            SlotCounselor(
                slot_id=slot.id,
                counselor_id=slot.counselor_id,
                initials=slot.counselor_initials,
                username=slot.counselor_username,
                email=slot.counselor_email,
            )
        )
    return list(groups.values())


async def reserve(session: AsyncSession, slot_id: int, session_id: int) -> None:
    """Flip a slot from unbooked to booked for session_id.

    Single conditional UPDATE: the database decides the winner, so concurrent
    callers on the same slot see exactly one success and SlotUnavailable for the rest.
    """
    result = await session.execute(
        update(Slot)
        .where(Slot.id == slot_id, Slot.is_booked == False)  # noqa: E712
        .values(is_booked=True, booked_by_session_id=session_id, updated_at=utc_naive_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise SlotUnavailable()
