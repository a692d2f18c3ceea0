from datetime import UTC, date, datetime

from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class Slot(SQLModel, table=True):
    __tablename__ = "slots"
    __table_args__ = (
        UniqueConstraint("counselor_id", "day", "time", name="uq_slots_counselor_date_time"),
        CheckConstraint(
            "(is_booked AND booked_by_session_id IS NOT NULL) OR "
            "(NOT is_booked AND booked_by_session_id IS NULL)",
            name="ck_slots_booked_has_session",
        ),
    )
    id: int | None = Field(default=None, primary_key=True)
    counselor_id: int = Field(foreign_key="users.id", index=True)
    day: date = Field(index=True)
    time: str
    # Absolute start (naive UTC) derived from date + time in the counselor's zone
    starts_at: datetime = Field(index=True)
    is_booked: bool = Field(default=False, index=True)
    booked_by_session_id: int | None = Field(default=None, foreign_key="booking_sessions.id")
    counselor_initials: str | None = None
    counselor_username: str | None = None
    counselor_email: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now)
    updated_at: datetime = Field(default_factory=_utc_naive_now)


class SlotCounselor(SQLModel):
    slot_id: int
    counselor_id: int
    initials: str | None = None
    username: str | None = None
    email: str | None = None


class OpenSlotGroup(SQLModel):
    day: date
    time: str
    starts_at_utc: datetime
    counselors: list[SlotCounselor]
