from datetime import UTC, date, datetime

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class CounselorProfile(SQLModel, table=True):
    __tablename__ = "counselor_profiles"
    user_id: int = Field(foreign_key="users.id", primary_key=True)
    initials: str | None = None
    # Join destination handed to students once a slot is booked
    meeting_link: str | None = None
    # IANA zone the counselor's time labels are expressed in; None means the default zone
    timezone: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now)
    updated_at: datetime = Field(default_factory=_utc_naive_now)


class CounselorAvailability(SQLModel, table=True):
    """Declared availability for one counselor on one date (display only)."""

    __tablename__ = "counselor_availability"
    __table_args__ = (UniqueConstraint("counselor_id", "day", name="uq_counselor_availability_date"),)
    id: int | None = Field(default=None, primary_key=True)
    counselor_id: int = Field(foreign_key="users.id", index=True)
    day: date
    times: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    updated_at: datetime = Field(default_factory=_utc_naive_now)


class CounselorProfilePublic(SQLModel):
    user_id: int
    username: str | None = None
    email: str
    initials: str | None = None
    meeting_link: str | None = None
    timezone: str
    is_complete: bool


class CounselorDirectoryEntry(SQLModel):
    counselor_id: int
    initials: str
    availability: dict[str, list[str]]
