from datetime import UTC, datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class RecordStatus(StrEnum):
    UPCOMING = "upcoming"
    LIVE = "live"
    COMPLETED = "completed"


class BookingRecord(SQLModel, table=True):
    """Student dashboard row, derived from a confirmed BookingSession."""

    __tablename__ = "booking_records"
    id: int | None = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="users.id", index=True)
    session_id: int = Field(foreign_key="booking_sessions.id", unique=True)
    counselor_id: int | None = None
    counselor_name: str = "Anonymous"
    date: str = ""
    time: str = ""
    session_timestamp: datetime | None = None
    meeting_link: str = ""
    status: str = RecordStatus.UPCOMING
    created_at: datetime = Field(default_factory=_utc_naive_now)
    updated_at: datetime = Field(default_factory=_utc_naive_now)


class BookingRecordPublic(SQLModel):
    session_id: int
    counselor_id: int | None = None
    counselor_name: str
    date: str
    time: str
    session_timestamp: datetime | None = None
    meeting_link: str
    status: str
