from datetime import UTC, date, datetime
from enum import StrEnum

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class SessionStatus(StrEnum):
    EMOTIONS_SELECTED = "emotions_selected"
    DESCRIPTION_ADDED = "description_added"
    SLOT_SELECTED = "slot_selected"
    PAYMENT_PENDING = "payment_pending"
    PAID = "paid"
    LIVE = "live"
    COMPLETED = "completed"


PRE_SLOT_STATUSES = frozenset({SessionStatus.EMOTIONS_SELECTED, SessionStatus.DESCRIPTION_ADDED})
PRE_PAID_STATUSES = PRE_SLOT_STATUSES | {SessionStatus.SLOT_SELECTED, SessionStatus.PAYMENT_PENDING}
CONFIRMED_STATUSES = frozenset({SessionStatus.PAID, SessionStatus.LIVE, SessionStatus.COMPLETED})


class BookingSession(SQLModel, table=True):
    __tablename__ = "booking_sessions"
    id: int | None = Field(default=None, primary_key=True)

    # Student snapshot taken when the session is started
    student_id: int = Field(foreign_key="users.id", index=True)
    student_email: str
    student_username: str

    emotions: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    description: str | None = None
    status: str = Field(default=SessionStatus.EMOTIONS_SELECTED, index=True)

    # Selected slot snapshot; not a live reference to the counselor
    slot_id: int | None = Field(default=None, index=True)
    slot_date: date | None = None
    slot_time: str | None = None
    counselor_id: int | None = Field(default=None, foreign_key="users.id", index=True)
    counselor_initials: str | None = None
    counselor_username: str | None = None
    counselor_email: str | None = None
    session_timestamp: datetime | None = Field(default=None, index=True)
    meeting_link: str | None = None

    razorpay_order_id: str | None = Field(default=None, index=True)
    razorpay_order_amount: int | None = None
    razorpay_order_created_by: int | None = None
    razorpay_order_status: str | None = None
    razorpay_payment_id: str | None = None
    payment_verified_at: datetime | None = None

    reminder_scheduled: bool = False
    reminder_task_id: str | None = None
    reminder_sent_at: datetime | None = None

    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now)
    updated_at: datetime = Field(default_factory=_utc_naive_now)


class StudentSnapshot(SQLModel):
    uid: int
    email: str
    username: str


class SelectedSlot(SQLModel):
    date: str
    time: str
    counselor_id: int
    counselor_initials: str | None = None
    counselor_username: str | None = None
    counselor_email: str | None = None
    slot_doc_id: int


class PaymentOrder(SQLModel):
    order_id: str
    amount: int
    created_by: int | None = None
    status: str | None = None


class BookingSessionPublic(SQLModel):
    id: int
    status: str
    student: StudentSnapshot
    emotions: list[str]
    description: str | None = None
    selected_slot: SelectedSlot | None = None
    session_timestamp: datetime | None = None
    meeting_link: str | None = None
    razorpay_order: PaymentOrder | None = None
    razorpay_payment_id: str | None = None
    reminder_scheduled: bool
    created_at: datetime
    updated_at: datetime


class CounselorCase(SQLModel):
    session_id: int
    student_name: str
    session_timestamp: datetime
    date: str
    time: str
    status: str
    description: str | None = None
    meeting_link: str | None = None


class SessionCountdown(SQLModel):
    session_id: int
    status: str
    session_timestamp: datetime
    date: str | None = None
    time: str | None = None
    counselor_initials: str
    counselor_username: str
    counselor_email: str | None = None
    remaining_seconds: int
    can_join: bool


class AbandonedSession(SQLModel):
    session_id: int
    status: str
    student_id: int
    student_email: str
    slot_id: int | None = None
    session_timestamp: datetime | None = None
    created_at: datetime
