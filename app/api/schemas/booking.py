from datetime import date

from pydantic import BaseModel, Field

from app.models.booking_session import BookingSessionPublic
from app.models.slot import OpenSlotGroup


class StartSessionRequest(BaseModel):
    emotions: list[str] = Field(min_length=1)


class DescriptionRequest(BaseModel):
    description: str | None = Field(default=None, max_length=2000)


class BookSlotRequest(BaseModel):
    slot_id: int


class JoinResponse(BaseModel):
    meeting_link: str
    session: BookingSessionPublic


class OpenSlotsResponse(BaseModel):
    start_date: date
    end_date: date
    slots: list[OpenSlotGroup]


class PublishAvailabilityRequest(BaseModel):
    # date -> time labels, e.g. {"2025-06-01": ["10:00", "01:00 PM"]}
    timings: dict[date, list[str]]


class PublishAvailabilityResponse(BaseModel):
    timings: dict[date, list[str]]


class CounselorProfileRequest(BaseModel):
    initials: str = Field(max_length=8)
    meeting_link: str = Field(max_length=500)
    timezone: str | None = None


class CreateOrderRequest(BaseModel):
    session_id: int


class VerifyPaymentRequest(BaseModel):
    session_id: int
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class VerifyPaymentResponse(BaseModel):
    success: bool
    already_paid: bool = False
