from app.models.user import Identity, User, UserCreate, UserPublic, UserRole
from app.models.refresh_token import RefreshToken
from app.models.counselor import CounselorAvailability, CounselorProfile
from app.models.booking_session import BookingSession, SessionStatus
from app.models.slot import Slot
from app.models.booking_record import BookingRecord, RecordStatus

__all__ = [
    "Identity",
    "User",
    "UserCreate",
    "UserPublic",
    "UserRole",
    "RefreshToken",
    "CounselorAvailability",
    "CounselorProfile",
    "BookingSession",
    "SessionStatus",
    "Slot",
    "BookingRecord",
    "RecordStatus",
]
