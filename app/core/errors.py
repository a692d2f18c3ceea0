"""Domain errors raised by the booking services.

Each error carries the HTTP status and a stable machine code; the exception
handler in app.main renders them. Integrity errors (``public = False``) are
logged with their detail and returned to the client as a generic message.
"""

from fastapi import status


class BookingError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "BOOKING_ERROR"
    default_detail: str = "Request could not be completed"
    public: bool = True

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class SlotUnavailable(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "SLOT_UNAVAILABLE"
    default_detail = "This slot is no longer available. Please pick another slot."


class MeetingLinkMissing(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "MEETING_LINK_MISSING"
    default_detail = "This counselor has not set a meeting link yet. Please choose a different counselor."


class SessionExpired(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "SESSION_EXPIRED"
    default_detail = "The scheduled time has passed. Please book a new session."


class AlreadyPaid(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "SESSION_ALREADY_PAID"
    default_detail = "This session is already paid."


class SlotNotSelected(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "SLOT_NOT_SELECTED"
    default_detail = "Select a slot before paying."


class InvalidSessionState(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_SESSION_STATE"
    default_detail = "This action is not allowed in the session's current state."


class JoinWindowClosed(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "JOIN_NOT_OPEN"
    default_detail = "The session can be joined from 5 minutes before the scheduled time."


class InvalidSignature(BookingError):
    code = "INVALID_SIGNATURE"
    default_detail = "Payment signature mismatch"
    public = False


class OrderMismatch(BookingError):
    code = "ORDER_MISMATCH"
    default_detail = "Payment order does not match the session"
    public = False


class PaymentGatewayError(BookingError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "PAYMENT_GATEWAY_ERROR"
    default_detail = "Payment gateway request failed"
    public = False


class ProfileNotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "PROFILE_NOT_FOUND"
    default_detail = "Counselor profile not found. Please sign in again and retry."


class SessionNotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "SESSION_NOT_FOUND"
    default_detail = "Session not found"


class NotSessionOwner(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "NOT_SESSION_OWNER"
    default_detail = "You do not have access to this session"


class RoleRequired(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "ROLE_REQUIRED"
    default_detail = "Your account cannot perform this action"


class EmailNotVerified(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "EMAIL_NOT_VERIFIED"
    default_detail = "Please verify your email address first"


class InvalidTimeLabel(BookingError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_TIME"
    default_detail = "Time must look like 09:00 or 09:00 AM and fall on a 15-minute boundary"


class TooManyTimes(BookingError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "TOO_MANY_TIMES"
    default_detail = "At most 3 times can be offered per day"


class PastAvailabilityDate(BookingError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "PAST_DATE"
    default_detail = "Availability can only be published for today or later"


class InvalidProfile(BookingError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_PROFILE"


class InvalidEmotions(BookingError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_EMOTIONS"
    default_detail = "Select at least one emotion"


class UsernameTaken(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "USERNAME_TAKEN"
    default_detail = "Username already taken"


class AvailabilityConflict(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "AVAILABILITY_CONFLICT"
    default_detail = "Availability changed while saving. Please retry."
