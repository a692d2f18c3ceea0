from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_identity, get_session
from app.models.booking_record import BookingRecordPublic
from app.models.user import Identity
from app.services.booking_record_service import list_bookings_for_student

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("", response_model=list[BookingRecordPublic])
async def my_bookings(
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
) -> list[BookingRecordPublic]:
    """Confirmed bookings for the current student, reconciled against their sessions."""
    return await list_bookings_for_student(session, identity.user_id)
