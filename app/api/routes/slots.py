from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_session
from app.api.schemas.booking import OpenSlotsResponse
from app.services.slot_service import list_open_slots

router = APIRouter(prefix="/slots", tags=["slots"])

MAX_RANGE_DAYS = 31


@router.get("/open", response_model=OpenSlotsResponse)
async def open_slots(
    start_date: date = Query(...),
    end_date: date | None = Query(None),
    counselor_id: list[int] | None = Query(None),
    session: AsyncSession = Depends(get_session),
) -> OpenSlotsResponse:
    """Unbooked future slots grouped by time label. Clients poll this endpoint."""
    end = end_date or start_date
    if end < start_date or (end - start_date) > timedelta(days=MAX_RANGE_DAYS):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"end_date must be within {MAX_RANGE_DAYS} days after start_date",
        )
    groups = await list_open_slots(session, start_date, end, counselor_ids=counselor_id)
    return OpenSlotsResponse(start_date=start_date, end_date=end, slots=groups)
