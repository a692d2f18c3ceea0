from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_identity, get_session
from app.api.schemas.booking import (
    CounselorProfileRequest,
    PublishAvailabilityRequest,
    PublishAvailabilityResponse,
)
from app.core.errors import ProfileNotFound
from app.models.booking_session import CounselorCase
from app.models.counselor import CounselorDirectoryEntry, CounselorProfilePublic
from app.models.user import Identity, User
from app.services.availability_service import get_declared_availability, publish_many
from app.services.booking_service import list_completed_cases, list_upcoming_cases
from app.services.counselor_service import (
    get_profile,
    list_counselors,
    require_counselor,
    to_public,
    update_profile,
)
from app.services.session_rules import utc_naive_now

router = APIRouter(prefix="/counselors", tags=["counselors"])


@router.get("", response_model=list[CounselorDirectoryEntry])
async def counselor_directory(
    from_date: date | None = Query(None),
    session: AsyncSession = Depends(get_session),
    _: Identity = Depends(get_identity),
) -> list[CounselorDirectoryEntry]:
    return await list_counselors(session, from_date=from_date or utc_naive_now().date())


@router.get("/me", response_model=CounselorProfilePublic)
async def my_profile(
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
    identity: Identity = Depends(get_identity),
) -> CounselorProfilePublic:
    require_counselor(identity)
    profile = await get_profile(session, identity.user_id)
    if profile is None:
        raise ProfileNotFound()
    return to_public(current_user, profile)


@router.put("/me/profile", response_model=CounselorProfilePublic)
async def put_my_profile(
    body: CounselorProfileRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
    identity: Identity = Depends(get_identity),
) -> CounselorProfilePublic:
    profile = await update_profile(session, identity, body.initials, body.meeting_link, body.timezone)
    return to_public(current_user, profile)


@router.get("/me/availability", response_model=dict[str, list[str]])
async def my_availability(
    from_date: date | None = Query(None),
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
) -> dict[str, list[str]]:
    require_counselor(identity)
    return await get_declared_availability(session, identity.user_id, from_date=from_date)


@router.put("/me/availability", response_model=PublishAvailabilityResponse)
async def publish_my_availability(
    body: PublishAvailabilityRequest,
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
) -> PublishAvailabilityResponse:
    """Replace the declared times for each date in the body; booked slots are kept."""
    require_counselor(identity)
    timings = await publish_many(session, identity.user_id, body.timings)
    return PublishAvailabilityResponse(timings=timings)


@router.get("/me/cases/upcoming", response_model=list[CounselorCase])
async def upcoming_cases(
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
) -> list[CounselorCase]:
    return await list_upcoming_cases(session, identity)


@router.get("/me/cases/completed", response_model=list[CounselorCase])
async def completed_cases(
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
) -> list[CounselorCase]:
    return await list_completed_cases(session, identity)
