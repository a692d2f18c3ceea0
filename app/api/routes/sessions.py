from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_identity, get_session
from app.api.schemas.booking import (
    BookSlotRequest,
    DescriptionRequest,
    JoinResponse,
    StartSessionRequest,
)
from app.models.booking_session import BookingSessionPublic, SessionCountdown
from app.models.user import Identity
from app.services.booking_service import (
    book_slot,
    complete_session,
    get_countdown,
    get_session_for_user,
    join_session,
    list_sessions_for_student,
    save_description,
    start_session,
    to_public,
)

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=BookingSessionPublic, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: StartSessionRequest,
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
) -> BookingSessionPublic:
    bs = await start_session(session, identity, body.emotions)
    return to_public(bs)


@router.get("/mine", response_model=list[BookingSessionPublic])
async def my_sessions(
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
) -> list[BookingSessionPublic]:
    return [to_public(bs) for bs in await list_sessions_for_student(session, identity)]


@router.get("/{session_id}", response_model=BookingSessionPublic)
async def get_booking_session(
    session_id: int,
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
) -> BookingSessionPublic:
    bs = await get_session_for_user(session, identity, session_id)
    return to_public(bs)


@router.put("/{session_id}/description", response_model=BookingSessionPublic)
async def put_description(
    session_id: int,
    body: DescriptionRequest,
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
) -> BookingSessionPublic:
    bs = await save_description(session, identity, session_id, body.description)
    return to_public(bs)


@router.post("/{session_id}/book", response_model=BookingSessionPublic)
async def book(
    session_id: int,
    body: BookSlotRequest,
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
) -> BookingSessionPublic:
    """Reserve a slot. A 409 SLOT_UNAVAILABLE means another student won it."""
    bs = await book_slot(session, identity, session_id, body.slot_id)
    return to_public(bs)


@router.get("/{session_id}/countdown", response_model=SessionCountdown)
async def countdown(
    session_id: int,
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
) -> SessionCountdown:
    return await get_countdown(session, identity, session_id)


@router.post("/{session_id}/join", response_model=JoinResponse)
async def join(
    session_id: int,
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
) -> JoinResponse:
    bs = await join_session(session, identity, session_id)
    return JoinResponse(meeting_link=bs.meeting_link, session=to_public(bs))


@router.post("/{session_id}/complete", response_model=BookingSessionPublic)
async def complete(
    session_id: int,
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
) -> BookingSessionPublic:
    bs = await complete_session(session, identity, session_id)
    return to_public(bs)
