from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_identity, get_session
from app.models.booking_session import AbandonedSession
from app.models.user import Identity
from app.services.booking_service import list_abandoned_sessions

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/sessions/abandoned", response_model=list[AbandonedSession])
async def abandoned_sessions(
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
) -> list[AbandonedSession]:
    return await list_abandoned_sessions(session, identity)
