import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import InvalidProfile, ProfileNotFound, RoleRequired
from app.models.counselor import (
    CounselorDirectoryEntry,
    CounselorProfile,
    CounselorProfilePublic,
)
from app.models.user import Identity, User, UserRole
from app.services.availability_service import get_declared_availability
from app.services.session_rules import resolve_timezone, utc_naive_now

logger = logging.getLogger(__name__)


def require_counselor(identity: Identity) -> None:
    if identity.role != UserRole.COUNSELOR:
        raise RoleRequired("Only counselors can do this")


async def get_profile(session: AsyncSession, counselor_id: int) -> CounselorProfile | None:
    result = await session.execute(
        select(CounselorProfile).where(CounselorProfile.user_id == counselor_id)
    )
    return result.scalar_one_or_none()


async def ensure_profile(session: AsyncSession, counselor_id: int) -> CounselorProfile:
    """Create the empty profile row for a new counselor account."""
    profile = await get_profile(session, counselor_id)
    if profile is None:
        profile = CounselorProfile(user_id=counselor_id)
        session.add(profile)
        await session.flush()
    return profile


def is_profile_complete(profile: CounselorProfile | None) -> bool:
    if profile is None:
        return False
    return bool((profile.initials or "").strip() and (profile.meeting_link or "").strip())


def to_public(user: User, profile: CounselorProfile) -> CounselorProfilePublic:
    return CounselorProfilePublic(
        user_id=user.id,
        username=user.username,
        email=user.email,
        initials=profile.initials,
        meeting_link=profile.meeting_link,
        timezone=profile.timezone or settings.default_timezone,
        is_complete=is_profile_complete(profile),
    )


async def update_profile(
    session: AsyncSession,
    identity: Identity,
    initials: str,
    meeting_link: str,
    timezone: str | None = None,
) -> CounselorProfile:
    require_counselor(identity)
    initials = (initials or "").strip()
    meeting_link = (meeting_link or "").strip()
    if not initials:
        raise InvalidProfile("Initials cannot be empty.")
    if not meeting_link.startswith("http"):
        raise InvalidProfile("Please enter a valid meeting link.")
    if timezone:
        resolve_timezone(timezone)

    profile = await get_profile(session, identity.user_id)
    if profile is None:
        raise ProfileNotFound()
    profile.initials = initials
    profile.meeting_link = meeting_link
    if timezone:
        profile.timezone = timezone
    profile.updated_at = utc_naive_now()
    session.add(profile)
    await session.flush()
    logger.info("Counselor %s updated profile", identity.user_id)
    return profile


async def list_counselors(
    session: AsyncSession, from_date: date | None = None
) -> list[CounselorDirectoryEntry]:
    result = await session.execute(
        select(CounselorProfile)
        .join(User, User.id == CounselorProfile.user_id)
        .where(User.role == UserRole.COUNSELOR)
        .order_by(CounselorProfile.user_id)
    )
    entries: list[CounselorDirectoryEntry] = []
    for profile in result.scalars().all():
        entries.append(
            CounselorDirectoryEntry(
                counselor_id=profile.user_id,
                initials=profile.initials or "",
                availability=await get_declared_availability(session, profile.user_id, from_date=from_date),
            )
        )
    return entries
