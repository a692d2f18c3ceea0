from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import UsernameTaken
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_email_verification_token,
    decode_refresh_token,
    hash_password,
    verify_password,
)
from app.models.refresh_token import RefreshToken
from app.models.user import Identity, User, UserCreate, UserPublic, UserRole
from app.services.counselor_service import ensure_profile


def _utc_naive() -> datetime:
    """Naive UTC datetime for DB columns that are TIMESTAMP WITHOUT TIME ZONE."""
    return datetime.now(UTC).replace(tzinfo=None)


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_user_by_username(session: AsyncSession, username: str) -> User | None:
    result = await session.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def create_user(session: AsyncSession, data: UserCreate) -> User:
    username = (data.username or "").strip() or None
    if username and await get_user_by_username(session, username):
        raise UsernameTaken()
    user = User(
        email=data.email.lower(),
        username=username,
        full_name=data.full_name,
        role=data.role,
        hashed_password=hash_password(data.password),
    )
    session.add(user)
    await session.flush()
    await session.refresh(user)
    if user.role == UserRole.COUNSELOR:
        await ensure_profile(session, user.id)
    return user


def user_to_public(user: User) -> UserPublic:
    return UserPublic(
        id=user.id,
        email=user.email,
        username=user.username,
        full_name=user.full_name,
        role=user.role,
        is_email_verified=user.is_email_verified,
    )


def user_to_identity(user: User) -> Identity:
    return Identity(
        user_id=user.id,
        email=user.email,
        role=user.role,
        email_verified=user.is_email_verified,
        username=user.username,
    )


def make_token_pair(user_id: int) -> tuple[str, str, int]:
    access = create_access_token(user_id)
    refresh = create_refresh_token(user_id)
    expires_in = settings.access_token_expire_minutes * 60
    return access, refresh, expires_in


async def store_refresh_token(
    session: AsyncSession, user_id: int, refresh_token: str
) -> None:
    user_id_str, jti = decode_refresh_token(refresh_token)
    if not user_id_str or not jti:
        return
    expires_at = _utc_naive() + timedelta(days=settings.refresh_token_expire_days)
    session.add(RefreshToken(user_id=user_id, jti=jti, expires_at=expires_at))
    await session.flush()


async def _issue_tokens(session: AsyncSession, user: User) -> tuple[User, str, str, int]:
    access, refresh, expires_in = make_token_pair(user.id)
    await store_refresh_token(session, user_id=user.id, refresh_token=refresh)
    return user, access, refresh, expires_in


async def login_user(
    session: AsyncSession, email: str, password: str
) -> tuple[User, str, str, int] | None:
    user = await get_user_by_email(session, email)
    if not user or not user.hashed_password:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return await _issue_tokens(session, user)


async def signup_user(
    session: AsyncSession, data: UserCreate
) -> tuple[User, str, str, int] | None:
    if await get_user_by_email(session, data.email):
        return None
    user = await create_user(session, data)
    return await _issue_tokens(session, user)


async def revoke_refresh_token(session: AsyncSession, jti: str) -> None:
    result = await session.execute(select(RefreshToken).where(RefreshToken.jti == jti))
    row = result.scalar_one_or_none()
    if row and row.revoked_at is None:
        row.revoked_at = _utc_naive()
        session.add(row)


async def refresh_tokens(
    session: AsyncSession, refresh_token: str
) -> tuple[User, str, str, int] | None:
    user_id_str, jti = decode_refresh_token(refresh_token)
    if not user_id_str or not jti:
        return None
    result = await session.execute(select(RefreshToken).where(RefreshToken.jti == jti))
    token_row = result.scalar_one_or_none()
    if not token_row or not token_row.is_active(_utc_naive()):
        return None
    user = await session.get(User, int(user_id_str))
    if not user:
        return None
    token_row.revoked_at = _utc_naive()
    session.add(token_row)
    return await _issue_tokens(session, user)


async def verify_email(session: AsyncSession, token: str) -> User | None:
    user_id_str, email = decode_email_verification_token(token)
    if not user_id_str or not email:
        return None
    user = await session.get(User, int(user_id_str))
    if not user or user.email != email:
        return None
    if not user.is_email_verified:
        user.is_email_verified = True
        session.add(user)
        await session.flush()
    return user


async def update_username(session: AsyncSession, user: User, username: str) -> User:
    username = username.strip()
    existing = await get_user_by_username(session, username)
    if existing and existing.id != user.id:
        raise UsernameTaken()
    user.username = username
    session.add(user)
    await session.flush()
    return user
