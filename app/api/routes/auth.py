import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, refresh_header
from app.api.schemas.auth import (
    LoginRequest,
    RefreshRequest,
    SignupRequest,
    TokenPair,
    UpdateMeRequest,
    VerifyEmailRequest,
)
from app.core.db import get_session
from app.core.security import create_email_verification_token, decode_refresh_token
from app.models.user import User, UserCreate, UserPublic
from app.services.auth_service import (
    login_user,
    refresh_tokens,
    revoke_refresh_token,
    signup_user,
    update_username,
    user_to_public,
    verify_email,
)
from app.services.email_service import send_verification_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_pair(pair: tuple[User, str, str, int]) -> TokenPair:
    _, access, refresh, expires_in = pair
    return TokenPair(
        access_token=access,
        refresh_token=refresh,
        expires_in=expires_in,
    )


@router.post("/login", response_model=TokenPair)
async def login(
    body: LoginRequest,
    session: AsyncSession = Depends(get_session),
) -> TokenPair:
    pair = await login_user(session, body.email, body.password)
    if not pair:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return _token_pair(pair)


@router.post("/signup", response_model=TokenPair)
async def signup(
    body: SignupRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
) -> TokenPair:
    pair = await signup_user(
        session,
        UserCreate(
            email=body.email,
            password=body.password,
            full_name=body.full_name,
            username=body.username,
            role=body.role,
        ),
    )
    if not pair:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )
    user = pair[0]
    token = create_email_verification_token(user.id, user.email)
    background_tasks.add_task(send_verification_email, user.email, user.full_name or user.username, token)
    logger.info("New %s account %s", user.role, user.id)
    return _token_pair(pair)


@router.post("/verify-email", response_model=UserPublic)
async def verify_email_route(
    body: VerifyEmailRequest,
    session: AsyncSession = Depends(get_session),
) -> UserPublic:
    user = await verify_email(session, body.token)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired verification link",
        )
    return user_to_public(user)


@router.post("/refresh", response_model=TokenPair)
async def refresh(
    session: AsyncSession = Depends(get_session),
    x_refresh_token: str | None = Depends(refresh_header),
    body: RefreshRequest | None = None,
) -> TokenPair:
    token = x_refresh_token or (body.refresh_token if body else None)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token required (header X-Refresh-Token or body refresh_token)",
        )
    pair = await refresh_tokens(session, token)
    if not pair:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )
    return _token_pair(pair)


@router.post("/logout")
async def logout(
    session: AsyncSession = Depends(get_session),
    x_refresh_token: str | None = Depends(refresh_header),
    body: RefreshRequest | None = None,
) -> dict:
    token = x_refresh_token or (body.refresh_token if body else None)
    if token:
        _, jti = decode_refresh_token(token)
        if jti:
            await revoke_refresh_token(session, jti)
    return {"message": "Logged out"}


@router.get("/me", response_model=UserPublic)
async def me(current_user: User = Depends(get_current_user)) -> UserPublic:
    return user_to_public(current_user)


@router.patch("/me", response_model=UserPublic)
async def update_me(
    body: UpdateMeRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> UserPublic:
    user = await update_username(session, current_user, body.username)
    return user_to_public(user)
