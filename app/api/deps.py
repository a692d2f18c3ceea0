from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.db import get_session, get_session_maker
from app.core.security import decode_access_token
from app.models.user import Identity, User
from app.services.auth_service import user_to_identity
from app.services.notification_service import EmailNotifier, Notifier
from app.services.payment_gateway import PaymentGateway, RazorpayGateway
from app.services.reminder_service import TaskScheduler

security = HTTPBearer(auto_error=False)


def refresh_header(x_refresh_token: str | None = Header(default=None, alias="X-Refresh-Token")) -> str | None:
    """Extract X-Refresh-Token header for logout/refresh endpoints."""
    return x_refresh_token


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Missing or invalid authorization header")
    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        raise _unauthorized("Invalid or expired token")
    try:
        uid = int(user_id)
    except ValueError:
        raise _unauthorized("Invalid token")
    user = await session.get(User, uid)
    if not user:
        raise _unauthorized("User not found")
    return user


async def get_identity(user: User = Depends(get_current_user)) -> Identity:
    return user_to_identity(user)


def get_payment_gateway() -> PaymentGateway:
    return RazorpayGateway()


def get_notifier(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> Notifier:
    return EmailNotifier(session_maker)


def get_task_scheduler() -> TaskScheduler:
    from app.worker import CeleryTaskScheduler

    return CeleryTaskScheduler()
