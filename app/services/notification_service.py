import logging
from typing import Protocol

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.user import User
from app.services.email_service import send_notification_email

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(self, user_id: int, title: str, body: str) -> None: ...


class EmailNotifier:
    """Delivers notifications to the user's e-mail address over SMTP."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def notify(self, user_id: int, title: str, body: str) -> None:
        async with self._session_maker() as session:
            user = await session.get(User, user_id)
        if user is None:
            logger.info("No user %s to notify", user_id)
            return
        await run_in_threadpool(send_notification_email, user.email, title, body)


async def dispatch_notifications(notifier: Notifier, messages: list[tuple[int, str, str]]) -> None:
    """Send each (user_id, title, body); failures are logged and never raised."""
    for user_id, title, body in messages:
        try:
            await notifier.notify(user_id, title, body)
        except Exception as e:
            logger.exception("Notification to user %s failed: %s", user_id, e)
