from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.replace(tzinfo=None)


class RefreshToken(SQLModel, table=True):
    """One issued refresh token; rotated on every refresh, revoked on logout."""

    __tablename__ = "refresh_tokens"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    jti: str = Field(unique=True, index=True)
    issued_at: datetime = Field(default_factory=lambda: _naive_utc(datetime.now(UTC)))
    expires_at: datetime = Field(index=True)
    revoked_at: datetime | None = None

    def model_post_init(self, __context: object) -> None:
        if self.expires_at is not None:
            self.expires_at = _naive_utc(self.expires_at)

    def is_active(self, now: datetime) -> bool:
        return self.revoked_at is None and self.expires_at > now
