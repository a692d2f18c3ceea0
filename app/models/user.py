from datetime import UTC, datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class UserRole(StrEnum):
    STUDENT = "student"
    COUNSELOR = "counselor"
    ADMIN = "admin"


class UserBase(SQLModel):
    email: str = Field(unique=True, index=True)
    username: str | None = Field(default=None, unique=True, index=True)
    full_name: str | None = None
    role: str = Field(default=UserRole.STUDENT, index=True)
    is_email_verified: bool = False


class User(UserBase, table=True):
    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)
    hashed_password: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now)


class UserCreate(SQLModel):
    email: str
    password: str
    full_name: str | None = None
    username: str | None = None
    role: UserRole = UserRole.STUDENT


class UserPublic(SQLModel):
    id: int
    email: str
    username: str | None = None
    full_name: str | None = None
    role: str
    is_email_verified: bool


class Identity(SQLModel):
    """Request-scoped caller identity handed to every core operation."""

    user_id: int
    email: str
    role: str
    email_verified: bool = False
    username: str | None = None

    @property
    def display_name(self) -> str:
        return self.username or self.email.split("@")[0] or "Student"
