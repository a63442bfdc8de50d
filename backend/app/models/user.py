from datetime import datetime
import enum

from sqlalchemy import DateTime, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class UserRole(str, enum.Enum):
    admin = "admin"
    user = "user"
    guest = "guest"


class UserStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"
    pending = "pending"
    banned = "banned"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(100))
    phone: Mapped[str | None] = mapped_column(String(32))
    department: Mapped[str | None] = mapped_column(String(100))
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), default=UserRole.user, nullable=False)
    status: Mapped[UserStatus] = mapped_column(Enum(UserStatus), default=UserStatus.active, nullable=False, index=True)

    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    password_changed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    # Change-frequency window counters.
    password_change_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_password_change_date: Mapped[datetime | None] = mapped_column(DateTime)
    # Reset-request window counters. Superseded tokens are deleted, so the
    # request rate cannot be derived from the token table alone.
    password_reset_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    password_reset_window_start: Mapped[datetime | None] = mapped_column(DateTime)

    # Standing session credential: digest of the current refresh token.
    refresh_token_digest: Mapped[str | None] = mapped_column(String(128))
    session_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.active

    def clear_session_credentials(self) -> None:
        """Drop the refresh credential and invalidate outstanding access tokens."""
        self.refresh_token_digest = None
        self.session_version += 1
