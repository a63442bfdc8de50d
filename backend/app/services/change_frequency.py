from dataclasses import dataclass
from datetime import datetime, timedelta

from app.core.config import get_settings
from app.models.user import User


@dataclass(frozen=True)
class ChangeAllowance:
    allowed: bool
    reason: str | None = None
    next_allowed_time: datetime | None = None


def _window() -> timedelta:
    return timedelta(hours=get_settings().PASSWORD_CHANGE_WINDOW_HOURS)


def _within_window(user: User, now: datetime) -> bool:
    last = user.last_password_change_date
    return last is not None and last > now - _window()


def check_change_allowed(user: User, now: datetime | None = None) -> ChangeAllowance:
    """Read-only check; the counters are only touched by record_password_change."""
    settings = get_settings()
    now = now or datetime.utcnow()
    if _within_window(user, now) and user.password_change_count >= settings.PASSWORD_MAX_DAILY_CHANGES:
        return ChangeAllowance(
            allowed=False,
            reason=(
                f"Password can be changed at most {settings.PASSWORD_MAX_DAILY_CHANGES} times "
                f"in {settings.PASSWORD_CHANGE_WINDOW_HOURS} hours"
            ),
            next_allowed_time=user.last_password_change_date + _window(),
        )
    return ChangeAllowance(allowed=True)


def record_password_change(user: User, now: datetime | None = None) -> None:
    now = now or datetime.utcnow()
    if _within_window(user, now):
        user.password_change_count += 1
    else:
        user.password_change_count = 1
    user.last_password_change_date = now
    user.password_changed_at = now
