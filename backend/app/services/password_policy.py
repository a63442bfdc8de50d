"""Password change and reset flows.

Every policy gate raises PasswordPolicyError; the request handlers let it
propagate to the application's error handler. Nothing is written until all
gates have passed, and each flow commits in a single transaction.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import ErrorCode, PasswordPolicyError
from app.core.security import get_password_hash, verify_password
from app.models.password_reset import PasswordResetToken
from app.models.user import User
from app.services.change_frequency import check_change_allowed, record_password_change
from app.services.email import NotificationDispatcher
from app.services.password_history import is_password_in_history, record_password_history
from app.services.password_strength import StrengthReport, score_password
from app.services.reset_tokens import (
    can_request_reset,
    consume_reset_token,
    discard_unused_tokens,
    issue_reset_token,
    validate_reset_token,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PasswordChangeResult:
    changed_at: datetime
    strength_score: int


@dataclass(frozen=True)
class ResetRequestResult:
    requested_at: datetime
    expires_in: int
    # None when no account matched; callers must not reveal the difference.
    token: PasswordResetToken | None = None


@dataclass(frozen=True)
class ResetConfirmResult:
    user: User
    reset_at: datetime
    strength_score: int


def _require_confirmation(new_password: str, confirm_password: str) -> None:
    if new_password != confirm_password:
        raise PasswordPolicyError(
            ErrorCode.password_mismatch,
            "New password and confirmation do not match",
            status_code=400,
        )


def require_strong_password(password: str, username: str | None, email: str | None) -> StrengthReport:
    report = score_password(password, username, email)
    if not report.is_valid:
        raise PasswordPolicyError(
            ErrorCode.weak_password,
            "Password does not meet the strength requirements",
            status_code=422,
            data=report.to_dict(),
        )
    return report


def change_password(
    db: Session,
    user: User,
    old_password: str,
    new_password: str,
    confirm_password: str,
    *,
    notifications: NotificationDispatcher | None = None,
    ip_address: str | None = None,
    now: datetime | None = None,
) -> PasswordChangeResult:
    now = now or datetime.utcnow()
    _require_confirmation(new_password, confirm_password)

    if not verify_password(old_password, user.hashed_password):
        logger.warning("Password change rejected for user_id=%s: wrong current password", user.id)
        raise PasswordPolicyError(ErrorCode.invalid_credentials, "Current password is incorrect", status_code=401)

    allowance = check_change_allowed(user, now)
    if not allowance.allowed:
        logger.warning("Password change rate-limited for user_id=%s", user.id)
        raise PasswordPolicyError(
            ErrorCode.rate_limited,
            allowance.reason or "Too many password changes",
            status_code=403,
            data={"next_allowed_time": allowance.next_allowed_time},
        )

    report = require_strong_password(new_password, user.username, user.email)

    settings = get_settings()
    if verify_password(new_password, user.hashed_password):
        raise PasswordPolicyError(
            ErrorCode.password_reused,
            "New password must differ from the current password",
            status_code=422,
            data=report.to_dict(),
        )
    if is_password_in_history(db, user.id, new_password, now):
        raise PasswordPolicyError(
            ErrorCode.password_reused,
            f"New password must differ from the last {settings.PASSWORD_HISTORY_DEPTH} passwords",
            status_code=422,
            data=report.to_dict(),
        )

    record_password_history(db, user.id, user.hashed_password, now)
    user.hashed_password = get_password_hash(new_password)
    user.clear_session_credentials()
    record_password_change(user, now)
    db.commit()
    logger.info("Password changed for user_id=%s", user.id)

    if notifications is not None:
        notifications.change_notice(user.email, user.username, ip_address)
    return PasswordChangeResult(changed_at=now, strength_score=report.score)


def request_password_reset(
    db: Session,
    email: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
    notifications: NotificationDispatcher | None = None,
    now: datetime | None = None,
) -> ResetRequestResult:
    settings = get_settings()
    now = now or datetime.utcnow()
    expires_in = settings.PASSWORD_RESET_TOKEN_TTL_MINUTES * 60

    user = db.scalars(select(User).where(func.lower(User.email) == email.strip().lower())).first()
    if user is None or not user.is_active:
        logger.info("Password reset requested for an unknown or inactive account")
        return ResetRequestResult(requested_at=now, expires_in=expires_in)

    if not can_request_reset(db, user, now):
        logger.warning("Password reset rate-limited for user_id=%s", user.id)
        raise PasswordPolicyError(
            ErrorCode.rate_limited,
            "Too many reset requests, please try again in an hour",
            status_code=429,
        )

    row = issue_reset_token(db, user, ip_address=ip_address, user_agent=user_agent, now=now)
    if notifications is not None:
        notifications.reset_link(user.email, row.token, user.username)
    return ResetRequestResult(requested_at=now, expires_in=expires_in, token=row)


def _invalid_token() -> PasswordPolicyError:
    return PasswordPolicyError(
        ErrorCode.invalid_or_expired_token,
        "Reset token is invalid or has expired",
        status_code=400,
    )


def confirm_password_reset(
    db: Session,
    token: str,
    new_password: str,
    confirm_password: str,
    *,
    notifications: NotificationDispatcher | None = None,
    ip_address: str | None = None,
    now: datetime | None = None,
) -> ResetConfirmResult:
    now = now or datetime.utcnow()
    _require_confirmation(new_password, confirm_password)

    row = validate_reset_token(db, token, now)
    if row is None:
        raise _invalid_token()
    user = db.get(User, row.user_id)
    if user is None:
        raise _invalid_token()

    # No history check on reset: the user may not remember earlier passwords.
    report = require_strong_password(new_password, user.username, user.email)

    if consume_reset_token(db, token, now) is None:
        db.rollback()
        logger.warning("Reset token for user_id=%s was consumed concurrently", user.id)
        raise _invalid_token()

    # The outgoing hash is not archived on the reset path.
    user.hashed_password = get_password_hash(new_password)
    user.password_changed_at = now
    user.clear_session_credentials()
    discard_unused_tokens(db, user.id)
    db.commit()
    logger.info("Password reset completed for user_id=%s", user.id)

    if notifications is not None:
        notifications.change_notice(user.email, user.username, ip_address)
    return ResetConfirmResult(user=user, reset_at=now, strength_score=report.score)
