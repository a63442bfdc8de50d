"""Single-use, time-boxed password reset tokens.

A token is live while ``used`` is false and ``expires_at`` is in the future.
Expiry is checked on every read, so the periodic sweep may lag without
letting an expired token through.
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.security import generate_reset_token
from app.models.password_reset import PasswordResetToken
from app.models.user import User

logger = logging.getLogger(__name__)

REQUEST_WINDOW = timedelta(hours=1)


def _live(token: str, now: datetime):
    return and_(
        PasswordResetToken.token == token,
        PasswordResetToken.used.is_(False),
        PasswordResetToken.expires_at > now,
    )


def discard_unused_tokens(db: Session, user_id: int) -> int:
    result = db.execute(
        delete(PasswordResetToken).where(
            PasswordResetToken.user_id == user_id,
            PasswordResetToken.used.is_(False),
        )
    )
    return result.rowcount


def issue_reset_token(
    db: Session,
    user: User,
    ip_address: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> PasswordResetToken:
    settings = get_settings()
    now = now or datetime.utcnow()
    user_id = user.id

    # Supersede before inserting so a user never holds two live tokens.
    superseded = discard_unused_tokens(db, user_id)
    _record_reset_request(user, now)
    row = PasswordResetToken(
        user_id=user_id,
        token=generate_reset_token(),
        expires_at=now + timedelta(minutes=settings.PASSWORD_RESET_TOKEN_TTL_MINUTES),
        used=False,
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Issued reset token for user_id=%s (superseded=%s)", user_id, superseded)
    return row


def validate_reset_token(db: Session, token: str, now: datetime | None = None) -> PasswordResetToken | None:
    """Return the token row if it is live.

    Unknown, expired and used tokens all yield None so callers cannot tell
    them apart.
    """
    now = now or datetime.utcnow()
    return db.scalars(select(PasswordResetToken).where(_live(token, now))).first()


def consume_reset_token(db: Session, token: str, now: datetime | None = None) -> PasswordResetToken | None:
    """Flip a live token to used with one conditional UPDATE.

    Only one of several concurrent callers sees a matched row; the others get
    None. The caller owns the transaction and commits it.
    """
    now = now or datetime.utcnow()
    result = db.execute(
        update(PasswordResetToken)
        .where(_live(token, now))
        .values(used=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None
    row = db.scalars(select(PasswordResetToken).where(PasswordResetToken.token == token)).one()
    db.refresh(row)
    return row


def _in_request_window(user: User, now: datetime) -> bool:
    start = user.password_reset_window_start
    return start is not None and start > now - REQUEST_WINDOW


def _record_reset_request(user: User, now: datetime) -> None:
    if _in_request_window(user, now):
        user.password_reset_attempts += 1
    else:
        user.password_reset_attempts = 1
        user.password_reset_window_start = now


def can_request_reset(db: Session, user: User, now: datetime | None = None) -> bool:
    """True while the user has issued fewer than the hourly maximum of tokens."""
    settings = get_settings()
    now = now or datetime.utcnow()
    attempts = user.password_reset_attempts if _in_request_window(user, now) else 0
    # Tokens that survived supersession (used ones) still count.
    live_count = db.scalar(
        select(func.count(PasswordResetToken.id)).where(
            PasswordResetToken.user_id == user.id,
            PasswordResetToken.created_at > now - REQUEST_WINDOW,
        )
    )
    return max(attempts, live_count or 0) < settings.PASSWORD_RESET_MAX_PER_HOUR


def purge_reset_tokens(db: Session, now: datetime | None = None) -> int:
    settings = get_settings()
    now = now or datetime.utcnow()
    used_horizon = now - timedelta(hours=settings.PASSWORD_RESET_USED_RETENTION_HOURS)
    result = db.execute(
        delete(PasswordResetToken).where(
            or_(
                PasswordResetToken.expires_at < now,
                and_(PasswordResetToken.used.is_(True), PasswordResetToken.created_at < used_horizon),
            )
        )
    )
    db.commit()
    logger.info("Purged %s expired or used reset tokens", result.rowcount)
    return result.rowcount
