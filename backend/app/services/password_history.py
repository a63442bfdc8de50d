import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.security import verify_password
from app.models.password_history import PasswordHistory

logger = logging.getLogger(__name__)


def _recent_entries(db: Session, user_id: int, limit: int, now: datetime) -> list[PasswordHistory]:
    settings = get_settings()
    horizon = now - timedelta(days=settings.PASSWORD_HISTORY_RETENTION_DAYS)
    stmt = (
        select(PasswordHistory)
        .where(PasswordHistory.user_id == user_id, PasswordHistory.created_at > horizon)
        .order_by(PasswordHistory.created_at.desc(), PasswordHistory.id.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt))


def record_password_history(db: Session, user_id: int, password_hash: str, now: datetime | None = None) -> PasswordHistory:
    """Archive a password hash and keep only the most recent entries for the user."""
    settings = get_settings()
    now = now or datetime.utcnow()
    entry = PasswordHistory(user_id=user_id, password_hash=password_hash, created_at=now)
    db.add(entry)
    db.flush()

    stale_ids = db.scalars(
        select(PasswordHistory.id)
        .where(PasswordHistory.user_id == user_id)
        .order_by(PasswordHistory.created_at.desc(), PasswordHistory.id.desc())
        .offset(settings.PASSWORD_HISTORY_DEPTH)
    ).all()
    if stale_ids:
        db.execute(delete(PasswordHistory).where(PasswordHistory.id.in_(stale_ids)))
        db.flush()
    return entry


def is_password_in_history(db: Session, user_id: int, candidate: str, now: datetime | None = None) -> bool:
    settings = get_settings()
    now = now or datetime.utcnow()
    # Bounded by the history depth; each check is a full hash verification.
    for entry in _recent_entries(db, user_id, settings.PASSWORD_HISTORY_DEPTH, now):
        if verify_password(candidate, entry.password_hash):
            return True
    return False


def list_password_history(db: Session, user_id: int, now: datetime | None = None) -> list[PasswordHistory]:
    settings = get_settings()
    return _recent_entries(db, user_id, settings.PASSWORD_HISTORY_DEPTH, now or datetime.utcnow())


def purge_password_history(db: Session, older_than_days: int | None = None, now: datetime | None = None) -> int:
    settings = get_settings()
    now = now or datetime.utcnow()
    days = older_than_days if older_than_days is not None else settings.PASSWORD_HISTORY_RETENTION_DAYS
    result = db.execute(delete(PasswordHistory).where(PasswordHistory.created_at < now - timedelta(days=days)))
    db.commit()
    logger.info("Purged %s password history entries older than %s days", result.rowcount, days)
    return result.rowcount
