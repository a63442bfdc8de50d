from app.core.database import SessionLocal
from app.services.password_history import purge_password_history
from app.services.reset_tokens import purge_reset_tokens
from app.workers.celery_app import celery_app


@celery_app.task
def purge_expired_reset_tokens() -> dict:
    db = SessionLocal()
    try:
        return {"deleted": purge_reset_tokens(db)}
    finally:
        db.close()


@celery_app.task
def purge_stale_password_history(older_than_days: int | None = None) -> dict:
    db = SessionLocal()
    try:
        return {"deleted": purge_password_history(db, older_than_days)}
    finally:
        db.close()
