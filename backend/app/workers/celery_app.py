from celery import Celery

from app.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "user_management",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["app.workers.tasks"],
)
celery_app.conf.beat_schedule = {
    "purge-reset-tokens": {
        "task": "app.workers.tasks.purge_expired_reset_tokens",
        "schedule": 15 * 60,
    },
    "purge-password-history": {
        "task": "app.workers.tasks.purge_stale_password_history",
        "schedule": 24 * 60 * 60,
    },
}
celery_app.conf.timezone = "UTC"
