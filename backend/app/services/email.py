import logging
import smtplib
from datetime import datetime
from email.message import EmailMessage

from fastapi import BackgroundTasks

from app.core.config import Settings

logger = logging.getLogger(__name__)


class Mailer:
    """SMTP transport. Built once at startup and shared through app.state."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def configured(self) -> bool:
        return bool(self.settings.SMTP_HOST)

    def reset_url(self, token: str) -> str:
        return f"{self.settings.FRONTEND_URL.rstrip('/')}/reset-password?token={token}"

    def send_email(self, to_email: str, subject: str, body: str) -> None:
        settings = self.settings
        if not self.configured:
            raise RuntimeError("SMTP is not configured")

        msg = EmailMessage()
        msg["From"] = settings.SMTP_FROM_EMAIL
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)

        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SECONDS) as server:
            if settings.SMTP_USE_TLS:
                server.starttls()
            if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.send_message(msg)

    def send_reset_link(self, email: str, token: str, username: str) -> None:
        minutes = self.settings.PASSWORD_RESET_TOKEN_TTL_MINUTES
        body = (
            f"Hello {username},\n\n"
            "We received a request to reset the password for your account.\n\n"
            f"Reset link (valid for {minutes} minutes, single use):\n{self.reset_url(token)}\n\n"
            "If you did not request this, you can ignore this email; your password stays unchanged."
        )
        self.send_email(email, f"{self.settings.PROJECT_NAME} - password reset request", body)

    def send_change_notice(self, email: str, username: str, ip_address: str | None) -> None:
        body = (
            f"Hello {username},\n\n"
            f"The password of your account was changed at {datetime.utcnow():%Y-%m-%d %H:%M:%S} UTC"
            f" from IP address {ip_address or 'unknown'}.\n\n"
            "All sessions were signed out. If this was not you, reset your password immediately "
            "and contact an administrator."
        )
        self.send_email(email, f"{self.settings.PROJECT_NAME} - your password was changed", body)


def _deliver(action: str, send, *args) -> None:
    try:
        send(*args)
    except Exception:
        # Delivery is best-effort; the password transaction is already committed.
        logger.exception("Failed to send %s email", action)
    else:
        logger.info("Sent %s email", action)


class NotificationDispatcher:
    """Queues notification e-mails to run after the response is sent."""

    def __init__(self, mailer: Mailer, background_tasks: BackgroundTasks):
        self.mailer = mailer
        self.background_tasks = background_tasks

    def reset_link(self, email: str, token: str, username: str) -> None:
        self.background_tasks.add_task(_deliver, "password reset", self.mailer.send_reset_link, email, token, username)

    def change_notice(self, email: str, username: str, ip_address: str | None) -> None:
        self.background_tasks.add_task(
            _deliver, "password change notice", self.mailer.send_change_notice, email, username, ip_address
        )
