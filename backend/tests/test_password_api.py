import logging
from datetime import datetime, timedelta

from sqlalchemy import func, select

from app.core.config import get_settings
from app.core.deps import get_mailer
from app.core.security import verify_password
from app.main import app
from app.models.password_reset import PasswordResetToken

from conftest import DEFAULT_PASSWORD, RecordingMailer

NEW_PASSWORD = "New#2024ab"


def _change(client, headers, old=DEFAULT_PASSWORD, new=NEW_PASSWORD, confirm=None):
    return client.put(
        "/api/v1/password/change",
        json={"old_password": old, "new_password": new, "confirm_password": confirm or new},
        headers=headers,
    )


def test_change_password_signs_out_everywhere(client, db, make_user, auth_headers, mailer):
    user = make_user()
    user.refresh_token_digest = "digest"
    db.commit()
    headers = auth_headers(user)

    resp = _change(client, headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["force_logout"] is True
    assert body["strength_score"] == 80
    db.refresh(user)
    assert user.refresh_token_digest is None
    assert verify_password(NEW_PASSWORD, user.hashed_password)
    # The token used for the change carries the old session version.
    assert client.get("/api/v1/auth/me", headers=headers).status_code == 401
    assert len(mailer.outbox) == 1
    assert "was changed" in mailer.outbox[0]["subject"]


def test_change_password_requires_authentication(client):
    resp = _change(client, {})
    assert resp.status_code == 401
    assert resp.json()["code"] == "UNAUTHORIZED"


def test_change_password_error_envelopes(client, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)

    mismatch = _change(client, headers, confirm="Other#2024ab")
    assert mismatch.status_code == 400
    assert mismatch.json()["code"] == "PASSWORD_MISMATCH"

    wrong = _change(client, headers, old="Wrong1234")
    assert wrong.status_code == 401
    assert wrong.json()["code"] == "INVALID_CREDENTIALS"

    weak = _change(client, headers, new="password")
    assert weak.status_code == 422
    assert weak.json()["code"] == "WEAK_PASSWORD"
    assert weak.json()["data"]["is_valid"] is False
    assert weak.json()["data"]["suggestions"]

    reused = _change(client, headers, new=DEFAULT_PASSWORD)
    assert reused.status_code == 422
    assert reused.json()["code"] == "PASSWORD_REUSED"


def test_change_password_rate_limited(client, db, make_user, auth_headers):
    user = make_user()
    last_change = datetime.utcnow() - timedelta(hours=1)
    user.password_change_count = 3
    user.last_password_change_date = last_change
    db.commit()

    resp = _change(client, auth_headers(user))

    assert resp.status_code == 403
    body = resp.json()
    assert body["code"] == "RATE_LIMITED"
    assert datetime.fromisoformat(body["data"]["next_allowed_time"]) == last_change + timedelta(hours=24)


def test_malformed_body_is_a_validation_error(client, make_user, auth_headers):
    user = make_user()
    resp = client.put(
        "/api/v1/password/change", json={"old_password": DEFAULT_PASSWORD}, headers=auth_headers(user)
    )

    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert {e["field"] for e in body["data"]["errors"]} == {"new_password", "confirm_password"}


def test_reset_request_for_unknown_email(client, db, mailer):
    resp = client.post("/api/v1/password/reset", json={"email": "ghost@example.com"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["expires_in"] == 1800
    assert body["debug_reset_url"] is None
    assert db.scalar(select(func.count(PasswordResetToken.id))) == 0
    assert mailer.outbox == []


def test_reset_request_response_does_not_reveal_registration(client, make_user):
    make_user()
    known = client.post("/api/v1/password/reset", json={"email": "alice@example.com"}).json()
    unknown = client.post("/api/v1/password/reset", json={"email": "ghost@example.com"}).json()

    assert known["message"] == unknown["message"]
    assert known["status"] == unknown["status"]
    assert known["expires_in"] == unknown["expires_in"]


def test_full_reset_flow(client, db, make_user, mailer):
    user = make_user()

    resp = client.post(
        "/api/v1/password/reset", json={"email": "alice@example.com"}, headers={"user-agent": "pytest-agent"}
    )
    assert resp.status_code == 200
    row = db.scalars(select(PasswordResetToken).where(PasswordResetToken.user_id == user.id)).one()
    assert row.user_agent == "pytest-agent"
    assert resp.json()["debug_reset_url"] == f"http://frontend.test/reset-password?token={row.token}"
    assert len(mailer.outbox) == 1
    assert row.token in mailer.outbox[0]["body"]
    assert "30 minutes" in mailer.outbox[0]["body"]

    confirm = client.post(
        "/api/v1/password/reset/confirm",
        json={"token": row.token, "new_password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD},
    )
    assert confirm.status_code == 200
    assert confirm.json()["force_logout"] is True

    login = client.post("/api/v1/auth/login", json={"username": "alice", "password": NEW_PASSWORD})
    assert login.status_code == 200

    replay = client.post(
        "/api/v1/password/reset/confirm",
        json={"token": row.token, "new_password": "Another#2024", "confirm_password": "Another#2024"},
    )
    assert replay.status_code == 400
    assert replay.json()["code"] == "INVALID_OR_EXPIRED_TOKEN"


def test_reset_confirm_with_expired_token(client, db, make_user):
    user = make_user()
    token = "c" * 64
    db.add(
        PasswordResetToken(
            user_id=user.id,
            token=token,
            expires_at=datetime.utcnow() - timedelta(minutes=1),
            used=False,
            created_at=datetime.utcnow() - timedelta(minutes=31),
        )
    )
    db.commit()

    resp = client.post(
        "/api/v1/password/reset/confirm",
        json={"token": token, "new_password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD},
    )

    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_OR_EXPIRED_TOKEN"
    db.refresh(user)
    assert verify_password(DEFAULT_PASSWORD, user.hashed_password)


def test_reset_requests_are_rate_limited(client, make_user):
    make_user()
    for _ in range(3):
        assert client.post("/api/v1/password/reset", json={"email": "alice@example.com"}).status_code == 200

    resp = client.post("/api/v1/password/reset", json={"email": "alice@example.com"})
    assert resp.status_code == 429
    assert resp.json()["code"] == "RATE_LIMITED"


def test_validate_reports_strength_without_side_effects(client):
    resp = client.post("/api/v1/password/validate", json={"password": "password"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["is_valid"] is False
    assert body["strength"] == "very_weak"
    assert body["strength_text"] == "Very weak"
    assert body["strength_color"].startswith("#")


def test_validate_uses_caller_identity_as_hints(client, make_user, auth_headers):
    user = make_user()
    anonymous = client.post("/api/v1/password/validate", json={"password": "Alice#Garden42"}).json()
    hinted = client.post(
        "/api/v1/password/validate", json={"password": "Alice#Garden42"}, headers=auth_headers(user)
    ).json()

    assert hinted["score"] < anonymous["score"]


def test_policy_document(client):
    body = client.get("/api/v1/password/policy").json()

    assert body["min_length"] == 8
    assert body["max_length"] == 128
    assert body["max_history_count"] == 5
    assert body["max_daily_changes"] == 3
    assert body["reset_token_expiry"] == 1800
    assert body["max_reset_attempts_per_hour"] == 3


class FailingMailer(RecordingMailer):
    def send_email(self, to_email: str, subject: str, body: str) -> None:
        raise OSError("smtp down")


def test_notification_failure_does_not_fail_the_request(client, db, make_user, auth_headers, caplog):
    app.dependency_overrides[get_mailer] = lambda: FailingMailer(get_settings())
    user = make_user()

    with caplog.at_level(logging.ERROR, logger="app.services.email"):
        changed = _change(client, auth_headers(user))
        reset = client.post("/api/v1/password/reset", json={"email": "alice@example.com"})

    assert changed.status_code == 200
    db.refresh(user)
    assert verify_password(NEW_PASSWORD, user.hashed_password)
    assert reset.status_code == 200
    failures = [r for r in caplog.records if r.name == "app.services.email" and r.exc_info]
    assert {r.getMessage() for r in failures} == {
        "Failed to send password change notice email",
        "Failed to send password reset email",
    }
