import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["SECRET_KEY"] = "test-secret-key-with-enough-length-0123"
os.environ["FRONTEND_URL"] = "http://frontend.test"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.core.database import Base, get_db
from app.core.deps import get_mailer
from app.core.security import create_access_token, get_password_hash
from app.main import app
from app.models.user import User, UserRole, UserStatus
from app.services.email import Mailer

DEFAULT_PASSWORD = "Old12345"


class RecordingMailer(Mailer):
    def __init__(self, settings):
        super().__init__(settings)
        self.outbox: list[dict] = []

    def send_email(self, to_email: str, subject: str, body: str) -> None:
        self.outbox.append({"to": to_email, "subject": subject, "body": body})


class RecordingNotifications:
    def __init__(self):
        self.reset_links: list[tuple] = []
        self.change_notices: list[tuple] = []

    def reset_link(self, email, token, username):
        self.reset_links.append((email, token, username))

    def change_notice(self, email, username, ip_address):
        self.change_notices.append((email, username, ip_address))


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def mailer():
    return RecordingMailer(get_settings())


@pytest.fixture
def notifications():
    return RecordingNotifications()


@pytest.fixture
def client(db, mailer):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make_user(
        username: str = "alice",
        email: str | None = None,
        password: str = DEFAULT_PASSWORD,
        role: UserRole = UserRole.user,
        status: UserStatus = UserStatus.active,
    ) -> User:
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            full_name=username.title(),
            hashed_password=get_password_hash(password),
            role=role,
            status=status,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict[str, str]:
        token = create_access_token(str(user.id), user.session_version)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
