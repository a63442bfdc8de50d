import os

from sqlalchemy import func, or_, select

from app.core.database import Base, SessionLocal, engine
from app.core.security import get_password_hash
from app.models.user import User, UserRole, UserStatus
from app.services.password_strength import score_password


def create_user(username: str, email: str, full_name: str, password: str, role: UserRole) -> None:
    report = score_password(password, username, email)
    if not report.is_valid:
        print(f"Password for {email} is too weak (score {report.score}): " + "; ".join(report.suggestions))
        return

    db = SessionLocal()
    try:
        existing = db.scalars(
            select(User).where(or_(User.username == username, func.lower(User.email) == email.lower()))
        ).first()
        if existing:
            print(f"User already exists: {existing.username} <{existing.email}>")
            return

        user = User(
            username=username,
            email=email.lower(),
            full_name=full_name,
            hashed_password=get_password_hash(password),
            role=role,
            status=UserStatus.active,
        )
        db.add(user)
        db.commit()
        print(f"Created {role.value}: {username} <{email}>")
    finally:
        db.close()


if __name__ == "__main__":
    Base.metadata.create_all(bind=engine)
    # Do not hardcode credentials in the repo. Use env vars for local bootstrap.
    admin_email = os.getenv("BOOTSTRAP_ADMIN_EMAIL")
    admin_password = os.getenv("BOOTSTRAP_ADMIN_PASSWORD")
    admin_username = os.getenv("BOOTSTRAP_ADMIN_USERNAME", "admin")
    if admin_email and admin_password:
        create_user(admin_username, admin_email, "System Administrator", admin_password, UserRole.admin)
    else:
        print("Bootstrap skipped. Set BOOTSTRAP_ADMIN_EMAIL and BOOTSTRAP_ADMIN_PASSWORD to create an admin user.")
