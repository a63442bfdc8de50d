import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user, require_roles
from app.core.security import get_password_hash
from app.models.password_history import PasswordHistory
from app.models.password_reset import PasswordResetToken
from app.models.user import User, UserRole, UserStatus
from app.schemas.user import UserCreate, UserListResponse, UserResponse, UserUpdate
from app.services.password_policy import require_strong_password

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)

ADMIN_ONLY_FIELDS = {"role", "status"}


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("", response_model=UserListResponse)
def list_users(
    q: str | None = Query(default=None, max_length=100),
    status: UserStatus | None = None,
    role: UserRole | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(UserRole.admin)),
):
    stmt = select(User)
    if q:
        pattern = f"%{q.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(User.username).like(pattern),
                func.lower(User.email).like(pattern),
                func.lower(User.full_name).like(pattern),
            )
        )
    if status:
        stmt = stmt.where(User.status == status)
    if role:
        stmt = stmt.where(User.role == role)

    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = db.scalars(
        stmt.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * page_size).limit(page_size)
    ).all()
    return UserListResponse(
        items=[UserResponse.model_validate(u) for u in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{user_id}", response_model=UserResponse)
def get_user(user_id: int, db: Session = Depends(get_db), current: User = Depends(get_current_user)):
    if current.role != UserRole.admin and current.id != user_id:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return _get_user_or_404(db, user_id)


@router.post("", response_model=UserResponse, status_code=201)
def create_user(payload: UserCreate, db: Session = Depends(get_db), current: User = Depends(require_roles(UserRole.admin))):
    existing = db.scalars(
        select(User).where(or_(User.username == payload.username, func.lower(User.email) == payload.email.lower()))
    ).first()
    if existing:
        raise HTTPException(status_code=409, detail="Username or email already registered")

    require_strong_password(payload.password, payload.username, payload.email)

    user = User(
        username=payload.username,
        email=payload.email.lower(),
        full_name=payload.full_name,
        phone=payload.phone,
        department=payload.department,
        role=payload.role,
        status=payload.status,
        hashed_password=get_password_hash(payload.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Admin user_id=%s created user_id=%s", current.id, user.id)
    return user


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    current: User = Depends(get_current_user),
):
    is_admin = current.role == UserRole.admin
    if not is_admin and current.id != user_id:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    user = _get_user_or_404(db, user_id)
    changes = payload.model_dump(exclude_unset=True)

    if not is_admin and changes.keys() & ADMIN_ONLY_FIELDS:
        raise HTTPException(status_code=403, detail="Only administrators can change role or status")

    if "email" in changes and changes["email"] is not None:
        changes["email"] = changes["email"].lower()
        clash = db.scalars(
            select(User).where(func.lower(User.email) == changes["email"], User.id != user_id)
        ).first()
        if clash:
            raise HTTPException(status_code=409, detail="Email already registered")

    if current.id == user_id and (changes.get("status") not in (None, UserStatus.active) or changes.get("role") not in (None, UserRole.admin)):
        raise HTTPException(status_code=400, detail="Cannot demote or disable yourself")

    for field, value in changes.items():
        setattr(user, field, value)
    if changes.get("status") not in (None, UserStatus.active):
        user.clear_session_credentials()
    db.commit()
    db.refresh(user)
    logger.info("User user_id=%s updated user_id=%s fields=%s", current.id, user_id, sorted(changes))
    return user


@router.delete("/{user_id}")
def delete_user(user_id: int, db: Session = Depends(get_db), current: User = Depends(require_roles(UserRole.admin))):
    if current.id == user_id:
        raise HTTPException(status_code=400, detail="Cannot delete yourself")
    user = _get_user_or_404(db, user_id)
    db.execute(delete(PasswordHistory).where(PasswordHistory.user_id == user_id))
    db.execute(delete(PasswordResetToken).where(PasswordResetToken.user_id == user_id))
    db.delete(user)
    db.commit()
    logger.info("Admin user_id=%s deleted user_id=%s", current.id, user_id)
    return {"status": "deleted"}
