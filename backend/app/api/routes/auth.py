import hmac
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from jose import JWTError
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.deps import get_current_user
from app.core.errors import ErrorCode, PasswordPolicyError
from app.core.rate_limit import limiter
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    token_digest,
    verify_password,
)
from app.models.user import User, UserRole, UserStatus
from app.schemas.auth import LoginRequest, RefreshTokenRequest, RegisterRequest, TokenResponse
from app.schemas.user import UserResponse
from app.services.password_policy import require_strong_password

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)
settings = get_settings()


def _issue_tokens(db: Session, user: User) -> TokenResponse:
    access = create_access_token(str(user.id), user.session_version)
    refresh = create_refresh_token(str(user.id), user.session_version)
    user.refresh_token_digest = token_digest(refresh, settings.SECRET_KEY)
    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)
    return TokenResponse(
        access_token=access,
        refresh_token=refresh,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(user),
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
@limiter.limit("10/minute")
def register(request: Request, payload: RegisterRequest, db: Session = Depends(get_db)):
    existing = db.scalars(
        select(User).where(
            or_(User.username == payload.username, func.lower(User.email) == payload.email.lower())
        )
    ).first()
    if existing:
        field = "Username" if existing.username == payload.username else "Email"
        raise HTTPException(status_code=409, detail=f"{field} already registered")

    require_strong_password(payload.password, payload.username, payload.email)

    user = User(
        username=payload.username,
        email=payload.email.lower(),
        full_name=payload.full_name,
        phone=payload.phone,
        hashed_password=get_password_hash(payload.password),
        role=UserRole.user,
        status=UserStatus.active,
    )
    db.add(user)
    db.flush()
    logger.info("Registered user_id=%s", user.id)
    return _issue_tokens(db, user)


@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.RATE_LIMIT_LOGIN)
def login(request: Request, payload: LoginRequest, db: Session = Depends(get_db)):
    identifier = payload.username.strip()
    user = db.scalars(
        select(User).where(or_(User.username == identifier, func.lower(User.email) == identifier.lower()))
    ).first()

    if not user or not verify_password(payload.password, user.hashed_password):
        logger.warning("Login failed for '%s'", identifier)
        raise PasswordPolicyError(ErrorCode.invalid_credentials, "Incorrect username or password", status_code=401)

    if not user.is_active:
        raise HTTPException(status_code=403, detail=f"Account is {user.status.value}")

    logger.info("Login succeeded for user_id=%s", user.id)
    return _issue_tokens(db, user)


@router.post("/refresh", response_model=TokenResponse)
def refresh_token(payload: RefreshTokenRequest, db: Session = Depends(get_db)):
    try:
        claims = decode_token(payload.refresh_token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    if claims.get("typ") != "refresh":
        raise HTTPException(status_code=401, detail="Invalid token type")

    user_id = claims.get("sub")
    token_sv = claims.get("sv")
    if not user_id or token_sv is None:
        raise HTTPException(status_code=401, detail="Invalid token claims")

    user = db.get(User, int(user_id))
    if (
        not user
        or not user.is_active
        or user.session_version != int(token_sv)
        or not hmac.compare_digest(user.refresh_token_digest or "", token_digest(payload.refresh_token, settings.SECRET_KEY))
    ):
        raise HTTPException(status_code=401, detail="Session invalid")

    return _issue_tokens(db, user)


@router.post("/logout")
def logout(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    current_user.clear_session_credentials()
    db.commit()
    return {"status": "logged_out"}


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user
