from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.deps import client_ip, get_current_user, get_mailer, get_notifications, get_optional_user
from app.core.rate_limit import limiter
from app.models.user import User
from app.schemas.password import (
    ChangePasswordRequest,
    ChangePasswordResponse,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    PasswordPolicyResponse,
    PasswordStrengthResponse,
    ResetPasswordRequest,
    ResetPasswordResponse,
    ValidatePasswordRequest,
)
from app.services.email import Mailer, NotificationDispatcher
from app.services.password_policy import change_password, confirm_password_reset, request_password_reset
from app.services.password_strength import (
    MAX_LENGTH,
    MIN_LENGTH,
    STRENGTH_COLORS,
    STRENGTH_LABELS,
    VALID_SCORE_THRESHOLD,
    score_password,
)

router = APIRouter(prefix="/password", tags=["password"])
settings = get_settings()


@router.put("/change", response_model=ChangePasswordResponse)
def change(
    payload: ChangePasswordRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    result = change_password(
        db,
        current_user,
        payload.old_password,
        payload.new_password,
        payload.confirm_password,
        notifications=notifications,
        ip_address=client_ip(request),
    )
    return ChangePasswordResponse(changed_at=result.changed_at, strength_score=result.strength_score)


@router.post("/reset", response_model=ForgotPasswordResponse)
@limiter.limit(settings.RATE_LIMIT_PASSWORD_RESET)
def forgot_password(
    request: Request,
    payload: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    result = request_password_reset(
        db,
        payload.email,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        notifications=notifications,
    )
    # Same body whether or not the address is registered.
    response = ForgotPasswordResponse(
        message="If the address is registered, a reset link has been sent",
        email=payload.email,
        expires_in=result.expires_in,
        sent_at=result.requested_at,
    )
    if result.token is not None and settings.PASSWORD_RESET_PREVIEW and not settings.is_production:
        response.debug_reset_url = mailer.reset_url(result.token.token)
    return response


@router.post("/reset/confirm", response_model=ResetPasswordResponse)
@limiter.limit(settings.RATE_LIMIT_PASSWORD_RESET)
def reset_password(
    request: Request,
    payload: ResetPasswordRequest,
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
):
    result = confirm_password_reset(
        db,
        payload.token,
        payload.new_password,
        payload.confirm_password,
        notifications=notifications,
        ip_address=client_ip(request),
    )
    return ResetPasswordResponse(reset_at=result.reset_at, strength_score=result.strength_score)


@router.post("/validate", response_model=PasswordStrengthResponse)
@limiter.limit(settings.RATE_LIMIT_PASSWORD_VALIDATE)
def validate_password(
    request: Request,
    payload: ValidatePasswordRequest,
    current_user: User | None = Depends(get_optional_user),
):
    username = current_user.username if current_user else None
    email = current_user.email if current_user else None
    report = score_password(payload.password, username, email)
    return PasswordStrengthResponse(
        strength_text=STRENGTH_LABELS[report.strength],
        strength_color=STRENGTH_COLORS[report.strength],
        **report.to_dict(),
    )


@router.get("/policy", response_model=PasswordPolicyResponse)
def password_policy():
    return PasswordPolicyResponse(
        min_length=MIN_LENGTH,
        max_length=MAX_LENGTH,
        min_valid_score=VALID_SCORE_THRESHOLD,
        max_history_count=settings.PASSWORD_HISTORY_DEPTH,
        max_daily_changes=settings.PASSWORD_MAX_DAILY_CHANGES,
        reset_token_expiry=settings.PASSWORD_RESET_TOKEN_TTL_MINUTES * 60,
        max_reset_attempts_per_hour=settings.PASSWORD_RESET_MAX_PER_HOUR,
    )
