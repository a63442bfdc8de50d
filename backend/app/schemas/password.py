from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)
    confirm_password: str = Field(min_length=1, max_length=128)


class ChangePasswordResponse(BaseModel):
    changed_at: datetime
    force_logout: bool = True
    strength_score: int


class ForgotPasswordRequest(BaseModel):
    email: EmailStr = Field(max_length=255)


class ForgotPasswordResponse(BaseModel):
    status: str = "ok"
    message: str
    email: str
    expires_in: int
    sent_at: datetime
    debug_reset_url: str | None = None


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=32, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)
    confirm_password: str = Field(min_length=1, max_length=128)


class ResetPasswordResponse(BaseModel):
    reset_at: datetime
    force_logout: bool = True
    strength_score: int


class ValidatePasswordRequest(BaseModel):
    password: str = Field(min_length=1, max_length=128)


class Requirements(BaseModel):
    length: bool
    uppercase: bool
    lowercase: bool
    number: bool
    special: bool


class PasswordStrengthResponse(BaseModel):
    is_valid: bool
    strength: str
    strength_text: str
    strength_color: str
    score: int
    requirements: Requirements
    suggestions: list[str]


class PasswordPolicyResponse(BaseModel):
    min_length: int
    max_length: int
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_numbers: bool = True
    require_special_chars: bool = False
    min_valid_score: int
    max_history_count: int
    max_daily_changes: int
    reset_token_expiry: int
    max_reset_attempts_per_hour: int
