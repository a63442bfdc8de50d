from app.models.user import User, UserRole, UserStatus
from app.models.password_history import PasswordHistory
from app.models.password_reset import PasswordResetToken

__all__ = [
    "User",
    "UserRole",
    "UserStatus",
    "PasswordHistory",
    "PasswordResetToken",
]
