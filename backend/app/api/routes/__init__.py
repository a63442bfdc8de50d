from app.api.routes import auth, password, users

__all__ = [
    "auth",
    "users",
    "password",
]
