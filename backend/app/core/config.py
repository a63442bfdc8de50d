from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Load backend/.env first, then the repo-root .env.
    model_config = SettingsConfigDict(env_file=(".env", "../.env"), case_sensitive=True, extra="ignore")

    PROJECT_NAME: str = "UserManagement"
    ENVIRONMENT: str = "development"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    SECRET_KEY: str = "change_me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "user-management"
    JWT_AUDIENCE: str = "user-management-api"

    # bcrypt work factor for new hashes.
    PASSWORD_HASH_ROUNDS: int = 12

    DATABASE_URL: str = "sqlite:///./user_management.db"

    CELERY_BROKER_URL: str = "redis://redis:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/2"

    BACKEND_CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    FRONTEND_URL: str = "http://localhost:3000"
    ENABLE_API_DOCS: bool = True

    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM_EMAIL: str = "noreply@usermanagement.local"
    SMTP_USE_TLS: bool = True
    SMTP_TIMEOUT_SECONDS: int = 20

    # Password lifecycle
    PASSWORD_HISTORY_DEPTH: int = 5
    PASSWORD_HISTORY_RETENTION_DAYS: int = 365
    PASSWORD_MAX_DAILY_CHANGES: int = 3
    PASSWORD_CHANGE_WINDOW_HOURS: int = 24
    PASSWORD_RESET_TOKEN_TTL_MINUTES: int = 30
    PASSWORD_RESET_MAX_PER_HOUR: int = 3
    PASSWORD_RESET_USED_RETENTION_HOURS: int = 24
    # Dev-only: echo the reset link in the reset-initiate response.
    PASSWORD_RESET_PREVIEW: bool = True

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    RATE_LIMIT_LOGIN: str = "20/minute"
    RATE_LIMIT_PASSWORD_RESET: str = "10/hour"
    RATE_LIMIT_PASSWORD_VALIDATE: str = "20/minute"

    @model_validator(mode="after")
    def _prod_guards(self):
        if self.is_production:
            if not self.SECRET_KEY or len(self.SECRET_KEY) < 32:
                raise ValueError("SECRET_KEY must be 32+ chars in production")
            if self.PASSWORD_HASH_ROUNDS < 12:
                raise ValueError("PASSWORD_HASH_ROUNDS must be at least 12 in production")
            self.PASSWORD_RESET_PREVIEW = False
            self.ENABLE_API_DOCS = False
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        return self.DATABASE_URL


@lru_cache
def get_settings() -> Settings:
    return Settings()
