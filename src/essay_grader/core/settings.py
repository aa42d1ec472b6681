"""Application settings and configuration.

This module defines all configuration options for the essay grading service
and its session client. Settings are loaded from environment variables with
sensible defaults.
"""

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEV_SECRET_KEY = "dev-access-secret-change-me"
_DEV_REFRESH_SECRET_KEY = "dev-refresh-secret-change-me"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Essay Grader", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="info", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./essay_grader.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Credential issuance
    secret_key: str = Field(default=_DEV_SECRET_KEY, alias="SECRET_KEY")
    refresh_secret_key: str = Field(default=_DEV_REFRESH_SECRET_KEY, alias="REFRESH_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_issuer: str = Field(default="essay-grader-api", alias="JWT_ISSUER")
    jwt_audience: str = Field(default="essay-grader-client", alias="JWT_AUDIENCE")
    access_token_expire_minutes: int = Field(default=15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_days: int = Field(default=7, alias="REFRESH_TOKEN_EXPIRE_DAYS")
    bcrypt_rounds: int = Field(default=12, ge=4, le=31, alias="BCRYPT_ROUNDS")

    # Cookie transport for credentials
    access_cookie_name: str = Field(default="access_token", alias="ACCESS_COOKIE_NAME")
    refresh_cookie_name: str = Field(default="refresh_token", alias="REFRESH_COOKIE_NAME")
    cookie_secure: bool = Field(default=False, alias="COOKIE_SECURE")
    cookie_samesite: str = Field(default="strict", alias="COOKIE_SAMESITE")

    # Throttling of credential endpoints (attempts per window, per key)
    login_rate_limit_attempts: int = Field(default=5, alias="LOGIN_RATE_LIMIT_ATTEMPTS")
    login_rate_limit_window_seconds: int = Field(
        default=15 * 60,
        alias="LOGIN_RATE_LIMIT_WINDOW_SECONDS",
    )
    register_rate_limit_attempts: int = Field(default=100, alias="REGISTER_RATE_LIMIT_ATTEMPTS")
    register_rate_limit_window_seconds: int = Field(
        default=60 * 60,
        alias="REGISTER_RATE_LIMIT_WINDOW_SECONDS",
    )
    refresh_rate_limit_attempts: int = Field(default=10, alias="REFRESH_RATE_LIMIT_ATTEMPTS")
    refresh_rate_limit_window_seconds: int = Field(
        default=15 * 60,
        alias="REFRESH_RATE_LIMIT_WINDOW_SECONDS",
    )
    rate_limit_redis_url: str | None = Field(default=None, alias="RATE_LIMIT_REDIS_URL")
    trust_forwarded_for: bool = Field(default=False, alias="TRUST_FORWARDED_FOR")

    # Essay lifecycle
    allowed_file_kinds: list[str] = Field(
        default=["image/jpeg", "image/png", "application/pdf"],
        alias="ALLOWED_FILE_KINDS",
    )

    # Session client
    api_base_url: str = Field(default="http://localhost:8000/api/v1", alias="API_BASE_URL")
    client_timeout_seconds: float = Field(default=10.0, alias="CLIENT_TIMEOUT_SECONDS")
    renewal_timeout_seconds: float = Field(default=10.0, alias="RENEWAL_TIMEOUT_SECONDS")
    credential_store_path: str | None = Field(default=None, alias="CREDENTIAL_STORE_PATH")

    # CORS configuration for the web client (cookies require credentials)
    cors_origins: list[str] = Field(
        default=["http://localhost:5173"],
        alias="CORS_ORIGINS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @field_validator("secret_key", "refresh_secret_key")
    @classmethod
    def validate_secrets(cls, v: str, info: ValidationInfo) -> str:
        """Refuse the development secrets outside of development."""
        env = info.data.get("environment", "development")
        if env != "development" and v in (_DEV_SECRET_KEY, _DEV_REFRESH_SECRET_KEY):
            raise ValueError(
                f"{info.field_name} must be changed from its default "
                "in non-development environments"
            )
        return v

    @property
    def access_token_max_age(self) -> int:
        """Lifetime of the access cookie in seconds."""
        return self.access_token_expire_minutes * 60

    @property
    def refresh_token_max_age(self) -> int:
        """Lifetime of the refresh cookie in seconds."""
        return self.refresh_token_expire_days * 24 * 60 * 60


settings = Settings()
