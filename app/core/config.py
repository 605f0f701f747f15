from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CSRF_SECRET = "dev-only-csrf-secret-change-in-production"


class Settings(BaseSettings):
    app_name: str = "feature-requests"
    env: str = "development"

    database_url: str = "postgresql+psycopg2://features:features@db:5432/features"
    redis_url: str | None = None

    jwt_secret: str | None = None
    jwt_alg: str = "HS256"
    jwt_issuer: str = "feature-requests-app"
    jwt_audience: str = "feature-requests-admin"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    session_token_expire_days: int = 30

    csrf_secret: str = DEFAULT_CSRF_SECRET
    csrf_max_age_seconds: int = 3600
    cookie_domain: str | None = None

    bcrypt_rounds: int = 12

    # Unset values fall back to the profile picked from ``env``.
    auth_rate_limit_max_attempts: int | None = None
    auth_rate_limit_window_seconds: int | None = None
    auth_rate_limit_lockout_seconds: int | None = None
    rate_limit_global: str = "100/minute"

    cors_origins: str = "http://localhost:3000"
    cors_allow_methods: str = "GET,POST,PATCH,DELETE,OPTIONS"
    cors_allow_headers: str = "Authorization,Content-Type,X-CSRF-Token"
    cors_max_age: int = 600
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="", extra="ignore")

    @model_validator(mode="after")
    def validate_security_settings(self) -> "Settings":
        if self.is_production:
            if not self.jwt_secret:
                raise ValueError("JWT_SECRET is required in production")
            if self.csrf_secret == DEFAULT_CSRF_SECRET:
                raise ValueError("CSRF_SECRET must be set in production")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return self

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.env.lower() in {"development", "test"}

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def allowed_methods(self) -> list[str]:
        return [
            m.strip().upper() for m in self.cors_allow_methods.split(",") if m.strip()
        ]

    @property
    def allowed_headers(self) -> list[str]:
        return [h.strip() for h in self.cors_allow_headers.split(",") if h.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
