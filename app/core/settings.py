from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True, extra="ignore")

    TMH_ENV: str = "development"
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    API_CORS_ORIGINS: str = "http://localhost:5173"
    APP_BASE_URL: str = "http://localhost:5173"
    SUPABASE_URL: str
    SUPABASE_SERVICE_ROLE_KEY: str
    SUPABASE_JWT_SECRET: str | None = None
    SUPABASE_ISSUER: str | None = None
    SUPABASE_JWKS_URL: str | None = None
    STRIPE_SECRET_KEY: str
    STRIPE_WEBHOOK_SECRET: str | None = None
    STRIPE_API_VERSION: str = "2023-10-16"
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300
    FEATURED_LISTING_PRICE_CENTS: int = 2900
    FEATURED_LISTING_CURRENCY: str = "aud"
    SEND_EMAIL_FUNCTION_URL: str | None = None
    EMAIL_FROM: str | None = None

    @model_validator(mode="after")
    def apply_platform_defaults(self) -> "Settings":
        if not self.SUPABASE_URL.strip():
            raise ValueError("SUPABASE_URL must be configured")
        if not self.SUPABASE_SERVICE_ROLE_KEY.strip():
            raise ValueError("SUPABASE_SERVICE_ROLE_KEY must be configured")
        if not self.STRIPE_SECRET_KEY.strip():
            raise ValueError("STRIPE_SECRET_KEY must be configured")

        if not self.SUPABASE_ISSUER:
            self.SUPABASE_ISSUER = f"{self.SUPABASE_URL.rstrip('/')}/auth/v1"
        if not self.SUPABASE_JWKS_URL:
            self.SUPABASE_JWKS_URL = (
                f"{self.SUPABASE_ISSUER.rstrip('/')}/.well-known/jwks.json"
            )
        if not self.SEND_EMAIL_FUNCTION_URL:
            self.SEND_EMAIL_FUNCTION_URL = f"{self.SUPABASE_URL.rstrip('/')}/functions/v1/send-email"
        if self.is_production and not (self.STRIPE_WEBHOOK_SECRET or "").strip():
            raise ValueError("STRIPE_WEBHOOK_SECRET must be configured in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.TMH_ENV.strip().lower() == "production"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.API_CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def dashboard_url(self) -> str:
        return f"{self.APP_BASE_URL.rstrip('/')}/dashboard"


@lru_cache
def get_settings() -> Settings:
    return Settings()
