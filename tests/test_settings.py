import pytest
from pydantic import ValidationError

from app.core.settings import Settings


def test_derived_platform_urls() -> None:
    settings = Settings(SUPABASE_URL="https://abc.supabase.co/", SUPABASE_ISSUER=None, SUPABASE_JWKS_URL=None)

    assert settings.SUPABASE_ISSUER == "https://abc.supabase.co/auth/v1"
    assert settings.SUPABASE_JWKS_URL == "https://abc.supabase.co/auth/v1/.well-known/jwks.json"
    assert settings.SEND_EMAIL_FUNCTION_URL == "https://abc.supabase.co/functions/v1/send-email"


def test_dashboard_url_and_cors_origins() -> None:
    settings = Settings(
        APP_BASE_URL="https://directory.example.org/",
        API_CORS_ORIGINS="https://directory.example.org, http://localhost:5173,",
    )

    assert settings.dashboard_url == "https://directory.example.org/dashboard"
    assert settings.cors_origins_list == ["https://directory.example.org", "http://localhost:5173"]


def test_production_requires_webhook_secret() -> None:
    with pytest.raises(ValidationError):
        Settings(TMH_ENV="production", STRIPE_WEBHOOK_SECRET=None)


def test_development_allows_missing_webhook_secret() -> None:
    settings = Settings(TMH_ENV="development", STRIPE_WEBHOOK_SECRET=None)

    assert settings.STRIPE_WEBHOOK_SECRET is None
    assert settings.is_production is False


@pytest.mark.parametrize("field", ["SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "STRIPE_SECRET_KEY"])
def test_blank_required_values_are_rejected(field) -> None:
    with pytest.raises(ValidationError):
        Settings(**{field: "  "})
