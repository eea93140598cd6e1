import pytest
from pydantic import ValidationError

from checkout_bff.config import Settings
from checkout_bff.safe_logging import redact_email, redact_id


def test_redact_email_keeps_domain_only():
    assert redact_email("buyer@example.com") == "***@example.com"
    assert redact_email("not-an-email") == "***"
    assert redact_email(None) is None


def test_redact_id_keeps_prefix():
    assert redact_id("0123456789abcdef") == "01234567..."
    assert redact_id("short") == "short"
    assert redact_id("") is None


def test_settings_normalization_and_bounds():
    settings = Settings(SUPABASE_URL="https://x.supabase.co/", LOG_LEVEL="debug")
    assert settings.AUTH_BASE_URL == "https://x.supabase.co/auth/v1"
    assert settings.REST_BASE_URL == "https://x.supabase.co/rest/v1"
    assert settings.LOG_LEVEL == "DEBUG"
    assert settings.SESSION_BACKUP_TTL_SECONDS == 3600

    with pytest.raises(ValidationError):
        Settings(MAX_RESTORATION_ATTEMPTS=0)
    with pytest.raises(ValidationError):
        Settings(LOG_LEVEL="chatty")
