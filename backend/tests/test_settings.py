import pytest
from pydantic import ValidationError

from journeyline.core.settings import Settings


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.CIVIL_TIMEZONE == "Asia/Ho_Chi_Minh"
        assert settings.MAX_JOURNEY_DAYS == 90
        assert settings.DEFAULT_ACTIVITY_TYPE == "poi"

    def test_allowed_origins_from_comma_string(self):
        settings = Settings(_env_file=None, ALLOWED_ORIGINS="https://a.example, https://b.example,")
        assert settings.ALLOWED_ORIGINS == ["https://a.example", "https://b.example"]

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, CIVIL_TIMEZONE="Mars/Olympus_Mons")

    def test_max_days_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, MAX_JOURNEY_DAYS=0)

    def test_rate_limit_relaxed_when_disabled(self):
        assert Settings(_env_file=None, ENABLE_RATE_LIMITING=True).rate_limit("5/minute") == "5/minute"
        assert Settings(_env_file=None, ENABLE_RATE_LIMITING=False).rate_limit("5/minute") == "1000/minute"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CIVIL_TIMEZONE", "Europe/Berlin")
        monkeypatch.setenv("MAX_JOURNEY_DAYS", "14")
        settings = Settings(_env_file=None)
        assert settings.CIVIL_TIMEZONE == "Europe/Berlin"
        assert settings.MAX_JOURNEY_DAYS == 14
