"""Unit tests for configuration and settings."""
import pytest

from reservations.config import Settings, get_settings, reset_settings_cache


class TestSettings:
    """Test configuration management."""

    def test_get_settings_returns_same_instance(self):
        """Test that get_settings returns cached instance."""
        assert get_settings() is get_settings()

    def test_reset_settings_cache(self):
        """Test that cache can be reset."""
        settings1 = get_settings()
        reset_settings_cache()
        settings2 = get_settings()

        assert settings1 is not settings2

    def test_test_environment_overrides(self):
        """Test the environment prepared for the suite is picked up."""
        settings = get_settings()

        assert settings.database_url.startswith("sqlite")
        assert settings.rate_limiting_enabled is False
        assert settings.metrics_enabled is False
        assert settings.notification_backend == "log"

    def test_reservation_defaults(self):
        """Test booking related defaults."""
        settings = Settings(_env_file=None)

        assert settings.lock_timeout_seconds == 5.0
        assert (settings.room_cache_ttl, settings.room_status_ttl) == (60, 10)
        assert settings.payment_reference_prefix == "mrb"
        assert (settings.default_operating_start, settings.default_operating_end) == ("09:00", "18:00")

    def test_lock_timeout_must_be_positive(self, monkeypatch):
        """Test a zero lock timeout is refused."""
        monkeypatch.setenv("LOCK_TIMEOUT_SECONDS", "0")

        with pytest.raises(ValueError):
            Settings(_env_file=None)

    def test_service_ports_configuration(self):
        """Test service port configuration."""
        settings = get_settings()

        assert settings.rooms_service_port == 8002
        assert settings.bookings_service_port == 8003
