"""Unit tests for configuration module."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from edukart.core.config import Settings, get_settings

REQUIRED_ENV = {
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SECRET_KEY": "test-secret-key",
    "SUPABASE_JWT_SECRET": "test-jwt-secret",
}


class TestSettings:
    """Tests for Settings class."""

    def test_settings_loads_from_environment(self) -> None:
        """Test that Settings loads values from environment variables."""
        env_vars = {
            **REQUIRED_ENV,
            "APP_NAME": "test-app",
            "APP_ENV": "testing",
            "DEBUG": "true",
            "HOST": "127.0.0.1",
            "PORT": "9000",
            "PAYMENT_CURRENCY": "inr",
            "CATALOG_CACHE_TTL": "15",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            settings = Settings()

            assert settings.app_name == "test-app"
            assert settings.app_env == "testing"
            assert settings.debug is True
            assert settings.host == "127.0.0.1"
            assert settings.port == 9000
            assert settings.supabase_url == "https://test.supabase.co"
            assert settings.payment_currency == "inr"
            assert settings.catalog_cache_ttl == 15

    def test_settings_cors_origins_list(self) -> None:
        """Test that CORS origins are correctly parsed into a list."""
        env_vars = {
            **REQUIRED_ENV,
            "CORS_ORIGINS": "http://localhost:3000, https://edukart.in , ",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            origins = Settings().cors_origins_list

            assert origins == ["http://localhost:3000", "https://edukart.in"]

    def test_settings_is_production_property(self) -> None:
        """Test the is_production property."""
        with patch.dict(os.environ, {**REQUIRED_ENV, "APP_ENV": "production"}, clear=False):
            assert Settings().is_production is True

        with patch.dict(os.environ, {**REQUIRED_ENV, "APP_ENV": "development"}, clear=False):
            assert Settings().is_production is False

    def test_is_stripe_test_mode(self) -> None:
        """Test mode is derived from the secret key prefix."""
        with patch.dict(os.environ, {**REQUIRED_ENV, "STRIPE_SECRET_KEY": "sk_test_abc"}, clear=False):
            assert Settings().is_stripe_test_mode is True

        with patch.dict(os.environ, {**REQUIRED_ENV, "STRIPE_SECRET_KEY": "sk_live_abc"}, clear=False):
            assert Settings().is_stripe_test_mode is False

    def test_settings_default_values(self) -> None:
        """Test that default values are applied correctly."""
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = Settings(_env_file=None)

            assert settings.app_name == "edukart-commerce"
            assert settings.app_env == "development"
            assert settings.debug is False
            assert settings.port == 8080
            assert settings.payment_currency == "inr"
            assert settings.catalog_cache_ttl == 60
            assert settings.stripe_secret_key == ""

    def test_settings_validation_error_missing_required(self) -> None:
        """Test that validation errors are raised for missing required fields."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)


class TestGetSettings:
    """Tests for get_settings function."""

    def test_get_settings_returns_cached_instance(self) -> None:
        """Test that get_settings returns the same cached instance."""
        get_settings.cache_clear()

        first = get_settings()
        second = get_settings()

        assert first is second
