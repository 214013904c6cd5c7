"""Tests for auth/config.py."""

import pytest
from pydantic import ValidationError

from auth.config import AuthConfig, IdentityProviderConfig, build_redirect


class TestBuildRedirect:
    def test_single_slash_between_parts(self):
        assert build_redirect("https://app.example.com/", "/reset-password") == (
            "https://app.example.com/reset-password"
        )

    def test_adds_missing_slash(self):
        assert build_redirect("https://app.example.com", "reset-password") == (
            "https://app.example.com/reset-password"
        )


class TestAuthConfig:
    def test_defaults(self):
        config = AuthConfig()
        assert config.app_base_url == "http://localhost:5173"
        assert config.recovery_path == "/reset-password"
        assert config.min_password_length == 8
        assert config.retry_times == 2
        assert config.retry_base_delay_ms == 400
        assert config.recovery_link_strategy == "path"

    def test_recovery_redirect_url_is_normalized(self):
        config = AuthConfig(app_base_url="https://app.example.com///", recovery_path="reset-password/")
        assert config.recovery_redirect_url == "https://app.example.com/reset-password"

    def test_rejects_out_of_range_retry(self):
        with pytest.raises(ValidationError):
            AuthConfig(retry_times=10)

    def test_rejects_unknown_strategy(self):
        with pytest.raises(ValidationError):
            AuthConfig(recovery_link_strategy="magic")


class TestFromEnv:
    @pytest.fixture(autouse=True)
    def clear_env(self, monkeypatch):
        for name in ("APP_URL", "NEXT_PUBLIC_APP_URL", "VITE_APP_URL"):
            monkeypatch.delenv(name, raising=False)

    def test_reads_first_set_variable(self, monkeypatch):
        monkeypatch.setenv("NEXT_PUBLIC_APP_URL", "https://next.example.com")
        monkeypatch.setenv("VITE_APP_URL", "https://vite.example.com")
        assert AuthConfig.from_env().app_base_url == "https://next.example.com"

    def test_app_url_takes_priority(self, monkeypatch):
        monkeypatch.setenv("APP_URL", "https://app.example.com/")
        monkeypatch.setenv("VITE_APP_URL", "https://vite.example.com")
        assert AuthConfig.from_env().app_base_url == "https://app.example.com"

    def test_falls_back_to_default(self):
        assert AuthConfig.from_env().app_base_url == "http://localhost:5173"

    def test_explicit_override_wins(self, monkeypatch):
        monkeypatch.setenv("APP_URL", "https://env.example.com")
        config = AuthConfig.from_env(app_base_url="https://explicit.example.com")
        assert config.app_base_url == "https://explicit.example.com"


class TestIdentityProviderConfig:
    def test_strips_trailing_slash(self):
        config = IdentityProviderConfig(url="https://idp.example.com/", anon_key="k")
        assert config.url == "https://idp.example.com"

    def test_requires_key(self):
        with pytest.raises(ValidationError):
            IdentityProviderConfig(url="https://idp.example.com")
