"""Authentication configuration."""

import os
from typing import Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_APP_URL = "http://localhost:5173"

# First one set wins
APP_URL_ENV_VARS = ("APP_URL", "NEXT_PUBLIC_APP_URL", "VITE_APP_URL")


def build_redirect(base_url: str, path: str) -> str:
    """Join base URL and path with exactly one slash between them."""
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    The recovery redirect built from ``app_base_url`` and ``recovery_path``
    must match the identity provider's allow-listed redirect URLs exactly.
    """

    app_base_url: str = Field(
        default=DEFAULT_APP_URL,
        description="Public base URL of the application",
    )
    recovery_path: str = Field(
        default="/reset-password",
        description="Path the password recovery email links back to",
    )
    min_password_length: int = Field(
        default=8,
        description="Minimum password length accepted locally",
        ge=6,
        le=72,
    )

    # Retry of transient provider failures
    retry_times: int = Field(
        default=2,
        description="Additional attempts after the first (total calls = retry_times + 1)",
        ge=0,
        le=5,
    )
    retry_base_delay_ms: int = Field(
        default=400,
        description="Backoff base; attempt i waits base * 2**i",
        ge=50,
        le=5000,
    )

    recovery_link_strategy: Literal["path", "token"] = Field(
        default="path",
        description="'path' checks the landing path only; 'token' parses link parameters",
    )

    @field_validator("app_base_url")
    @classmethod
    def _strip_trailing_slashes(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("recovery_path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        return "/" + value.strip("/")

    @property
    def recovery_redirect_url(self) -> str:
        return build_redirect(self.app_base_url, self.recovery_path)

    @classmethod
    def from_env(cls, **overrides) -> "AuthConfig":
        """Build config with the base URL taken from the environment."""
        for name in APP_URL_ENV_VARS:
            value = os.getenv(name)
            if value:
                overrides.setdefault("app_base_url", value)
                break
        return cls(**overrides)


class IdentityProviderConfig(BaseModel):
    """Where the identity provider lives and the public key it expects."""

    url: str = Field(..., description="Provider base URL, e.g. https://<project>.supabase.co")
    anon_key: str = Field(..., description="Public (anon) API key")
    timeout_seconds: float = Field(default=10, ge=1, le=60)

    @field_validator("url")
    @classmethod
    def _strip_trailing_slashes(cls, value: str) -> str:
        return value.rstrip("/")
