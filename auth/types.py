"""Pydantic models for the auth facade."""

from datetime import datetime
from enum import Enum
from typing import Any, Generic, Literal, TypeVar
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

T = TypeVar("T")


class AuthErrorKind(str, Enum):
    """Stable failure taxonomy shared by every auth operation."""

    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    EMAIL_ALREADY_REGISTERED = "EMAIL_ALREADY_REGISTERED"
    EMAIL_NOT_CONFIRMED = "EMAIL_NOT_CONFIRMED"
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK = "NETWORK"
    LINK_EXPIRED_OR_INVALID = "LINK_EXPIRED_OR_INVALID"
    WEAK_PASSWORD = "WEAK_PASSWORD"
    INVALID_EMAIL = "INVALID_EMAIL"
    UNKNOWN = "UNKNOWN"


class ClassifiedError(BaseModel):
    """Outcome of classifying a raw provider failure."""

    kind: AuthErrorKind
    message: str


class AuthSuccess(BaseModel, Generic[T]):
    success: Literal[True] = True
    message: str | None = None
    data: T | None = None


class AuthFailure(BaseModel):
    """
    A failed auth operation.

    ``raw`` keeps the provider's original error for diagnostics only. It is
    excluded from serialization so it never reaches an end user.
    """

    success: Literal[False] = False
    kind: AuthErrorKind
    message: str
    raw: Any = Field(default=None, exclude=True, repr=False)


AuthResult = AuthSuccess | AuthFailure


class PasswordResult(BaseModel):
    """Result of the password reset request and password update flows."""

    success: bool
    message: str


class ProviderUser(BaseModel):
    """Identity as reported by the provider."""

    id: str
    email: str | None = None
    email_confirmed_at: datetime | None = None


class ProviderSession(BaseModel):
    """An authenticated provider session. Presence means "authenticated"."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    user: ProviderUser


class SignUpData(BaseModel):
    """Sign-up payload. ``provisioned`` reports the quota account write separately."""

    user_id: str | None = None
    provisioned: bool = False


class SignInData(BaseModel):
    user_id: str
    session: ProviderSession


class RecoveryStatus(str, Enum):
    PASSWORD_RECOVERY_READY = "PASSWORD_RECOVERY_READY"
    EMAIL_CONFIRMED = "EMAIL_CONFIRMED"
    NO_ACTION = "NO_ACTION"
    ERROR = "ERROR"


class RecoveryState(BaseModel):
    """What the current navigation context means for the recovery flow."""

    state: RecoveryStatus
    message: str | None = None
    kind: AuthErrorKind | None = None
    raw: Any = Field(default=None, exclude=True, repr=False)

    @classmethod
    def ready(cls) -> "RecoveryState":
        return cls(state=RecoveryStatus.PASSWORD_RECOVERY_READY)

    @classmethod
    def email_confirmed(cls, message: str | None = None) -> "RecoveryState":
        return cls(state=RecoveryStatus.EMAIL_CONFIRMED, message=message)

    @classmethod
    def no_action(cls) -> "RecoveryState":
        return cls(state=RecoveryStatus.NO_ACTION)

    @classmethod
    def error(cls, kind: AuthErrorKind, message: str, raw: Any = None) -> "RecoveryState":
        return cls(state=RecoveryStatus.ERROR, kind=kind, message=message, raw=raw)


class NavigationContext(BaseModel):
    """The URL the visitor landed on, split into the parts link parsing needs."""

    path: str = "/"
    query: str = ""
    fragment: str = ""

    @classmethod
    def from_url(cls, url: str) -> "NavigationContext":
        parts = urlsplit(url)
        return cls(path=parts.path or "/", query=parts.query, fragment=parts.fragment)


class AuthChangeEvent(str, Enum):
    """Provider session change notifications."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"
    USER_UPDATED = "USER_UPDATED"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


class Credentials(BaseModel):
    """Request body for sign-up and sign-in. Shape is validated by the gateway."""

    email: str
    password: str


class PasswordResetRequest(BaseModel):
    email: str


class PasswordUpdateRequest(BaseModel):
    password: str
