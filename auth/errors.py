"""Maps raw identity provider failures onto the stable error taxonomy.

Classification is a priority-ordered rule table: the first rule whose status
or phrase matches wins. Provider messages can satisfy several rules at once
(e.g. "network" and "too many requests"), so the order is significant.
"""

from dataclasses import dataclass
from typing import Any

from auth.types import AuthErrorKind, ClassifiedError

UNKNOWN_FALLBACK_MESSAGE = "Something went wrong."


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the table: matches on any listed status or phrase."""

    kind: AuthErrorKind
    message: str
    phrases: tuple[str, ...] = ()
    statuses: tuple[int, ...] = ()

    def matches(self, text: str, status: int | None) -> bool:
        if status is not None and status in self.statuses:
            return True
        return any(phrase in text for phrase in self.phrases)


CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        AuthErrorKind.RATE_LIMITED,
        "Too many attempts. Try again later.",
        phrases=("too many requests",),
        statuses=(429,),
    ),
    ClassificationRule(
        AuthErrorKind.INVALID_CREDENTIALS,
        "Invalid login credentials.",
        phrases=("invalid login credentials", "invalid credentials"),
    ),
    ClassificationRule(
        AuthErrorKind.EMAIL_NOT_CONFIRMED,
        "Please confirm your email to continue.",
        phrases=("email not confirmed", "confirm your email"),
    ),
    ClassificationRule(
        AuthErrorKind.EMAIL_ALREADY_REGISTERED,
        "Email is already registered.",
        phrases=("already registered", "user already exists", "email already in use"),
    ),
    ClassificationRule(
        AuthErrorKind.LINK_EXPIRED_OR_INVALID,
        "This link is invalid or has expired.",
        phrases=("reset token is invalid", "token expired", "invalid or expired"),
    ),
    ClassificationRule(
        AuthErrorKind.WEAK_PASSWORD,
        "Password is too weak. Use at least 8 characters.",
        phrases=("password should be at least", "password too short"),
    ),
    ClassificationRule(
        AuthErrorKind.NETWORK,
        "Network error. Check your connection and try again.",
        phrases=("network",),
        statuses=(0,),
    ),
)


def _message_of(error: Any) -> str | None:
    message = getattr(error, "message", None)
    if message is None and isinstance(error, Exception):
        message = str(error) or None
    if message is None and isinstance(error, dict):
        message = error.get("message")
    return None if message is None else str(message)


def _status_of(error: Any) -> int | None:
    status = getattr(error, "status", None)
    if status is None and isinstance(error, dict):
        status = error.get("status")
    try:
        return None if status is None else int(status)
    except (TypeError, ValueError):
        return None


def classify(error: Any) -> ClassifiedError:
    """Classify any raw failure. Total: never raises, always returns a kind."""
    message = _message_of(error)
    status = _status_of(error)
    text = (message or "").lower()

    for rule in CLASSIFICATION_RULES:
        if rule.matches(text, status):
            return ClassifiedError(kind=rule.kind, message=rule.message)

    return ClassifiedError(
        kind=AuthErrorKind.UNKNOWN,
        message=message or UNKNOWN_FALLBACK_MESSAGE,
    )
