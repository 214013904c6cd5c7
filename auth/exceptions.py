"""Typed exceptions for auth failures."""


class AuthError(Exception):
    """Base class for authentication errors."""


class IdentityProviderError(AuthError):
    """
    The identity provider rejected a call or could not be reached.

    ``status`` is the HTTP status of the provider response, 0 for transport
    failures, or None when the failure carries no status at all.
    """

    def __init__(self, message: str, status: int | None = None, payload: dict | None = None):
        self.message = message
        self.status = status
        self.payload = payload
        super().__init__(message)


class NoActiveSessionError(AuthError):
    """Operation needs a provider session and none is established."""
