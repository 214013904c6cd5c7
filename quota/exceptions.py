"""Typed exceptions for quota failures."""


class QuotaError(Exception):
    """Base class for quota errors."""


class AccountStoreError(QuotaError):
    """The account store could not be read or written."""


class InsufficientCreditsError(QuotaError):
    """No credits left until the next reset."""

    def __init__(self, identity_id: str):
        self.identity_id = identity_id
        super().__init__(f"No credits remaining for {identity_id}")
