"""Pydantic models for the credit quota domain."""

from datetime import datetime

from pydantic import BaseModel, Field


class QuotaAccount(BaseModel):
    """Stored credit balance of one authenticated identity."""

    identity_id: str
    balance: int | None = Field(default=None, description="None on partially initialized rows")
    reset_at: datetime | None = None


class Balance(BaseModel):
    """
    What a caller observes after a balance read.

    ``degraded`` is set when the store could not supply an authoritative
    value and the conservative full-balance fallback was returned instead.
    """

    balance: int = Field(..., ge=0)
    reset_at: datetime | None = None
    degraded: bool = False


class GuestAllowance(BaseModel):
    """Device-local guest credit state."""

    used: bool

    @property
    def remaining(self) -> int:
        return 0 if self.used else 1


class CreditDisplay(BaseModel):
    """View model for the credit banner."""

    label: str
    subtext: str
    is_low: bool = False
    countdown_text: str | None = None
    is_authenticated: bool = False
    prompt_sign_in: bool = False
    loading: bool = False
