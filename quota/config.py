"""Credit quota configuration."""

from datetime import timedelta

from pydantic import BaseModel, Field


class QuotaConfig(BaseModel):
    """
    Credit quota configuration.

    Authenticated identities get ``max_credits`` that are restored in full
    ``reset_interval_hours`` after the last reset. Guests get a single credit
    per device that never regenerates.
    """

    max_credits: int = Field(
        default=5,
        description="Balance restored at every reset",
        ge=1,
        le=100,
    )
    reset_interval_hours: int = Field(
        default=24,
        description="Time from one reset to the next",
        ge=1,
        le=720,
    )
    guest_credits: int = Field(
        default=1,
        description="Credits available to a device before sign-in",
        ge=0,
        le=1,
    )
    low_balance_threshold: int = Field(
        default=1,
        description="Balances at or below this are flagged as low",
        ge=0,
    )
    countdown_tick_seconds: int = Field(
        default=60,
        description="How often the reset countdown text is recomputed",
        ge=1,
        le=3600,
    )
    guest_marker_key: str = Field(
        default="fresherhub_guest_used",
        description="Device storage key whose presence means the guest credit is spent",
    )

    @property
    def reset_interval(self) -> timedelta:
        return timedelta(hours=self.reset_interval_hours)
