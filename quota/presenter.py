"""Credit banner view model and reset countdown.

derive() is a pure function of (authenticated?, balance or guest credit,
now). CreditPresenter wires it to the live auth state: it consults the
QuotaManager for signed-in identities and the GuestQuotaTracker otherwise,
and keeps the countdown text fresh with a periodic CountdownTicker.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable

from auth.session import AuthStateChange, Subscription
from quota.config import QuotaConfig
from quota.guest import GuestQuotaTracker
from quota.manager import QuotaManager
from quota.types import Balance, CreditDisplay
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

RESETTING_TEXT = "Resetting..."


def format_countdown(reset_at: datetime, now: datetime) -> str:
    """Whole hours and minutes until reset, rounded down."""
    remaining = reset_at - now
    if remaining <= timedelta(0):
        return RESETTING_TEXT
    hours, rest = divmod(int(remaining.total_seconds()), 3600)
    return f"{hours}h {rest // 60}m"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def derive(
    is_authenticated: bool,
    source: Balance | bool,
    config: QuotaConfig,
    now: datetime,
) -> CreditDisplay:
    """Build the display model from a balance (signed in) or guest credit flag."""
    if is_authenticated:
        balance: Balance = source
        countdown = format_countdown(balance.reset_at, now) if balance.reset_at else None
        return CreditDisplay(
            label=f"{_plural(balance.balance, 'AI Credit')} Remaining",
            subtext=f"Resets in {countdown}" if countdown else "Reset time unavailable",
            is_low=balance.balance <= config.low_balance_threshold,
            countdown_text=countdown,
            is_authenticated=True,
        )

    if source:
        return CreditDisplay(
            label=f"{_plural(config.guest_credits, 'Free Credit')} Available",
            subtext=(
                f"Sign in to get {config.max_credits} credits that reset every "
                f"{_plural(config.reset_interval_hours, 'hour')}"
            ),
        )
    return CreditDisplay(
        label="No Credits Remaining",
        subtext=f"Sign in to get {config.max_credits} AI credits",
        is_low=True,
        prompt_sign_in=True,
    )


class CountdownTicker:
    """Recomputes the countdown text on a fixed interval.

    stop() is the only teardown needed; a stopped ticker never calls back.
    """

    def __init__(
        self,
        interval_seconds: float,
        on_tick: Callable[[str], None],
        clock: Callable[[], datetime] = now_utc,
    ):
        self._interval = interval_seconds
        self._on_tick = on_tick
        self._clock = clock
        self._reset_at: datetime | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def reset_at(self) -> datetime | None:
        return self._reset_at

    def update(self, reset_at: datetime | None) -> None:
        """Follow a new reset time: recompute now and restart the interval."""
        if reset_at == self._reset_at and (reset_at is None or self.running):
            return
        self.stop()
        self._reset_at = reset_at
        if reset_at is None:
            return
        self._tick()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def _tick(self) -> None:
        if self._reset_at is not None:
            self._on_tick(format_countdown(self._reset_at, self._clock()))

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self._tick()

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None


class CreditPresenter:
    """Live credit banner for one visitor."""

    def __init__(
        self,
        gateway,
        quota_manager: QuotaManager,
        guest_tracker: GuestQuotaTracker | None,
        config: QuotaConfig,
        on_sign_in_required: Callable[[], None] | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._gateway = gateway
        self._quota = quota_manager
        self._guest = guest_tracker
        self._config = config
        self._on_sign_in_required = on_sign_in_required
        self._clock = clock
        self._display = self.loading_display()
        self._subscription: Subscription | None = None
        self._ticker: CountdownTicker | None = None
        self._closed = False

    @staticmethod
    def loading_display() -> CreditDisplay:
        return CreditDisplay(label="Loading credits", subtext="", loading=True)

    @property
    def display(self) -> CreditDisplay:
        return self._display

    def refresh(self) -> CreditDisplay:
        """Re-read the active quota source and rebuild the display."""
        if self._closed:
            return self._display

        was_prompting = self._display.prompt_sign_in
        if self._gateway.is_authenticated:
            source = self._quota.get_balance(self._gateway.identity_id)
            reset_at = source.reset_at
        else:
            source = self._guest.has_credit() if self._guest is not None else False
            reset_at = None

        self._display = derive(self._gateway.is_authenticated, source, self._config, self._clock())
        if self._ticker is not None:
            self._ticker.update(reset_at)

        if self._display.prompt_sign_in and not was_prompting and self._on_sign_in_required:
            self._on_sign_in_required()
        return self._display

    def _on_auth_change(self, change: AuthStateChange) -> None:
        if not change.is_authenticated and self._guest is not None:
            self._guest.refresh()
        self.refresh()

    def _on_tick(self, text: str) -> None:
        if self._closed or not self._display.is_authenticated:
            return
        self._display = self._display.model_copy(
            update={"countdown_text": text, "subtext": f"Resets in {text}"}
        )

    def start(self) -> CreditDisplay:
        """Subscribe to auth changes and start the countdown. Needs a running loop."""
        self._ticker = CountdownTicker(
            self._config.countdown_tick_seconds, self._on_tick, clock=self._clock
        )
        self._subscription = self._gateway.subscribe(self._on_auth_change)
        return self.refresh()

    def close(self) -> None:
        """Stop the countdown and drop the subscription. Later refreshes are no-ops."""
        self._closed = True
        if self._ticker is not None:
            self._ticker.stop()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
