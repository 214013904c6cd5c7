"""Credit balance lifecycle for authenticated identities.

Every read runs the reset check first: an account whose reset time has
passed is restored to the full balance, with the next reset one interval
after the read, and the new state is written before anything is returned.
Callers never observe an expired account.

Store failures on the read path degrade to a full balance with no reset
time instead of failing the caller.
"""

import logging
from datetime import datetime
from typing import Callable

from auth.security_logger import SecurityEvent, SecurityLogger
from quota.config import QuotaConfig
from quota.exceptions import AccountStoreError, InsufficientCreditsError
from quota.store import AccountStore
from quota.types import Balance, QuotaAccount
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class QuotaManager:
    """Owns balance and reset-time invariants of QuotaAccounts."""

    def __init__(
        self,
        store: AccountStore,
        config: QuotaConfig,
        security_logger: SecurityLogger | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._store = store
        self._config = config
        self._security_logger = security_logger
        self._clock = clock

    def provision(self, identity_id: str, email: str) -> QuotaAccount:
        """Create the initial account: full balance, first reset one interval out.

        Raises:
            AccountStoreError: If the account could not be written.
        """
        reset_at = self._clock() + self._config.reset_interval
        account = self._store.insert_account(
            identity_id, email, self._config.max_credits, reset_at
        )
        logger.info("Provisioned quota account for %s (reset at %s)", identity_id, reset_at)
        return account

    def ensure_account(self, identity_id: str, email: str) -> QuotaAccount:
        """Return the stored account, creating it if sign-up never did."""
        account = self._store.fetch_account(identity_id)
        if account is not None:
            return account
        logger.info("Creating missing quota account for %s", identity_id)
        return self.provision(identity_id, email)

    def is_due(self, account: QuotaAccount, now: datetime) -> bool:
        # A missing reset time counts as long expired
        return account.reset_at is None or now >= account.reset_at

    def _fallback(self) -> Balance:
        return Balance(balance=self._config.max_credits, reset_at=None, degraded=True)

    def _observed(self, account: QuotaAccount) -> Balance:
        balance = self._config.max_credits if account.balance is None else account.balance
        balance = max(0, min(balance, self._config.max_credits))
        return Balance(balance=balance, reset_at=account.reset_at)

    def get_balance(self, identity_id: str) -> Balance:
        """Read the balance, resetting it first when the reset time has passed."""
        now = self._clock()
        try:
            account = self._store.fetch_account(identity_id)
        except AccountStoreError:
            logger.exception("Quota read failed for %s; serving full-balance fallback", identity_id)
            return self._fallback()

        if account is None:
            logger.warning("No quota account for %s; serving full-balance fallback", identity_id)
            return self._fallback()

        if self.is_due(account, now):
            return self._reset(account, now)
        return self._observed(account)

    def _reset(self, account: QuotaAccount, now: datetime) -> Balance:
        new_reset_at = now + self._config.reset_interval
        try:
            updated = self._store.reset_account(
                account.identity_id,
                account.reset_at,
                self._config.max_credits,
                new_reset_at,
            )
            if updated is None:
                # Another reader reset it between our read and write
                logger.info("Quota reset for %s already done elsewhere", account.identity_id)
                winner = self._store.fetch_account(account.identity_id)
                if winner is None or self.is_due(winner, now):
                    return self._fallback()
                return self._observed(winner)
        except AccountStoreError:
            logger.exception(
                "Quota reset failed for %s; serving full-balance fallback", account.identity_id
            )
            return self._fallback()

        logger.info("Quota reset for %s, next reset at %s", account.identity_id, new_reset_at)
        if self._security_logger is not None:
            previous = account.reset_at.isoformat() if account.reset_at else None
            self._security_logger.record(
                SecurityEvent.QUOTA_RESET,
                user_id=account.identity_id,
                details={"previous_reset_at": previous},
            )
        return self._observed(updated)

    def consume(self, identity_id: str) -> Balance:
        """Spend one credit and return the balance left.

        Raises:
            InsufficientCreditsError: If the balance is empty.
            AccountStoreError: If the store is unavailable. Credits are never
                granted on a fallback balance.
        """
        current = self.get_balance(identity_id)
        if current.degraded:
            raise AccountStoreError(f"Quota store unavailable for {identity_id}")
        if current.balance <= 0:
            raise InsufficientCreditsError(identity_id)

        account = self._store.consume_credit(
            identity_id, self._clock(), self._config.max_credits
        )
        if account is None:
            raise InsufficientCreditsError(identity_id)
        return self._observed(account)
