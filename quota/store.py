"""Account store: persistence of QuotaAccounts in the user_profiles table.

Keyed by user_id (the identity provider's user id). Every psycopg2 error is
re-raised as AccountStoreError so callers handle one exception type.
"""

import logging
from datetime import datetime

import psycopg2

from clients.postgres_client import PostgresClient
from quota.exceptions import AccountStoreError
from quota.types import QuotaAccount
from utils.timezone import coerce_utc

logger = logging.getLogger(__name__)

_COLUMNS = "user_id, credits, credits_reset_at"


def _to_account(row: dict) -> QuotaAccount:
    return QuotaAccount(
        identity_id=str(row["user_id"]),
        balance=row["credits"],
        reset_at=coerce_utc(row["credits_reset_at"]),
    )


class AccountStore:
    """Database operations for credit balances."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def insert_account(
        self, identity_id: str, email: str, credits: int, reset_at: datetime
    ) -> QuotaAccount:
        """Create the profile row written at sign-up."""
        try:
            row = self._db.execute_single(
                f"""INSERT INTO user_profiles (user_id, email, credits, credits_reset_at)
                    VALUES (%s, lower(%s), %s, %s)
                    RETURNING {_COLUMNS}""",
                (identity_id, email, credits, reset_at),
            )
        except psycopg2.Error as e:
            raise AccountStoreError(f"Could not create quota account: {e}") from e
        return _to_account(row)

    def fetch_account(self, identity_id: str) -> QuotaAccount | None:
        try:
            row = self._db.execute_single(
                f"SELECT {_COLUMNS} FROM user_profiles WHERE user_id = %s",
                (identity_id,),
            )
        except psycopg2.Error as e:
            raise AccountStoreError(f"Could not read quota account: {e}") from e
        return None if row is None else _to_account(row)

    def reset_account(
        self,
        identity_id: str,
        expected_reset_at: datetime | None,
        credits: int,
        new_reset_at: datetime,
    ) -> QuotaAccount | None:
        """Restore the balance, guarded by the reset time that was read.

        Returns None when another writer reset the account first, so two
        concurrent readers can never both perform the reset.
        """
        try:
            row = self._db.execute_single(
                f"""UPDATE user_profiles
                    SET credits = %s, credits_reset_at = %s
                    WHERE user_id = %s
                      AND credits_reset_at IS NOT DISTINCT FROM %s
                    RETURNING {_COLUMNS}""",
                (credits, new_reset_at, identity_id, expected_reset_at),
            )
        except psycopg2.Error as e:
            raise AccountStoreError(f"Could not reset quota account: {e}") from e
        return None if row is None else _to_account(row)

    def consume_credit(
        self, identity_id: str, now: datetime, default_credits: int
    ) -> QuotaAccount | None:
        """Take one credit. None if the balance is empty or the reset is due.

        A NULL balance counts as ``default_credits``, matching how reads see it.
        """
        try:
            row = self._db.execute_single(
                f"""UPDATE user_profiles
                    SET credits = COALESCE(credits, %s) - 1
                    WHERE user_id = %s
                      AND COALESCE(credits, %s) > 0
                      AND credits_reset_at > %s
                    RETURNING {_COLUMNS}""",
                (default_credits, identity_id, default_credits, now),
            )
        except psycopg2.Error as e:
            raise AccountStoreError(f"Could not consume credit: {e}") from e
        return None if row is None else _to_account(row)
