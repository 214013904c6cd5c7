"""Security event logging for the auth audit trail.

Append-only log to the security_events table.
"""

import logging
from enum import Enum
from typing import Any

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SecurityEvent(Enum):
    """Auth security event types."""

    SIGN_UP_SUCCEEDED = "sign_up_succeeded"
    SIGN_UP_FAILED = "sign_up_failed"
    SIGN_IN_SUCCEEDED = "sign_in_succeeded"
    SIGN_IN_FAILED = "sign_in_failed"
    SIGNED_OUT = "signed_out"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET_FAILED = "password_reset_failed"
    PASSWORD_UPDATED = "password_updated"
    PASSWORD_UPDATE_FAILED = "password_update_failed"
    QUOTA_PROVISION_FAILED = "quota_provision_failed"
    QUOTA_RESET = "quota_reset"


class SecurityLogger:
    """Append-only security event logger."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        user_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log security event to database."""
        self._db.execute(
            """INSERT INTO security_events
               (event_type, email, user_id, details, created_at)
               VALUES (%s, %s, %s, %s, %s)
               RETURNING id""",
            (
                event.value,
                email.lower() if email else None,
                user_id,
                Json(details) if details else None,
                now_utc(),
            ),
        )

    def record(self, event: SecurityEvent, **fields: Any) -> None:
        """Log like log(), but an audit write failure never reaches the caller."""
        try:
            self.log(event, **fields)
        except Exception:
            logger.exception("Failed to record security event %s", event.value)
