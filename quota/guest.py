"""Guest allowance: one non-renewing credit per device.

Backed by a single marker in device storage. Presence of the marker means
the credit has been spent. There is no expiry and no regeneration; the
visitor has to sign in for more.
"""

import logging
from typing import Protocol

from auth.session import AuthStateChange
from clients.valkey_client import ValkeyClient
from quota.config import QuotaConfig
from quota.types import GuestAllowance

logger = logging.getLogger(__name__)


class DeviceStorage(Protocol):
    """Synchronous key-value storage local to one device."""

    def get(self, key: str) -> str | None:
        ...

    def set_if_absent(self, key: str, value: str) -> bool:
        """Atomically write ``key`` unless present. True if this call wrote it."""
        ...


class ValkeyDeviceStorage:
    """Device storage kept in Valkey, namespaced by a device identifier."""

    KEY_PREFIX = "device:"

    def __init__(self, valkey: ValkeyClient, device_id: str):
        if not device_id:
            raise ValueError("device_id is required")
        self._valkey = valkey
        self._device_id = device_id

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{self._device_id}:{key}"

    def get(self, key: str) -> str | None:
        return self._valkey.get(self._key(key))

    def set_if_absent(self, key: str, value: str) -> bool:
        return self._valkey.set_if_absent(self._key(key), value)


class GuestQuotaTracker:
    """Answers whether this device still has its guest credit.

    The answer is cached and recomputed whenever the visitor becomes a guest
    (initial guest session or sign-out).
    """

    def __init__(self, storage: DeviceStorage, config: QuotaConfig):
        self._storage = storage
        self._config = config
        self._has_credit: bool | None = None

    def refresh(self) -> bool:
        used = self._storage.get(self._config.guest_marker_key) is not None
        self._has_credit = not used and self._config.guest_credits > 0
        return self._has_credit

    def has_credit(self) -> bool:
        if self._has_credit is None:
            return self.refresh()
        return self._has_credit

    def allowance(self) -> GuestAllowance:
        return GuestAllowance(used=not self.has_credit())

    def consume(self) -> bool:
        """Spend the guest credit. False if it was already gone.

        The marker write is a set-if-absent, so concurrent requests from one
        device cannot both spend the credit.
        """
        if not self.refresh():
            return False
        spent = self._storage.set_if_absent(self._config.guest_marker_key, "true")
        self._has_credit = False
        if spent:
            logger.info("Guest credit consumed")
        return spent

    def on_auth_change(self, change: AuthStateChange) -> None:
        if not change.is_authenticated:
            self.refresh()
