"""Shared test fixtures.

The suite runs without Postgres, Valkey or Vault: the account store and
device storage are in-memory fakes, and the identity provider is a scripted
httpx.MockTransport backend.
"""

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

import httpx
import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from api.app import create_app
from auth.config import AuthConfig, IdentityProviderConfig
from auth.gateway import AuthGateway
from auth.retry import RetryPolicy
from auth.security_logger import SecurityLogger
from clients.identity_client import IdentityProviderClient
from quota.config import QuotaConfig
from quota.exceptions import AccountStoreError
from quota.manager import QuotaManager
from quota.types import QuotaAccount


# =============================================================================
# TEST IDENTITY CONSTANTS
# =============================================================================

TEST_USER_ID = "00000000-0000-0000-0000-000000000001"
TEST_USER_EMAIL = "testuser@test.local"

FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def user_json(user_id: str = TEST_USER_ID, email: str = TEST_USER_EMAIL) -> dict:
    return {"id": user_id, "email": email}


def session_json(user_id: str = TEST_USER_ID, email: str = TEST_USER_EMAIL) -> dict:
    return {
        "access_token": "access-token",
        "refresh_token": "refresh-token",
        "expires_in": 3600,
        "user": user_json(user_id, email),
    }


# =============================================================================
# FAKES
# =============================================================================


class FakeClock:
    """Settable clock. Call it to read the time."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeAccountStore:
    """In-memory AccountStore with the same compare-and-swap reset semantics."""

    def __init__(self):
        self.accounts: dict[str, QuotaAccount] = {}
        self.emails: dict[str, str] = {}
        self.fail_fetch = False
        self.fail_insert = False
        self.fail_reset = False
        self.reset_calls = 0
        # Simulates another device resetting between our read and write
        self.concurrent_reset: QuotaAccount | None = None

    def seed(self, identity_id: str, balance: int | None, reset_at: datetime | None) -> None:
        self.accounts[identity_id] = QuotaAccount(
            identity_id=identity_id, balance=balance, reset_at=reset_at
        )

    def insert_account(self, identity_id, email, credits, reset_at):
        if self.fail_insert:
            raise AccountStoreError("insert failed")
        if identity_id in self.accounts:
            raise AccountStoreError("duplicate key value violates unique constraint")
        self.emails[identity_id] = email
        self.seed(identity_id, credits, reset_at)
        return self.accounts[identity_id]

    def fetch_account(self, identity_id):
        if self.fail_fetch:
            raise AccountStoreError("connection refused")
        return self.accounts.get(identity_id)

    def reset_account(self, identity_id, expected_reset_at, credits, new_reset_at):
        self.reset_calls += 1
        if self.fail_reset:
            raise AccountStoreError("update failed")
        if self.concurrent_reset is not None:
            self.accounts[identity_id] = self.concurrent_reset
            self.concurrent_reset = None
        current = self.accounts.get(identity_id)
        if current is None or current.reset_at != expected_reset_at:
            return None
        self.seed(identity_id, credits, new_reset_at)
        return self.accounts[identity_id]

    def consume_credit(self, identity_id, now, default_credits):
        current = self.accounts.get(identity_id)
        if current is None or current.reset_at is None or current.reset_at <= now:
            return None
        balance = default_credits if current.balance is None else current.balance
        if balance <= 0:
            return None
        self.seed(identity_id, balance - 1, current.reset_at)
        return self.accounts[identity_id]


class FakeDeviceStorage:
    """Dict-backed device storage with an atomic set-if-absent."""

    def __init__(self):
        self.values: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key):
        return self.values.get(key)

    def set_if_absent(self, key, value):
        with self._lock:
            if key in self.values:
                return False
            self.values[key] = value
            return True


class ProviderStub:
    """Scripted identity provider backend for httpx.MockTransport.

    Responses are queued per endpoint ("signup", "token", "recover", "user",
    "logout"). The last queued item repeats. Exceptions are raised as-is.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._responses: dict[str, list] = {}

    def queue(self, endpoint: str, *responses) -> None:
        self._responses.setdefault(endpoint, []).extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        endpoint = request.url.path.split("/auth/v1/", 1)[-1]
        scripted = self._responses.get(endpoint)
        if not scripted:
            return httpx.Response(500, json={"msg": f"unscripted endpoint {endpoint}"})
        item = scripted.pop(0) if len(scripted) > 1 else scripted[0]
        if isinstance(item, Exception):
            raise item
        return item

    def calls_to(self, endpoint: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(f"/auth/v1/{endpoint}")]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FakeAccountStore:
    return FakeAccountStore()


@pytest.fixture
def device_storage() -> FakeDeviceStorage:
    return FakeDeviceStorage()


@pytest.fixture
def quota_config() -> QuotaConfig:
    return QuotaConfig()


@pytest.fixture
def quota_manager(store, quota_config, clock) -> QuotaManager:
    return QuotaManager(store, quota_config, clock=clock)


@pytest.fixture
def auth_config() -> AuthConfig:
    return AuthConfig(app_base_url="https://app.example.com/")


@pytest.fixture
def identity_config() -> IdentityProviderConfig:
    return IdentityProviderConfig(url="https://idp.example.com", anon_key="anon-key")


@pytest.fixture
def provider_stub() -> ProviderStub:
    return ProviderStub()


@pytest.fixture
def http_client(provider_stub) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(provider_stub.handler))


@pytest.fixture
def provider(identity_config, http_client) -> IdentityProviderClient:
    return IdentityProviderClient(identity_config, http_client)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def gateway(provider, quota_manager, auth_config, recording_sleep) -> AuthGateway:
    """AuthGateway over the scripted provider, with instant backoff."""
    retry = RetryPolicy(
        times=auth_config.retry_times,
        base_delay_seconds=auth_config.retry_base_delay_ms / 1000,
        sleep=recording_sleep,
    )
    gw = AuthGateway(provider, quota_manager, auth_config, retry_policy=retry)
    yield gw
    gw.close()


class FakeValkey:
    """Dict-backed stand-in for ValkeyClient's get/set_if_absent."""

    def __init__(self):
        self.values: dict[str, str] = {}

    def get(self, key):
        return self.values.get(key)

    def set_if_absent(self, key, value):
        if key in self.values:
            return False
        self.values[key] = value
        return True


@pytest.fixture
def valkey() -> FakeValkey:
    return FakeValkey()


@pytest.fixture
def security_logger():
    return Mock(spec=SecurityLogger)


@pytest.fixture
def client(auth_config, identity_config, quota_config, quota_manager, valkey, security_logger, http_client):
    """TestClient over the full app with every backend faked."""
    app = create_app(
        auth_config=auth_config,
        quota_config=quota_config,
        identity_config=identity_config,
        quota_manager=quota_manager,
        valkey=valkey,
        security_logger=security_logger,
        http_client=http_client,
    )
    return TestClient(app)
