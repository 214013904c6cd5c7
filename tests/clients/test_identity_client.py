"""Tests for IdentityProviderClient - GoTrue-compatible REST calls."""

import json

import httpx
import pytest

from auth.errors import classify
from auth.exceptions import IdentityProviderError, NoActiveSessionError
from auth.types import AuthChangeEvent, AuthErrorKind
from conftest import TEST_USER_EMAIL, TEST_USER_ID, session_json, user_json

pytestmark = pytest.mark.asyncio


class TestTransport:
    async def test_sends_api_key_headers(self, provider, provider_stub):
        provider_stub.queue("recover", httpx.Response(200, json={}))

        await provider.reset_password_for_email(TEST_USER_EMAIL, redirect_to="https://a.io/reset")

        request = provider_stub.requests[0]
        assert str(request.url).startswith("https://idp.example.com/auth/v1/recover")
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer anon-key"
        assert json.loads(request.content) == {"email": TEST_USER_EMAIL}

    async def test_http_error_carries_status_and_message(self, provider, provider_stub):
        provider_stub.queue(
            "token",
            httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"}),
        )

        with pytest.raises(IdentityProviderError) as exc_info:
            await provider.sign_in_with_password(TEST_USER_EMAIL, "pw")

        assert exc_info.value.status == 400
        assert exc_info.value.message == "Invalid login credentials"

    async def test_error_without_body(self, provider, provider_stub):
        provider_stub.queue("token", httpx.Response(502))

        with pytest.raises(IdentityProviderError) as exc_info:
            await provider.sign_in_with_password(TEST_USER_EMAIL, "pw")

        assert exc_info.value.status == 502
        assert "502" in exc_info.value.message

    async def test_transport_failure_is_status_zero(self, provider, provider_stub):
        provider_stub.queue("token", httpx.ConnectTimeout("timed out"))

        with pytest.raises(IdentityProviderError) as exc_info:
            await provider.sign_in_with_password(TEST_USER_EMAIL, "pw")

        assert exc_info.value.status == 0
        assert "Network" in exc_info.value.message


class TestSignUp:
    async def test_returns_unconfirmed_user(self, provider, provider_stub):
        provider_stub.queue("signup", httpx.Response(200, json=user_json()))

        user = await provider.sign_up(TEST_USER_EMAIL, "pw")

        assert user.id == TEST_USER_ID
        assert await provider.get_session() is None

    async def test_autoconfirm_response_establishes_session(self, provider, provider_stub):
        provider_stub.queue("signup", httpx.Response(200, json=session_json()))

        user = await provider.sign_up(TEST_USER_EMAIL, "pw")

        assert user.id == TEST_USER_ID
        assert (await provider.get_session()).access_token == "access-token"

    async def test_response_without_user(self, provider, provider_stub):
        provider_stub.queue("signup", httpx.Response(200, json={}))

        with pytest.raises(IdentityProviderError) as exc_info:
            await provider.sign_up(TEST_USER_EMAIL, "pw")

        assert exc_info.value.status == 502
        assert classify(exc_info.value).kind == AuthErrorKind.UNKNOWN


class TestSessions:
    async def test_sign_in_announces_session(self, provider, provider_stub):
        changes = []
        provider.on_auth_state_change(changes.append)
        provider_stub.queue("token", httpx.Response(200, json=session_json()))

        session = await provider.sign_in_with_password(TEST_USER_EMAIL, "pw")

        assert session.expires_at is not None
        assert provider_stub.requests[0].url.params["grant_type"] == "password"
        assert [c.event for c in changes] == [AuthChangeEvent.SIGNED_IN]

    async def test_set_session_validates_token(self, provider, provider_stub):
        provider_stub.queue("user", httpx.Response(200, json=user_json()))

        session = await provider.set_session("at", "rt", event=AuthChangeEvent.PASSWORD_RECOVERY)

        assert session.user.id == TEST_USER_ID
        assert provider_stub.requests[0].headers["Authorization"] == "Bearer at"

    async def test_rejected_token_leaves_session_empty(self, provider, provider_stub):
        provider_stub.queue("user", httpx.Response(401, json={"msg": "invalid JWT"}))

        with pytest.raises(IdentityProviderError):
            await provider.set_session("bad")

        assert await provider.get_session() is None

    async def test_code_exchange_uses_pkce_grant(self, provider, provider_stub):
        provider_stub.queue("token", httpx.Response(200, json=session_json()))

        await provider.exchange_code_for_session("code-1", code_verifier="v")

        request = provider_stub.requests[0]
        assert request.url.params["grant_type"] == "pkce"
        assert json.loads(request.content) == {"auth_code": "code-1", "code_verifier": "v"}

    async def test_sign_out_clears_session_even_on_failure(self, provider, provider_stub):
        changes = []
        provider_stub.queue("token", httpx.Response(200, json=session_json()))
        provider_stub.queue("logout", httpx.Response(500, json={"msg": "oops"}))
        await provider.sign_in_with_password(TEST_USER_EMAIL, "pw")
        provider.on_auth_state_change(changes.append)

        with pytest.raises(IdentityProviderError):
            await provider.sign_out()

        assert await provider.get_session() is None
        assert [c.event for c in changes] == [AuthChangeEvent.SIGNED_OUT]

    async def test_sign_out_without_session_is_noop(self, provider, provider_stub):
        await provider.sign_out()

        assert provider_stub.requests == []


class TestUpdateUser:
    async def test_requires_session(self, provider):
        with pytest.raises(NoActiveSessionError):
            await provider.update_user(password="new-password")

    async def test_updates_and_announces(self, provider, provider_stub):
        changes = []
        provider_stub.queue("user", httpx.Response(200, json=user_json()))
        await provider.set_session("at")
        provider.on_auth_state_change(changes.append)

        user = await provider.update_user(password="new-password")

        assert user.email == TEST_USER_EMAIL
        assert json.loads(provider_stub.requests[-1].content) == {"password": "new-password"}
        assert [c.event for c in changes] == [AuthChangeEvent.USER_UPDATED]
