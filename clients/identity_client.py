"""
Identity provider client (GoTrue-compatible REST API, e.g. Supabase Auth).

Async httpx wrapper. Holds the current session for one visitor and announces
every change through on_auth_state_change(). Every failure is raised as
IdentityProviderError: HTTP errors carry the response status, transport
errors carry status 0 and a message mentioning "network".
"""

import logging
from datetime import timedelta
from typing import Any

import httpx

from auth.config import IdentityProviderConfig
from auth.exceptions import IdentityProviderError, NoActiveSessionError
from auth.session import AuthListener, AuthStateEmitter, Subscription
from auth.types import AuthChangeEvent, ProviderSession, ProviderUser
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def _error_message(payload: Any, fallback: str) -> str:
    """Pull the human-readable message out of a provider error body."""
    if isinstance(payload, dict):
        for key in ("msg", "error_description", "message", "error"):
            value = payload.get(key)
            if value:
                return str(value)
    return fallback


def _parse_user(data: dict) -> ProviderUser:
    return ProviderUser(
        id=str(data["id"]),
        email=data.get("email"),
        email_confirmed_at=data.get("email_confirmed_at") or data.get("confirmed_at"),
    )


def _parse_session(data: dict) -> ProviderSession:
    expires_at = None
    if data.get("expires_at"):
        expires_at = data["expires_at"]
    elif data.get("expires_in"):
        expires_at = now_utc() + timedelta(seconds=int(data["expires_in"]))
    return ProviderSession(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_at=expires_at,
        user=_parse_user(data["user"]),
    )


class IdentityProviderClient:
    """
    Talks to the identity provider for one visitor.

    Usage:
        async with httpx.AsyncClient() as http:
            provider = IdentityProviderClient(config, http)
            session = await provider.sign_in_with_password(email, password)
    """

    def __init__(
        self,
        config: IdentityProviderConfig,
        http_client: httpx.AsyncClient,
        session: ProviderSession | None = None,
    ):
        self._config = config
        self._http = http_client
        self._session = session
        self._emitter = AuthStateEmitter()

    # -- session state ---------------------------------------------------

    async def get_session(self) -> ProviderSession | None:
        return self._session

    def on_auth_state_change(self, callback: AuthListener) -> Subscription:
        return self._emitter.subscribe(callback)

    def _set_session(self, session: ProviderSession | None, event: AuthChangeEvent) -> None:
        self._session = session
        self._emitter.emit(event, session)

    # -- transport -------------------------------------------------------

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        return {
            "apikey": self._config.anon_key,
            "Authorization": f"Bearer {access_token or self._config.anon_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
        access_token: str | None = None,
    ) -> Any:
        url = f"{self._config.url}/auth/v1/{path.lstrip('/')}"
        try:
            response = await self._http.request(
                method,
                url,
                json=json,
                params=params,
                headers=self._headers(access_token),
                timeout=self._config.timeout_seconds,
            )
        except httpx.RequestError as e:
            logger.warning("Identity provider unreachable (%s %s): %s", method, path, e)
            raise IdentityProviderError(f"Network request failed: {e}", status=0) from e

        try:
            payload = response.json() if response.content else None
        except ValueError:
            payload = None

        if response.status_code >= 400:
            message = _error_message(payload, f"Identity provider returned {response.status_code}")
            logger.info(
                "Identity provider rejected %s %s: status=%d message=%s",
                method,
                path,
                response.status_code,
                message,
            )
            raise IdentityProviderError(
                message,
                status=response.status_code,
                payload=payload if isinstance(payload, dict) else None,
            )

        return payload

    # -- operations ------------------------------------------------------

    async def sign_up(self, email: str, password: str, redirect_to: str | None = None) -> ProviderUser:
        """Register a new identity. The returned user awaits email confirmation."""
        params = {"redirect_to": redirect_to} if redirect_to else None
        data = await self._request(
            "POST", "signup", json={"email": email, "password": password}, params=params
        )
        # Autoconfirm projects answer with a session instead of a bare user
        if data and "access_token" in data:
            session = _parse_session(data)
            self._set_session(session, AuthChangeEvent.SIGNED_IN)
            return session.user
        user_data = data.get("user", data) if data else None
        if not user_data or "id" not in user_data:
            raise IdentityProviderError(
                "Sign-up response did not include a user", status=502, payload=data or None
            )
        return _parse_user(user_data)

    async def sign_in_with_password(self, email: str, password: str) -> ProviderSession:
        data = await self._request(
            "POST",
            "token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = _parse_session(data)
        self._set_session(session, AuthChangeEvent.SIGNED_IN)
        return session

    async def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        """Ask the provider to email a recovery link pointing at ``redirect_to``."""
        await self._request(
            "POST", "recover", json={"email": email}, params={"redirect_to": redirect_to}
        )

    async def update_user(self, password: str) -> ProviderUser:
        """Change the password of the signed-in (or recovering) identity."""
        if self._session is None:
            raise NoActiveSessionError("No active session; follow the reset link again")
        data = await self._request(
            "PUT", "user", json={"password": password}, access_token=self._session.access_token
        )
        user = _parse_user(data)
        self._set_session(
            self._session.model_copy(update={"user": user}), AuthChangeEvent.USER_UPDATED
        )
        return user

    async def get_user(self, access_token: str) -> ProviderUser:
        data = await self._request("GET", "user", access_token=access_token)
        return _parse_user(data)

    async def set_session(
        self,
        access_token: str,
        refresh_token: str | None = None,
        event: AuthChangeEvent = AuthChangeEvent.SIGNED_IN,
    ) -> ProviderSession:
        """Adopt tokens obtained elsewhere (recovery link, bearer header)."""
        user = await self.get_user(access_token)
        session = ProviderSession(access_token=access_token, refresh_token=refresh_token, user=user)
        self._set_session(session, event)
        return session

    async def exchange_code_for_session(
        self,
        auth_code: str,
        code_verifier: str | None = None,
        event: AuthChangeEvent = AuthChangeEvent.SIGNED_IN,
    ) -> ProviderSession:
        """Trade a PKCE authorization code from an emailed link for a session."""
        body = {"auth_code": auth_code}
        if code_verifier:
            body["code_verifier"] = code_verifier
        data = await self._request("POST", "token", params={"grant_type": "pkce"}, json=body)
        session = _parse_session(data)
        self._set_session(session, event)
        return session

    async def sign_out(self) -> None:
        """Revoke the current session. Safe to call when signed out."""
        if self._session is None:
            return
        try:
            await self._request("POST", "logout", access_token=self._session.access_token)
        finally:
            self._set_session(None, AuthChangeEvent.SIGNED_OUT)
