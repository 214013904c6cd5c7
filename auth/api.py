"""HTTP routes for authentication."""

from typing import Any, AsyncIterator, Callable

from fastapi import APIRouter, Depends, Query, Request

from api.base import ErrorCodes, error_json, status_for_kind, success_response
from api.middleware import request_id_of
from auth.gateway import AuthGateway
from auth.types import (
    AuthFailure,
    Credentials,
    PasswordResetRequest,
    PasswordUpdateRequest,
    ProviderSession,
    RecoveryStatus,
)


def _session_payload(session: ProviderSession) -> dict[str, Any]:
    return {
        "user_id": session.user.id,
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
        "expires_at": session.expires_at.isoformat() if session.expires_at else None,
    }


def _failure_response(request: Request, failure: AuthFailure):
    return error_json(
        status_for_kind(failure.kind),
        failure.kind.value,
        failure.message,
        request_id_of(request),
    )


def create_auth_router(get_gateway: Callable[..., AsyncIterator[AuthGateway]]) -> APIRouter:
    """Create auth router. ``get_gateway`` yields a per-request AuthGateway."""
    router = APIRouter(tags=["auth"])

    @router.post("/signup", status_code=201)
    async def sign_up(request: Request, body: Credentials, gateway: AuthGateway = Depends(get_gateway)):
        """Register. ``provisioned`` is false when the quota account will be created on first sign-in."""
        result = await gateway.sign_up(body.email, body.password)
        if isinstance(result, AuthFailure):
            return _failure_response(request, result)
        return success_response(
            {"message": result.message, **result.data.model_dump()},
            request_id_of(request),
        )

    @router.post("/signin")
    async def sign_in(request: Request, body: Credentials, gateway: AuthGateway = Depends(get_gateway)):
        result = await gateway.sign_in(body.email, body.password)
        if isinstance(result, AuthFailure):
            return _failure_response(request, result)
        return success_response(
            {"message": result.message, **_session_payload(result.data.session)},
            request_id_of(request),
        )

    @router.post("/signout")
    async def sign_out(request: Request, gateway: AuthGateway = Depends(get_gateway)):
        if not gateway.is_authenticated:
            return error_json(
                401, ErrorCodes.NOT_AUTHENTICATED, "Authentication required", request_id_of(request)
            )
        result = await gateway.sign_out()
        if isinstance(result, AuthFailure):
            return _failure_response(request, result)
        return success_response({"message": result.message}, request_id_of(request))

    @router.post("/password-reset")
    async def request_password_reset(
        request: Request, body: PasswordResetRequest, gateway: AuthGateway = Depends(get_gateway)
    ):
        result = await gateway.request_password_reset(body.email)
        if not result.success:
            return error_json(400, ErrorCodes.PASSWORD_FLOW_FAILED, result.message, request_id_of(request))
        return success_response({"message": result.message}, request_id_of(request))

    @router.post("/password")
    async def update_password(
        request: Request, body: PasswordUpdateRequest, gateway: AuthGateway = Depends(get_gateway)
    ):
        """Set a new password. Requires the bearer token from the recovery session."""
        result = await gateway.update_password(body.password)
        if not result.success:
            return error_json(400, ErrorCodes.PASSWORD_FLOW_FAILED, result.message, request_id_of(request))
        return success_response({"message": result.message}, request_id_of(request))

    @router.get("/recovery")
    async def init_recovery(
        request: Request,
        url: str = Query(..., description="Full URL the visitor landed on, fragment included"),
        code_verifier: str | None = Query(
            default=None, description="PKCE verifier kept by the browser for ?code= links"
        ),
        gateway: AuthGateway = Depends(get_gateway),
    ):
        """Interpret a recovery or confirmation link."""
        state = await gateway.init_recovery_from_context(url, code_verifier=code_verifier)
        if state.state == RecoveryStatus.ERROR:
            return error_json(
                status_for_kind(state.kind), state.kind.value, state.message, request_id_of(request)
            )
        data = state.model_dump(mode="json", exclude_none=True)
        if gateway.session is not None:
            data["session"] = _session_payload(gateway.session)
        return success_response(data, request_id_of(request))

    return router
