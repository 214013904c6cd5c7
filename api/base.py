"""Unified API response format and error handling."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field
from fastapi.responses import JSONResponse

from auth.types import AuthErrorKind
from utils.timezone import now_utc


class APIError(BaseModel):
    """Error details in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")


class APIMeta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Unique request identifier for tracing")


class APIResponse(BaseModel):
    """
    Unified response format for all API endpoints.

    Every endpoint returns this structure, making client parsing predictable.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def _meta(request_id: str | None) -> APIMeta:
    return APIMeta(timestamp=now_utc(), request_id=request_id or str(uuid4()))


def success_response(data: Any, request_id: str | None = None) -> APIResponse:
    """Create a success response."""
    return APIResponse(success=True, data=data, error=None, meta=_meta(request_id))


def error_response(code: str, message: str, request_id: str | None = None) -> APIResponse:
    """Create an error response."""
    return APIResponse(
        success=False,
        data=None,
        error=APIError(code=code, message=message),
        meta=_meta(request_id),
    )


def error_json(
    status_code: int, code: str, message: str, request_id: str | None = None
) -> JSONResponse:
    """Error envelope wrapped in a JSONResponse with the given status."""
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, request_id).model_dump(mode="json"),
    )


class ErrorCodes:
    """Standard error codes. Auth failures reuse their AuthErrorKind value."""

    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    GUEST_CREDIT_USED = "GUEST_CREDIT_USED"
    PASSWORD_FLOW_FAILED = "PASSWORD_FLOW_FAILED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


AUTH_ERROR_STATUS: dict[AuthErrorKind, int] = {
    AuthErrorKind.INVALID_EMAIL: 400,
    AuthErrorKind.WEAK_PASSWORD: 400,
    AuthErrorKind.INVALID_CREDENTIALS: 401,
    AuthErrorKind.EMAIL_NOT_CONFIRMED: 403,
    AuthErrorKind.EMAIL_ALREADY_REGISTERED: 409,
    AuthErrorKind.LINK_EXPIRED_OR_INVALID: 410,
    AuthErrorKind.RATE_LIMITED: 429,
    AuthErrorKind.NETWORK: 503,
    AuthErrorKind.UNKNOWN: 502,
}


def status_for_kind(kind: AuthErrorKind) -> int:
    return AUTH_ERROR_STATUS.get(kind, 500)
