"""HTTP routes for credit balances."""

import logging
from typing import AsyncIterator, Callable

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from api.base import ErrorCodes, error_json, success_response
from api.middleware import request_id_of
from auth.gateway import AuthGateway
from quota.config import QuotaConfig
from quota.exceptions import AccountStoreError, InsufficientCreditsError
from quota.guest import GuestQuotaTracker
from quota.manager import QuotaManager
from quota.presenter import CreditPresenter

logger = logging.getLogger(__name__)

DEVICE_ID_HEADER = "X-Device-Id"


def create_quota_router(
    get_gateway: Callable[..., AsyncIterator[AuthGateway]],
    quota_manager: QuotaManager,
    guest_tracker_for: Callable[[str], GuestQuotaTracker],
    config: QuotaConfig,
) -> APIRouter:
    """Create credits router.

    Signed-in callers are identified by their bearer token, guests by the
    X-Device-Id header.
    """
    router = APIRouter(tags=["credits"])

    def _guest_tracker(request: Request) -> GuestQuotaTracker | None:
        device_id = request.headers.get(DEVICE_ID_HEADER)
        return guest_tracker_for(device_id) if device_id else None

    def _missing_device(request: Request):
        return error_json(
            400,
            ErrorCodes.VALIDATION_ERROR,
            f"{DEVICE_ID_HEADER} header is required for guests",
            request_id_of(request),
        )

    @router.get("")
    async def get_credits(request: Request, gateway: AuthGateway = Depends(get_gateway)):
        """Credit banner for the caller, running the reset check for signed-in identities."""
        guest = None
        if not gateway.is_authenticated:
            guest = _guest_tracker(request)
            if guest is None:
                return _missing_device(request)

        presenter = CreditPresenter(gateway, quota_manager, guest, config)
        display = await run_in_threadpool(presenter.refresh)
        return success_response(display.model_dump(mode="json"), request_id_of(request))

    @router.post("/consume")
    async def consume_credit(request: Request, gateway: AuthGateway = Depends(get_gateway)):
        """Spend one credit before running an AI feature."""
        if gateway.is_authenticated:
            try:
                balance = await run_in_threadpool(quota_manager.consume, gateway.identity_id)
            except InsufficientCreditsError as e:
                logger.info("Credit refused: %s", e)
                return error_json(
                    403,
                    ErrorCodes.INSUFFICIENT_CREDITS,
                    "No credits remaining until the next reset",
                    request_id_of(request),
                )
            except AccountStoreError:
                logger.exception("Credit consumption failed for %s", gateway.identity_id)
                return error_json(
                    503,
                    ErrorCodes.SERVICE_UNAVAILABLE,
                    "Credits are temporarily unavailable",
                    request_id_of(request),
                )
            return success_response(balance.model_dump(mode="json"), request_id_of(request))

        guest = _guest_tracker(request)
        if guest is None:
            return _missing_device(request)
        if not await run_in_threadpool(guest.consume):
            return error_json(
                403,
                ErrorCodes.GUEST_CREDIT_USED,
                f"Sign in to get {config.max_credits} AI credits",
                request_id_of(request),
            )
        return success_response(
            {"remaining": guest.allowance().remaining}, request_id_of(request)
        )

    return router
