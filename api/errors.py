"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from api.base import ErrorCodes, error_json
from api.middleware import request_id_of

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Keep malformed bodies and unexpected failures inside the response envelope."""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_json(
            422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()), request_id_of(request)
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return error_json(
            500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred", request_id_of(request)
        )
