"""Application factory: wires clients, quota and auth into one FastAPI app."""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, Request

from api.base import success_response
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware, request_id_of
from auth.api import create_auth_router
from auth.config import AuthConfig, IdentityProviderConfig
from auth.exceptions import IdentityProviderError
from auth.gateway import AuthGateway
from auth.security_logger import SecurityLogger
from auth.types import AuthChangeEvent
from clients.identity_client import IdentityProviderClient
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import get_database_url, get_identity_provider_config, get_valkey_url
from quota.api import create_quota_router
from quota.config import QuotaConfig
from quota.guest import GuestQuotaTracker, ValkeyDeviceStorage
from quota.manager import QuotaManager
from quota.store import AccountStore

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def create_app(
    auth_config: AuthConfig | None = None,
    quota_config: QuotaConfig | None = None,
    identity_config: IdentityProviderConfig | None = None,
    quota_manager: QuotaManager | None = None,
    valkey: ValkeyClient | None = None,
    security_logger: SecurityLogger | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Anything not passed in is built from Vault secrets. Tests pass fakes.
    """
    load_dotenv()
    configure_logging()

    auth_config = auth_config or AuthConfig.from_env()
    quota_config = quota_config or QuotaConfig()
    identity_config = identity_config or IdentityProviderConfig(**get_identity_provider_config())

    postgres = None
    if quota_manager is None or security_logger is None:
        postgres = PostgresClient(get_database_url())
        security_logger = security_logger or SecurityLogger(postgres)
        quota_manager = quota_manager or QuotaManager(
            AccountStore(postgres), quota_config, security_logger
        )
    owns_valkey = valkey is None
    valkey = valkey or ValkeyClient(get_valkey_url())
    http_client = http_client or httpx.AsyncClient()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await http_client.aclose()
        if postgres is not None:
            postgres.close()
        if owns_valkey:
            valkey.close()

    async def get_gateway(request: Request) -> AsyncIterator[AuthGateway]:
        provider = IdentityProviderClient(identity_config, http_client)
        token = _bearer_token(request)
        if token:
            try:
                await provider.set_session(token, event=AuthChangeEvent.INITIAL_SESSION)
            except IdentityProviderError as e:
                logger.info("Treating request as guest, bearer token rejected: %s", e)
        gateway = AuthGateway(provider, quota_manager, auth_config, security_logger)
        await gateway.start()
        try:
            yield gateway
        finally:
            gateway.close()

    def guest_tracker_for(device_id: str) -> GuestQuotaTracker:
        return GuestQuotaTracker(ValkeyDeviceStorage(valkey, device_id), quota_config)

    app = FastAPI(title="FresherHub credits", lifespan=lifespan)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)
    app.include_router(create_auth_router(get_gateway), prefix="/auth")
    app.include_router(
        create_quota_router(get_gateway, quota_manager, guest_tracker_for, quota_config),
        prefix="/credits",
    )

    @app.get("/health")
    async def health(request: Request):
        return success_response({"status": "ok"}, request_id_of(request))

    return app
