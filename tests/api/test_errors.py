"""Tests for the global exception handlers."""

import pytest
from fastapi import FastAPI
from pydantic import BaseModel
from starlette.testclient import TestClient

from api.base import ErrorCodes
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware


class Body(BaseModel):
    name: str


@pytest.fixture
def app():
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("database exploded")

    @app.post("/echo")
    async def echo(body: Body):
        return {"name": body.name}

    return app


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


class TestUnhandledErrors:
    def test_internal_error_envelope(self, client):
        response = client.get("/boom")

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == ErrorCodes.INTERNAL_ERROR
        assert body["error"]["message"] == "An internal error occurred"

    def test_exception_text_is_not_leaked(self, client):
        response = client.get("/boom")

        assert "database exploded" not in response.text

    def test_unhandled_error_is_logged(self, client, caplog):
        with caplog.at_level("ERROR", logger="api.errors"):
            client.get("/boom")

        assert any(r.exc_info for r in caplog.records)


class TestValidationErrors:
    def test_malformed_body_uses_envelope(self, client):
        response = client.post("/echo", json={})

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == ErrorCodes.VALIDATION_ERROR

