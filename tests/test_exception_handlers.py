"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.errors import (
    AppError,
    RateLimitExceeded,
    RateLimitStoreError,
    ValidationAppError,
)
from app.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation")
        async def test_endpoint():
            raise ValidationAppError(
                code="rate_limit_invalid_max",
                message="Rate limit max must be a positive integer",
                details={"hint": "got 0"},
            )

        response = client.get("/test-validation")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "rate_limit_invalid_max"
        assert error["details"] == {"hint": "got 0"}
        assert "request_id" in error

    def test_store_error_returns_503(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-store")
        async def test_endpoint():
            raise RateLimitStoreError(
                code="rate_limit_store_unavailable",
                message="Rate limit store is unavailable",
            )

        response = client.get("/test-store")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "rate_limit_store_unavailable"
        assert "details" not in response.json()["error"]


class TestRateLimitExceededHandler:
    def test_rejection_is_rendered_verbatim(self, client: TestClient, app_with_handlers: FastAPI):
        body = {"success": False, "error": "Too Many Requests", "retryAfter": 12}

        @app_with_handlers.get("/test-429")
        async def test_endpoint():
            raise RateLimitExceeded(status_code=429, body=body, headers={"Retry-After": "12"})

        response = client.get("/test-429")

        assert response.status_code == 429
        assert response.json() == body
        assert response.headers["Retry-After"] == "12"


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_general_exception_handler_logic(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = RuntimeError("Unexpected error: redis connection pool exhausted")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "redis" not in data["error"]["message"]
        assert "request_id" in data["error"]

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        response = asyncio.run(general_exception_handler(request, ValueError("details")))

        response_text = bytes(response.body).decode()
        assert "Traceback" not in response_text
        assert "ValueError" not in response_text


def test_setup_registers_all_handlers(app_with_handlers: FastAPI):
    assert RateLimitExceeded in app_with_handlers.exception_handlers
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers
