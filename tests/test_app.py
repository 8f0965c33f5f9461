"""Application wiring: health, lifespan, error mapping and request IDs."""

from unittest.mock import AsyncMock, patch

import pytest
from conftest import BUCKET
from fastapi import HTTPException
from fastapi.testclient import TestClient
from minio.error import MinioException

from annotator.app.core.clock import ManualClock
from annotator.app.core.config import settings
from annotator.app.exceptions import (
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    PayloadTooLargeError,
    PermissionDeniedError,
    RateLimitExceededError,
)
from annotator.app.main import create_app
from annotator.app.middleware.rate_limit import RateLimiter
from annotator.app.services.storage import StorageError


class TestExceptions:
    @pytest.mark.parametrize(
        ("exc", "status", "error"),
        [
            (NotFoundError(), 404, "not_found"),
            (PermissionDeniedError(), 403, "permission_denied"),
            (InvalidArgumentError("bad", field="x"), 400, "invalid_argument"),
            (PayloadTooLargeError(), 413, "payload_too_large"),
            (InternalError(), 500, "internal_error"),
        ],
    )
    def test_status_and_error_codes(self, exc, status, error):
        assert exc.status_code == status
        assert exc.to_response()["error"] == error
        assert exc.headers() is None

    def test_rate_limit_exception_payload(self):
        exc = RateLimitExceededError(retry_after=42, reset_time=123_000, limit=10, category="upload")
        assert exc.status_code == 429
        assert exc.to_response() == {
            "error": "rate_limit_exceeded",
            "message": "Rate limit exceeded. Try again in 42 seconds.",
            "retryAfter": 42,
            "resetTime": 123_000,
        }
        assert exc.headers()["Retry-After"] == "42"
        assert exc.headers()["X-RateLimit-Limit"] == "10"


class TestHealth:
    def test_reports_database_and_limiter(self, client, rate_limiter):
        rate_limiter.check_limit("general", "1.2.3.4")
        with patch("annotator.app.main.verify_connection", AsyncMock(return_value=True)):
            resp = client.get("/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["components"]["database"] == {"status": "ok"}
        assert data["components"]["rate_limiter"]["tracked_clients"] == 1

    def test_degraded_when_database_down(self, client):
        with patch("annotator.app.main.verify_connection", AsyncMock(return_value=False)):
            resp = client.get("/health")

        assert resp.status_code == 200
        assert resp.json()["status"] == "degraded"


class TestLifespan:
    def test_starts_and_stops_sweep(self, storage, minio_client):
        limiter = RateLimiter(clock=ManualClock(0))
        app = create_app(rate_limiter=limiter, storage=storage)

        with patch("annotator.app.main.verify_connection", AsyncMock(return_value=True)), \
                patch("annotator.app.main.init_database", AsyncMock()) as init_db, \
                patch("annotator.app.main.close_async_engine", AsyncMock()) as close_engine:
            with TestClient(app):
                assert limiter.running is True
            init_db.assert_awaited_once()
            close_engine.assert_awaited_once()

        minio_client.bucket_exists.assert_called_once_with(bucket_name=BUCKET)
        assert limiter.running is False

    def test_refuses_to_start_without_database(self, storage):
        app = create_app(rate_limiter=RateLimiter(), storage=storage)

        with patch("annotator.app.main.verify_connection", AsyncMock(return_value=False)):
            with pytest.raises(RuntimeError, match="Cannot connect to database"):
                with TestClient(app):
                    pass

    def test_refuses_to_start_without_bucket(self, storage, minio_client):
        minio_client.bucket_exists.side_effect = MinioException("unreachable")
        app = create_app(rate_limiter=RateLimiter(), storage=storage)

        with patch("annotator.app.main.verify_connection", AsyncMock(return_value=True)), \
                patch("annotator.app.main.init_database", AsyncMock()):
            with pytest.raises(StorageError):
                with TestClient(app):
                    pass


class TestErrorHandling:
    def test_unhandled_exception_is_generic_500(self, app, monkeypatch):
        monkeypatch.setattr(settings, "debug", False)

        @app.get("/explode")
        async def explode():
            raise RuntimeError("secret detail")

        client = TestClient(app, raise_server_exceptions=False)
        resp = client.get("/explode", headers={"X-Request-ID": "req-123"})

        assert resp.status_code == 500
        body = resp.json()
        assert body["error"] == "internal_error"
        assert body["message"] == "Internal server error"
        assert body["request_id"] == "req-123"
        assert "secret detail" not in resp.text

    def test_debug_mode_includes_message(self, app, monkeypatch):
        monkeypatch.setattr(settings, "debug", True)

        @app.get("/explode")
        async def explode():
            raise RuntimeError("secret detail")

        client = TestClient(app, raise_server_exceptions=False)
        resp = client.get("/explode")

        assert resp.status_code == 500
        assert resp.json()["message"] == "secret detail"
        assert resp.json()["exception_type"] == "RuntimeError"

    def test_unknown_route_uses_error_body(self, client):
        resp = client.get("/no/such/route")

        assert resp.status_code == 404
        assert resp.json() == {"error": "not_found", "message": "Not Found"}

    def test_wrong_method_uses_error_body(self, client):
        resp = client.delete("/user/images")

        assert resp.status_code == 405
        assert resp.json()["error"] == "method_not_allowed"
        assert "GET" in resp.headers["Allow"]

    def test_http_exception_keeps_detail_and_headers(self, app):
        @app.get("/teapot")
        async def teapot():
            raise HTTPException(
                status_code=418, detail="short and stout", headers={"X-Tea": "earl-grey"}
            )

        client = TestClient(app, raise_server_exceptions=False)
        resp = client.get("/teapot")

        assert resp.status_code == 418
        assert resp.json() == {"error": "http_error", "message": "short and stout"}
        assert resp.headers["X-Tea"] == "earl-grey"


class TestRequestId:
    def test_generated_when_absent(self, client):
        resp = client.get("/user/images")
        assert resp.headers["X-Request-ID"]

    def test_propagated_when_present(self, client):
        resp = client.get("/user/images", headers={"X-Request-ID": "trace-me"})
        assert resp.headers["X-Request-ID"] == "trace-me"
