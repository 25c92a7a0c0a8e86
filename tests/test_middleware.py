"""Middleware tests for security headers and request ID."""

from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient
from structlog.contextvars import get_contextvars

from caption_service.middleware import RequestIdMiddleware


class TestSecurityHeadersMiddleware:
    """Tests for SecurityHeadersMiddleware."""

    def test_security_headers_present(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "Content-Security-Policy" in response.headers

    def test_csp_allows_swagger_ui(self, client):
        response = client.get("/docs")
        csp = response.headers.get("Content-Security-Policy", "")
        assert "'unsafe-inline'" in csp
        assert "https://cdn.jsdelivr.net" in csp

    def test_csp_restricts_api_paths(self, client):
        response = client.get("/health")
        csp = response.headers.get("Content-Security-Policy", "")
        assert "default-src 'none'" in csp
        assert "unsafe-inline" not in csp

    def test_no_hsts_over_http(self, client):
        response = client.get("/")
        assert "Strict-Transport-Security" not in response.headers

    def test_headers_on_error_responses(self, client):
        response = client.get("/api/captions", params={"video": "not a video"})

        assert response.status_code == 400
        assert response.headers["X-Frame-Options"] == "DENY"


class TestRequestIdMiddleware:
    """Tests for RequestIdMiddleware."""

    def test_request_id_header_present(self, client):
        response = client.get("/")

        assert response.status_code == 200
        # UUID format: xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx
        assert len(response.headers["X-Request-ID"]) == 36

    def test_request_id_from_header(self, client):
        custom_id = "custom-request-id-12345"
        response = client.get("/", headers={"X-Request-ID": custom_id})

        assert response.headers["X-Request-ID"] == custom_id

    def test_request_id_bound_to_log_context(self):
        async def context(request):
            return JSONResponse(get_contextvars())

        app = Starlette(routes=[Route("/ctx", context)])
        app.add_middleware(RequestIdMiddleware)

        response = TestClient(app).get("/ctx", headers={"X-Request-ID": "abc-123"})

        assert response.json() == {"request_id": "abc-123", "path": "/ctx"}

    def test_request_ids_differ(self, client):
        first = client.get("/health").headers["X-Request-ID"]
        second = client.get("/health").headers["X-Request-ID"]

        assert first != second
