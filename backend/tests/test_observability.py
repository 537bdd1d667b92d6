"""Tests for observability features: metrics, health checks, and request tracing."""

from __future__ import annotations

import logging

import pytest
from backend.matrix_service.health import health_checker
from backend.matrix_service.logging_config import add_request_id
from backend.matrix_service.metrics import normalize_endpoint
from backend.matrix_service.router import osrm_breaker
from backend.matrix_service.settings import SERVICE_NAME, settings
from backend.matrix_service.utils import RequestIDLogFilter, get_request_id, request_id_ctx
from prometheus_client import REGISTRY

THREE_POINTS = {"point": ["48.0,11.0", "48.1,11.1", "48.2,11.2"]}


@pytest.fixture
def router_ok(monkeypatch):
    async def fake_check():
        return {"status": "ok", "endpoint": settings.osrm_base, "circuit": "closed"}

    monkeypatch.setattr(health_checker, "_check_router", fake_check)


@pytest.fixture
def router_down(monkeypatch):
    async def fake_check():
        return {"status": "error", "error": "Connection timeout", "error_type": "TimeoutException"}

    monkeypatch.setattr(health_checker, "_check_router", fake_check)


# ==============================================================================
# PROMETHEUS METRICS TESTS
# ==============================================================================


class TestPrometheusMetrics:
    """Test Prometheus metrics endpoint and tracking."""

    def test_metrics_endpoint_returns_prometheus_format(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "# HELP" in response.text
        assert "# TYPE" in response.text

    def test_app_info_is_exported(self, client):
        content = client.get("/metrics").text
        assert "routing_matrix_info" in content

    def test_http_requests_are_counted(self, client, stub_router):
        labels = {"method": "GET", "endpoint": "/matrix", "status": "200"}
        before = REGISTRY.get_sample_value("http_requests_total", labels) or 0.0
        client.get("/matrix", params=THREE_POINTS)
        after = REGISTRY.get_sample_value("http_requests_total", labels)
        assert after == before + 1

    def test_matrix_outcomes_are_counted(self, client, stub_router):
        def sample(outcome):
            return (
                REGISTRY.get_sample_value("matrix_requests_total", {"outcome": outcome}) or 0.0
            )

        ok_before = sample("ok")
        rejected_before = sample("rejected")
        client.get("/matrix", params=THREE_POINTS)
        client.get("/matrix")
        assert sample("ok") == ok_before + 1
        assert sample("rejected") == rejected_before + 1

    def test_metrics_endpoint_not_tracked(self, client):
        labels = {"method": "GET", "endpoint": "/metrics", "status": "200"}
        client.get("/metrics")
        assert REGISTRY.get_sample_value("http_requests_total", labels) is None


class TestEndpointNormalization:
    """Test endpoint normalization to reduce cardinality."""

    def test_normalize_numeric_ids(self):
        assert normalize_endpoint("/matrix/123") == "/matrix/{id}"
        assert normalize_endpoint("/jobs/42/result") == "/jobs/{id}/result"

    def test_normalize_uuid(self):
        path = "/jobs/550e8400-e29b-41d4-a716-446655440000"
        assert normalize_endpoint(path) == "/jobs/{id}"

    def test_versioned_paths_are_preserved(self):
        assert normalize_endpoint("/v1/matrix") == "/v1/matrix"
        assert normalize_endpoint("/matrix") == "/matrix"

    def test_long_tokens_are_collapsed(self):
        assert normalize_endpoint("/dev/abcdefghijklmnopqrstuvwxyz") == "/dev/{id}"


# ==============================================================================
# HEALTH CHECK TESTS
# ==============================================================================


class TestHealthChecks:
    """Test the health check endpoint."""

    def test_health_reports_service(self, client, router_ok):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == SERVICE_NAME
        assert set(data["checks"]) == {"router", "sentry"}
        assert data["checks"]["sentry"]["status"] == "disabled"

    def test_unreachable_router_degrades_health(self, client, router_down):
        response = client.get("/health")
        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["checks"]["router"]["error_type"] == "TimeoutException"

    def test_open_circuit_degrades_health(self, client):
        breaker = osrm_breaker()
        for _ in range(breaker.failure_threshold):
            breaker._on_failure()
        assert breaker.is_open()

        response = client.get("/health")
        assert response.status_code == 503
        assert response.json()["checks"]["router"]["error"] == "circuit open"

    def test_invalid_sentry_dsn_is_reported(self, client, router_ok):
        original = settings.SENTRY_DSN
        try:
            settings.SENTRY_DSN = "not-a-dsn"
            response = client.get("/health")
            assert response.json()["checks"]["sentry"]["status"] == "error"
        finally:
            settings.SENTRY_DSN = original


# ==============================================================================
# REQUEST ID TRACING TESTS
# ==============================================================================


class TestRequestIDTracing:
    """Test request ID tracing middleware."""

    def test_request_id_generated_if_not_provided(self, client):
        response = client.get("/metrics")
        request_id = response.headers["X-Request-ID"]
        assert len(request_id) == 36
        assert request_id.count("-") == 4

    def test_request_id_preserved_from_header(self, client, stub_router):
        custom_id = "test-request-12345"
        response = client.get("/matrix", params=THREE_POINTS, headers={"X-Request-ID": custom_id})
        assert response.headers["X-Request-ID"] == custom_id

    def test_request_id_unique_per_request(self, client):
        id1 = client.get("/metrics").headers["X-Request-ID"]
        id2 = client.get("/metrics").headers["X-Request-ID"]
        assert id1 != id2

    def test_request_id_reaches_log_events(self):
        token = request_id_ctx.set("test-context-id")
        try:
            assert get_request_id() == "test-context-id"
            event = add_request_id(None, "info", {"event": "matrix_computed"})
            assert event["request_id"] == "test-context-id"

            record = logging.LogRecord("test", logging.INFO, __file__, 1, "msg", None, None)
            RequestIDLogFilter().filter(record)
            assert record.request_id == "test-context-id"
        finally:
            request_id_ctx.reset(token)

    def test_log_events_without_request_skip_the_id(self):
        event = add_request_id(None, "info", {"event": "startup"})
        assert "request_id" not in event

    def test_error_responses_have_request_id(self, client):
        response = client.get("/nonexistent-endpoint")
        assert response.status_code == 404
        assert "X-Request-ID" in response.headers

    def test_rejected_matrix_has_request_id(self, client, stub_router):
        response = client.get("/matrix")
        assert response.status_code == 400
        assert "X-Request-ID" in response.headers
