"""Tests for the FastAPI app factory, health and metrics endpoints."""

from __future__ import annotations

from fastapi.testclient import TestClient

from hookrelay import __version__
from hookrelay.api.app import create_app
from hookrelay.config.settings import AppConfig, MetricsConfig


class TestCreateApp:
    """Tests for create_app."""

    def test_metadata(self, api_config: AppConfig) -> None:
        app = create_app(config=api_config)
        assert app.title == "py-hookrelay"
        assert app.version == __version__
        assert app.state.engine is None

    def test_routes_mounted(self, api_config: AppConfig) -> None:
        paths = {route.path for route in create_app(config=api_config).routes}
        assert "/health" in paths
        assert "/metrics" in paths
        assert "/api/v1/subscriptions" in paths
        assert "/api/v1/subscriptions/{subscription_id}" in paths
        assert "/api/v1/events" in paths
        assert "/api/v1/notifications/{notification_id}" in paths
        assert "/api/v1/developer-testing/webhook" in paths

    def test_engine_lifecycle(self, api_config: AppConfig) -> None:
        app = create_app(config=api_config)
        with TestClient(app):
            assert app.state.engine is not None
            assert app.state.engine.is_initialized
        assert app.state.engine is None


class TestHealth:
    """Tests for /health."""

    def test_ok(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["components"]["engine"] == "ok"
        assert body["components"]["store"] == "ok"

    def test_starting_outside_lifespan(self, api_config: AppConfig) -> None:
        client = TestClient(create_app(config=api_config))
        body = client.get("/health").json()
        assert body["status"] == "starting"


class TestEngineNotReady:
    """Routes answer 503 before the engine is up."""

    def test_v1_route_without_engine(self, api_config: AppConfig) -> None:
        client = TestClient(create_app(config=api_config))
        response = client.get("/api/v1/subscriptions")
        assert response.status_code == 503
        assert response.json() == {"code": "engine-not-ready", "message": "engine is not initialized"}


class TestMetricsEndpoint:
    """Tests for /metrics."""

    def test_exposes_relay_and_http_metrics(self, client: TestClient) -> None:
        client.get("/health")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        text = response.text
        assert "hookrelay_delivery_attempts_total" in text
        assert 'path="/health"' in text

    def test_middleware_disabled(self, api_config: AppConfig) -> None:
        api_config.metrics = MetricsConfig(enabled=False)
        with TestClient(create_app(config=api_config)) as client:
            client.get("/health")
            assert "http_request_total" not in client.get("/metrics").text

    def test_apps_do_not_share_registries(self, api_config: AppConfig) -> None:
        first = create_app(config=api_config)
        second = create_app(config=api_config)
        assert first.state.metrics.registry is not second.state.metrics.registry
