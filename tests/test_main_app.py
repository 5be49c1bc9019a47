"""
Tests for leadcapture/main.py - FastAPI app creation, middleware, lifespan, and CORS.
"""
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from leadcapture.main import (
    CorrelationIdMiddleware,
    _cors_origins,
    create_app,
    lifespan,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_mock_settings(**overrides):
    """Build a mock Settings object."""
    defaults = {
        "app_env": "test",
        "log_level": "WARNING",
        "sentry_dsn": "",
        "sendgrid_api_key": "",
        "recaptcha_configured": False,
        "allowed_origins": "",
    }
    defaults.update(overrides)
    settings = MagicMock()
    for k, v in defaults.items():
        setattr(settings, k, v)
    return settings


def _build_app(**overrides) -> FastAPI:
    with (
        patch("leadcapture.main.get_settings", return_value=_make_mock_settings(**overrides)),
        patch("leadcapture.main.configure_structured_logging"),
    ):
        return create_app()


# ---------------------------------------------------------------------------
# create_app - application factory
# ---------------------------------------------------------------------------


class TestCreateApp:
    def test_returns_fastapi_instance(self):
        app = _build_app()
        assert isinstance(app, FastAPI)
        assert app.title == "LeadCapture"
        assert app.version == "1.0.0"

    def test_configures_structured_logging(self):
        """create_app calls configure_structured_logging with the config log level."""
        with (
            patch("leadcapture.main.get_settings", return_value=_make_mock_settings(log_level="DEBUG")),
            patch("leadcapture.main.configure_structured_logging") as mock_log,
        ):
            create_app()

        mock_log.assert_called_once_with("DEBUG")

    def test_includes_routes(self):
        route_paths = {route.path for route in _build_app().routes}
        assert {
            "/health",
            "/health/ready",
            "/api/v1/leads/submit",
            "/api/v1/leads/{lead_id}/stage",
            "/api/v1/leads",
            "/api/v1/leads/export",
            "/api/v1/webhooks",
            "/api/v1/webhooks/logs",
            "/api/v1/webhooks/{webhook_id}",
            "/api/v1/webhooks/{webhook_id}/test",
        } <= route_paths

    def test_logs_route_declared_before_webhook_id(self):
        paths = [route.path for route in _build_app().routes]
        assert paths.index("/api/v1/webhooks/logs") < paths.index("/api/v1/webhooks/{webhook_id}")


# ---------------------------------------------------------------------------
# CorrelationIdMiddleware
# ---------------------------------------------------------------------------


class TestCorrelationIdMiddleware:
    def test_generates_correlation_id_when_missing(self):
        client = TestClient(_build_app(), raise_server_exceptions=False)
        response = client.get("/health")

        assert response.status_code == 200
        assert len(response.headers["x-correlation-id"]) == 32  # UUID4 hex

    def test_uses_existing_correlation_id(self):
        client = TestClient(_build_app(), raise_server_exceptions=False)
        custom_cid = "abc123def456789012345678abcdef00"
        response = client.get("/health", headers={"X-Correlation-ID": custom_cid})

        assert response.headers["x-correlation-id"] == custom_cid

    def test_middleware_class_is_installed(self):
        app = _build_app()
        assert any(m.cls is CorrelationIdMiddleware for m in app.user_middleware)


# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------


class TestCors:
    def test_any_origin_when_unset(self):
        assert _cors_origins(_make_mock_settings()) == ["*"]

    def test_configured_origins(self):
        settings = _make_mock_settings(allowed_origins=" https://a.example.com, ,https://b.example.com ")
        assert _cors_origins(settings) == ["https://a.example.com", "https://b.example.com"]

    def test_preflight_from_embedding_site(self):
        client = TestClient(_build_app(), raise_server_exceptions=False)
        response = client.options(
            "/api/v1/leads/submit",
            headers={
                "Origin": "https://customer-site.example.com",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert response.headers["access-control-allow-origin"] == "*"


# ---------------------------------------------------------------------------
# lifespan - startup and shutdown
# ---------------------------------------------------------------------------


class TestLifespan:
    async def test_drains_background_tasks_on_shutdown(self):
        with (
            patch("leadcapture.main.get_settings", return_value=_make_mock_settings()),
            patch("leadcapture.main.background.drain", new_callable=AsyncMock, return_value=0) as mock_drain,
            patch("leadcapture.main.dispose_engine", new_callable=AsyncMock) as mock_dispose,
        ):
            async with lifespan(MagicMock()):
                mock_drain.assert_not_awaited()
                mock_dispose.assert_not_awaited()

        mock_drain.assert_awaited_once_with(timeout=10.0)
        mock_dispose.assert_awaited_once()

    async def test_initializes_sentry_when_configured(self):
        with (
            patch("leadcapture.main.get_settings",
                  return_value=_make_mock_settings(sentry_dsn="https://key@sentry.example.com/1")),
            patch("leadcapture.main.background.drain", new_callable=AsyncMock, return_value=0),
            patch("sentry_sdk.init") as mock_init,
        ):
            async with lifespan(MagicMock()):
                pass

        mock_init.assert_called_once()
        assert mock_init.call_args.kwargs["dsn"] == "https://key@sentry.example.com/1"
        assert mock_init.call_args.kwargs["environment"] == "test"
