"""
Smoke tests for basic application functionality.
"""
import psycopg2

from conftest import FakeEngine
from app.config import get_settings, reload_settings


def test_health_check_unconfigured(client):
    """Without DB_HOST the pool is missing and health reports unhealthy."""
    response = client.get("/health")
    assert response.status_code == 503

    data = response.json()
    assert data["success"] is False
    assert data["status"] == "unhealthy"
    assert data["error"] == "Database connection failed"


def test_health_check_healthy(client, use_engine, monkeypatch):
    from app.services import proxy

    use_engine(FakeEngine())
    monkeypatch.setattr(
        proxy,
        "fetch_one",
        lambda conn, sql, params=None: {"server_time": "2026-01-01T00:00:00", "version": "PostgreSQL 16.2"},
    )

    response = client.get("/health")
    assert response.status_code == 200

    data = response.json()
    assert data["success"] is True
    assert data["status"] == "healthy"
    assert "timestamp" in data
    assert data["database"]["connected"] is True
    assert data["database"]["version"] == "PostgreSQL 16.2"


def test_health_check_database_down(client, use_engine):
    use_engine(FakeEngine(psycopg2.OperationalError("Connection refused")))

    response = client.get("/health")
    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


def test_health_needs_no_api_key(client):
    response = client.get("/health")
    assert response.status_code != 401


def test_unknown_endpoint(client):
    response = client.get("/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Endpoint not found"}


def test_cors_preflight(client):
    """Every endpoint answers preflight with a wildcard origin."""
    for path in ("/functions/db-connection", "/functions/external-db", "/api/query"):
        response = client.options(
            path,
            headers={
                "Origin": "http://localhost:5173",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"


def test_cors_on_simple_request(client):
    response = client.get("/health", headers={"Origin": "http://localhost:5173"})
    assert response.headers["access-control-allow-origin"] == "*"


def test_unhandled_error_keeps_cors_headers(client, auth_headers, monkeypatch):
    from app.services import proxy

    def broken(engine, settings):
        raise RuntimeError("boom")

    monkeypatch.setattr(proxy, "list_tables", broken)

    response = client.get(
        "/api/tables",
        headers={**auth_headers, "Origin": "http://localhost:5173"},
    )
    assert response.status_code == 500
    assert response.headers["access-control-allow-origin"] == "*"

    data = response.json()
    assert data["success"] is False
    assert data["error"] == "Internal server error"
    assert data["details"] == "boom"


def test_public_ip_from_forwarded_for(client):
    response = client.get(
        "/functions/get-public-ip",
        headers={"x-forwarded-for": "203.0.113.7, 10.0.0.1", "user-agent": "pytest"},
    )
    assert response.status_code == 200

    data = response.json()
    assert data["success"] is True
    assert data["data"]["ip"] == "203.0.113.7"
    assert data["data"]["userAgent"] == "pytest"
    assert data["data"]["country"] == "unknown"


def test_config_loads():
    """Test that configuration loads correctly."""
    settings = get_settings()

    assert settings is not None
    assert settings.API_KEY == "test-key"
    assert settings.DB_SSL_MODE == "require"
    assert settings.ALLOWED_ORIGINS == ["*"]
    assert not settings.proxy_db_configured


def test_config_proxy_db_configured(monkeypatch):
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("DB_NAME", "app")
    monkeypatch.setenv("DB_USER", "proxy")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = reload_settings()
    assert settings.proxy_db_configured
    assert settings.LOG_LEVEL == "DEBUG"

    monkeypatch.undo()
    reload_settings()
