"""
Shared fixtures. Environment is set before the app is imported so the
cached settings pick it up.
"""
import os
import subprocess
import time
from contextlib import contextmanager

os.environ["API_KEY"] = "test-key"
os.environ["ENVIRONMENT"] = "development"
os.environ["RATE_LIMIT_REQUESTS"] = "1000"
os.environ.pop("DB_HOST", None)

import psycopg2
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import make_url

from app.config import reload_settings

reload_settings()

from app import deps
from app.db.postgres import ConnectionParams
from app.main import app


class FakeEngine:
    """Stands in for the proxy pool; connect() yields a dummy connection."""

    def __init__(self, error: Exception = None):
        self.error = error

    @contextmanager
    def connect(self):
        if self.error is not None:
            raise self.error
        yield object()


@pytest.fixture
def client():
    """Test client fixture."""
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"x-api-key": "test-key"}


@pytest.fixture(autouse=True)
def reset_state():
    deps.reset_rate_limiter()
    app.dependency_overrides.clear()
    yield
    app.dependency_overrides.clear()
    deps.reset_rate_limiter()


@pytest.fixture
def use_engine():
    """Install a FakeEngine as the proxy pool."""
    def _install(engine):
        app.dependency_overrides[deps.get_proxy_engine] = lambda: engine
        return engine
    return _install


@pytest.fixture
def descriptor():
    return {
        "host": "db.example.com",
        "port": 5432,
        "database": "analytics",
        "username": "analyst",
        "password": "secret",
        "ssl_mode": "require",
    }


# === Live PostgreSQL ===

PG_CONTAINER = f"datallm_test_postgres_{os.getpid()}"
PG_PASSWORD = "testpassword"


def is_docker_available() -> bool:
    try:
        result = subprocess.run(["docker", "info"], capture_output=True, timeout=60)
        return result.returncode == 0
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return False


def wait_for_postgres(params: ConnectionParams, timeout: float = 30.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            psycopg2.connect(
                host=params.host,
                port=params.port,
                dbname=params.database,
                user=params.username,
                password=params.password,
                sslmode=params.ssl_mode,
                connect_timeout=2,
            ).close()
            return True
        except psycopg2.OperationalError:
            time.sleep(0.5)
    return False


@pytest.fixture(scope="session")
def pg_params():
    """
    A reachable PostgreSQL server.

    Uses TEST_DATABASE_URL when set, otherwise starts a postgres container.
    """
    url = os.environ.get("TEST_DATABASE_URL")
    if url:
        parsed = make_url(url)
        params = ConnectionParams(
            host=parsed.host or "localhost",
            port=parsed.port or 5432,
            database=parsed.database or "postgres",
            username=parsed.username or "postgres",
            password=parsed.password or "",
            ssl_mode="disable",
            connect_timeout=5,
        )
        if not wait_for_postgres(params, timeout=5):
            pytest.skip("TEST_DATABASE_URL is not reachable")
        yield params
        return

    if not is_docker_available():
        pytest.skip("Docker not available and TEST_DATABASE_URL not set")

    port = 15432 + os.getpid() % 1000
    subprocess.run(["docker", "rm", "-f", PG_CONTAINER], capture_output=True, timeout=30)
    started = subprocess.run(
        [
            "docker", "run", "-d", "--name", PG_CONTAINER,
            "-p", f"{port}:5432",
            "-e", f"POSTGRES_PASSWORD={PG_PASSWORD}",
            "postgres:16",
        ],
        capture_output=True,
        text=True,
        timeout=120,
    )
    if started.returncode != 0:
        pytest.skip(f"Failed to start PostgreSQL container: {started.stderr}")

    params = ConnectionParams(
        host="localhost",
        port=port,
        database="postgres",
        username="postgres",
        password=PG_PASSWORD,
        ssl_mode="disable",
        connect_timeout=5,
    )
    try:
        if not wait_for_postgres(params, timeout=60):
            pytest.skip("PostgreSQL container did not become ready")
        yield params
    finally:
        subprocess.run(["docker", "rm", "-f", PG_CONTAINER], capture_output=True, timeout=30)


@pytest.fixture
def pg_descriptor(pg_params):
    """pg_params as a request connection descriptor."""
    return {
        "host": pg_params.host,
        "port": pg_params.port,
        "database": pg_params.database,
        "username": pg_params.username,
        "password": pg_params.password,
        "ssl_mode": "disable",
    }
