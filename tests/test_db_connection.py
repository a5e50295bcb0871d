"""
Tests for the db-connection function endpoint.

The transient connection is replaced with a dummy and the fetch helpers
are patched, so no PostgreSQL server is needed.
"""
from contextlib import contextmanager

import psycopg2
import pytest

from app.db.postgres import QueryOutcome
from app.services import connections


@pytest.fixture
def opened(monkeypatch):
    """Record the ConnectionParams each action connects with."""
    seen = []

    @contextmanager
    def fake_transient_connection(params):
        seen.append(params)
        yield object()

    monkeypatch.setattr(connections, "transient_connection", fake_transient_connection)
    return seen


@pytest.fixture
def refuse(monkeypatch):
    def _refuse(message):
        @contextmanager
        def failing(params):
            raise psycopg2.OperationalError(message)
            yield

        monkeypatch.setattr(connections, "transient_connection", failing)
    return _refuse


def post_action(client, action, config):
    return client.post("/functions/db-connection", json={"action": action, "config": config})


def test_connection_success(client, descriptor, opened, monkeypatch):
    monkeypatch.setattr(
        connections,
        "fetch_one",
        lambda conn, sql, params=None: {"version": "PostgreSQL 15.4", "database": "analytics"},
    )

    response = post_action(client, "test_connection", descriptor)
    assert response.status_code == 200

    data = response.json()
    assert data["success"] is True
    assert data["message"] == "Connection successful"
    assert isinstance(data["latency"], int)
    assert data["details"]["version"] == "PostgreSQL 15.4"
    assert data["details"]["database"] == "analytics"
    assert "connected_at" in data["details"]

    params = opened[0]
    assert params.ssl_mode == "require"
    assert params.connect_timeout == 30


def test_connection_wrong_password(client, descriptor, refuse):
    refuse('FATAL:  password authentication failed for user "analyst"')

    response = post_action(client, "test_connection", descriptor)
    assert response.status_code == 400

    data = response.json()
    assert data["success"] is False
    assert "Authentication failed" in data["message"]
    assert isinstance(data["latency"], int)
    assert data["details"]["error_type"] == "OperationalError"
    assert "attempted_at" in data["details"]


def test_connection_unknown_host(client, descriptor, refuse):
    refuse('could not translate host name "db.example.com" to address: Name or service not known')

    data = post_action(client, "test_connection", descriptor).json()
    assert data["message"].startswith("Host not found")


def test_connection_timeout_and_ssl_defaults(client, descriptor, opened, monkeypatch):
    monkeypatch.setattr(connections, "fetch_one", lambda conn, sql, params=None: {})
    descriptor.update({"ssl_mode": "", "connection_timeout": 5})

    post_action(client, "test_connection", descriptor)
    assert opened[0].ssl_mode == "prefer"
    assert opened[0].connect_timeout == 5


def test_get_tables(client, descriptor, opened, monkeypatch):
    tables = [
        {"table_name": "orders", "table_schema": "public", "table_type": "BASE TABLE"},
        {"table_name": "users", "table_schema": "public", "table_type": "BASE TABLE"},
    ]
    captured = {}

    def fake_fetch_all(conn, sql, params=None):
        captured["sql"] = sql
        return tables

    monkeypatch.setattr(connections, "fetch_all", fake_fetch_all)

    response = post_action(client, "get_tables", descriptor)
    assert response.status_code == 200
    assert response.json() == {"success": True, "tables": tables}
    assert "NOT IN ('information_schema', 'pg_catalog')" in captured["sql"]


def test_get_table_schema(client, descriptor, opened, monkeypatch):
    columns = [{"column_name": "id", "data_type": "integer", "is_nullable": "NO"}]
    captured = {}

    def fake_fetch_all(conn, sql, params=None):
        captured["params"] = params
        return columns

    monkeypatch.setattr(connections, "fetch_all", fake_fetch_all)

    response = post_action(client, "get_table_schema", {**descriptor, "tableName": "orders"})
    assert response.status_code == 200
    assert response.json() == {"success": True, "schema": columns}
    assert captured["params"] == ["orders"]


def test_get_table_schema_requires_table_name(client, descriptor, opened):
    response = post_action(client, "get_table_schema", descriptor)
    assert response.status_code == 400
    assert response.json()["message"] == "tableName is required"
    assert opened == []


def test_execute_query(client, descriptor, opened, monkeypatch):
    captured = {}

    def fake_run_query(conn, query, params=None):
        captured["params"] = params
        return QueryOutcome(
            rows=[{"id": 1, "total": 9.5}],
            row_count=1,
            returns_rows=True,
            execution_time_ms=4,
        )

    monkeypatch.setattr(connections, "run_query", fake_run_query)

    query = "SELECT id, total FROM orders WHERE id = $1"
    response = post_action(
        client, "execute_query", {**descriptor, "query": query, "params": [1]}
    )
    assert response.status_code == 200

    data = response.json()
    assert data == {
        "success": True,
        "data": [{"id": 1, "total": 9.5}],
        "rowCount": 1,
        "executionTime": 4,
        "query": query,
    }
    assert captured["params"] == [1]


def test_execute_query_missing_table(client, descriptor, opened, monkeypatch):
    def failing(conn, query, params=None):
        raise psycopg2.ProgrammingError('relation "nope" does not exist')

    monkeypatch.setattr(connections, "run_query", failing)

    response = post_action(client, "execute_query", {**descriptor, "query": "SELECT * FROM nope"})
    assert response.status_code == 400

    data = response.json()
    assert data["success"] is False
    assert data["message"] == 'relation "nope" does not exist'
    assert data["query"] == "SELECT * FROM nope"


def test_invalid_action(client, descriptor):
    response = post_action(client, "drop_everything", descriptor)
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Invalid action"}


def test_invalid_config(client):
    response = post_action(client, "test_connection", {"host": "db", "port": 99999})
    assert response.status_code == 400

    data = response.json()
    assert data["success"] is False
    assert data["message"] == "Validation error"
    assert data["details"]


def test_unexpected_error_is_internal(client, descriptor, monkeypatch):
    def broken(request):
        raise RuntimeError("boom")

    monkeypatch.setattr(connections, "dispatch", broken)

    response = post_action(client, "get_tables", descriptor)
    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Internal server error"}
