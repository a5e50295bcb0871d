"""
Tests for request schemas and caller IP resolution.
"""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from app.schemas import ActionConfig, ConnectionDescriptor, ProxyConnectionTest, SavedPromptIn
from app.services.client_ip import describe_client, resolve_client_ip


def test_descriptor_defaults():
    descriptor = ConnectionDescriptor(host=" db ", database="app", username="bob")
    params = descriptor.to_params()

    assert params.host == "db"
    assert params.port == 5432
    assert params.password == ""
    assert params.ssl_mode == "prefer"
    assert params.connect_timeout == 30


def test_descriptor_coerces_port_string():
    descriptor = ConnectionDescriptor(host="db", port="6543", database="app", username="bob")
    assert descriptor.port == 6543


@pytest.mark.parametrize(
    "overrides",
    [
        {"host": "   "},
        {"port": 0},
        {"port": 70000},
        {"ssl_mode": "sometimes"},
        {"connection_timeout": 0},
    ],
)
def test_descriptor_rejects(overrides):
    data = {"host": "db", "database": "app", "username": "bob", **overrides}
    with pytest.raises(ValidationError):
        ConnectionDescriptor(**data)


def test_action_config_aliases():
    config = ActionConfig(
        host="db",
        database="app",
        username="bob",
        tableName="orders",
        params=None,
    )
    assert config.table_name == "orders"
    assert config.params == []


def test_proxy_connection_test_defaults():
    body = ProxyConnectionTest(host="db", database="app", user="bob", password="pw")
    params = body.to_params()

    assert params.username == "bob"
    assert params.ssl_mode == "require"
    assert params.connect_timeout == 10


def test_proxy_connection_test_requires_password():
    with pytest.raises(ValidationError):
        ProxyConnectionTest(host="db", database="app", user="bob", password="")


@pytest.mark.parametrize(
    "headers, expected",
    [
        ({"cf-connecting-ip": "1.1.1.1", "x-forwarded-for": "2.2.2.2"}, "1.1.1.1"),
        ({"x-forwarded-for": "2.2.2.2, 10.0.0.1", "x-real-ip": "3.3.3.3"}, "2.2.2.2"),
        ({"x-real-ip": "3.3.3.3"}, "3.3.3.3"),
        ({}, "unknown"),
    ],
)
def test_resolve_client_ip(headers, expected):
    assert resolve_client_ip(headers) == expected


def test_describe_client():
    data = describe_client({"x-real-ip": "3.3.3.3", "cf-ipcountry": "DE"})
    assert data["ip"] == "3.3.3.3"
    assert data["country"] == "DE"
    assert data["userAgent"] == "unknown"
    assert data["headers"]["x-forwarded-for"] is None


@pytest.mark.parametrize(
    "created_at, expected",
    [
        ("2026-01-01T00:00:00", datetime(2026, 1, 1, tzinfo=timezone.utc)),
        ("2026-01-01T02:00:00+02:00", datetime(2026, 1, 1, tzinfo=timezone.utc)),
    ],
)
def test_created_at_is_stored_as_utc(created_at, expected):
    prompt = SavedPromptIn(
        user_id="u1", name="n", prompt="p", category="c", created_at=created_at
    )
    assert prompt.created_at == expected
    assert prompt.created_at.utcoffset() == timedelta(0)
