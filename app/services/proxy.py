"""
Proxy-server routes backed by the shared connection pool.

Responses use the "error" key for failures and attach the raw driver
message under "details" only in development.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.engine import Engine

from app.config import Settings
from app.db.postgres import fetch_all, fetch_one, run_query, transient_connection
from app.db.queries import LIST_TABLES, SERVER_TIME_PROBE, TABLE_COLUMNS
from app.errors import CONNECTION_RULES, DATABASE_ERRORS, ClassifiedError, classify
from app.responses import ServiceResult
from app.schemas import ProxyConnectionTest, ProxyQueryRequest


logger = logging.getLogger(__name__)


def _details(settings: Settings, raw: str) -> Optional[str]:
    return raw if settings.is_development else None


def _with_details(body: dict[str, Any], settings: Settings, raw: str) -> dict[str, Any]:
    details = _details(settings, raw)
    if details is not None:
        body["details"] = details
    return body


def _error_body(
    classified: ClassifiedError,
    settings: Settings,
    **extra: Any,
) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": classified.message}
    if classified.code:
        body["code"] = classified.code
    body.update(extra)
    return _with_details(body, settings, classified.raw_message)


def health(engine: Optional[Engine]) -> ServiceResult:
    """Probe the pool; 503 when it is missing or unreachable."""
    unhealthy = {
        "success": False,
        "status": "unhealthy",
        "error": "Database connection failed",
    }
    if engine is None:
        logger.error("Health check failed: proxy database is not configured")
        return 503, unhealthy

    try:
        with engine.connect() as conn:
            row = fetch_one(conn, SERVER_TIME_PROBE) or {}
    except DATABASE_ERRORS as e:
        logger.error("Health check failed: %s", classify(e).raw_message)
        return 503, unhealthy

    return 200, {
        "success": True,
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": {
            "connected": True,
            "server_time": row.get("server_time"),
            "version": row.get("version"),
        },
    }


def test_connection(body: ProxyConnectionTest, settings: Settings) -> ServiceResult:
    """Open a throwaway connection with the supplied credentials."""
    params = body.to_params()
    started = time.perf_counter()

    try:
        with transient_connection(params) as conn:
            row = fetch_one(conn, SERVER_TIME_PROBE) or {}
    except DATABASE_ERRORS as e:
        classified = classify(e, fallback="Connection failed", rules=CONNECTION_RULES)
        logger.error(
            "Connection test failed for %s@%s/%s: %s",
            params.username, params.host, params.database, classified.raw_message,
        )
        return 400, _error_body(classified, settings)

    latency = int((time.perf_counter() - started) * 1000)
    logger.info(
        "Connection test successful host=%s database=%s user=%s latency=%dms",
        params.host, params.database, params.username, latency,
    )
    return 200, {
        "success": True,
        "message": "Connection successful",
        "latency": f"{latency}ms",
        "server_info": {
            "server_time": row.get("server_time"),
            "version": row.get("version"),
        },
    }


def execute_query(
    engine: Optional[Engine],
    body: ProxyQueryRequest,
    settings: Settings,
    client_ip: str = "unknown",
) -> ServiceResult:
    """Run the caller's SQL on the pooled database."""
    started = time.perf_counter()

    # Log shape only, never the SQL text or values
    logger.info(
        "Executing query queryLength=%d paramCount=%d ip=%s",
        len(body.query), len(body.params), client_ip,
    )

    if engine is None:
        return 500, {"success": False, "error": "Proxy database is not configured"}

    try:
        with engine.connect() as conn:
            outcome = run_query(conn, body.query, body.params)
    except ValueError as e:
        elapsed = int((time.perf_counter() - started) * 1000)
        return 400, {"success": False, "error": str(e), "executionTime": f"{elapsed}ms"}
    except DATABASE_ERRORS as e:
        elapsed = int((time.perf_counter() - started) * 1000)
        classified = classify(e, fallback="Query execution failed")
        logger.error(
            "Query execution failed error=%s code=%s executionTime=%dms",
            classified.raw_message, classified.code, elapsed,
        )
        return 400, _error_body(classified, settings, executionTime=f"{elapsed}ms")

    elapsed = int((time.perf_counter() - started) * 1000)
    logger.info(
        "Query executed successfully executionTime=%dms rowCount=%d",
        elapsed, outcome.row_count,
    )
    return 200, {
        "success": True,
        "data": {
            "rows": outcome.rows,
            "rowCount": outcome.row_count,
            "fields": outcome.fields,
            "executionTime": f"{elapsed}ms",
        },
    }


def list_tables(engine: Optional[Engine], settings: Settings) -> ServiceResult:
    """User tables on the pooled database."""
    try:
        if engine is None:
            raise ConnectionError("Proxy database is not configured")
        with engine.connect() as conn:
            tables = fetch_all(conn, LIST_TABLES)
    except DATABASE_ERRORS as e:
        raw = classify(e).raw_message
        logger.error("Failed to fetch tables: %s", raw)
        return 500, _with_details(
            {"success": False, "error": "Failed to fetch tables"}, settings, raw
        )

    return 200, {"success": True, "data": tables}


def table_schema(
    engine: Optional[Engine],
    table_name: str,
    settings: Settings,
) -> ServiceResult:
    """Columns of one table; 404 when it has none visible."""
    try:
        if engine is None:
            raise ConnectionError("Proxy database is not configured")
        with engine.connect() as conn:
            columns = fetch_all(conn, TABLE_COLUMNS, [table_name])
    except DATABASE_ERRORS as e:
        raw = classify(e).raw_message
        logger.error("Failed to fetch table schema for %s: %s", table_name, raw)
        return 500, _with_details(
            {"success": False, "error": "Failed to fetch table schema"}, settings, raw
        )

    if not columns:
        return 404, {"success": False, "error": "Table not found"}

    return 200, {
        "success": True,
        "data": {
            "table_name": table_name,
            "columns": columns,
        },
    }
