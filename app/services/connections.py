"""
Action dispatch for the db-connection function.

Each action opens one transient connection from the request's descriptor,
runs a fixed probe, an information_schema query, or the caller's SQL, and
closes the connection before answering.

Failures are reported under "message" with HTTP 400.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Callable

from app.db.postgres import fetch_all, fetch_one, run_query, transient_connection
from app.db.queries import LIST_TABLES, TABLE_COLUMNS, VERSION_PROBE
from app.errors import DATABASE_ERRORS, classify
from app.responses import ServiceResult
from app.schemas import ActionConfig, ActionRequest


logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def test_connection(config: ActionConfig) -> ServiceResult:
    """
    Connect and report server version plus round-trip latency.

    Latency covers connect, probe query and close.
    """
    started = time.perf_counter()
    params = config.to_params()

    try:
        with transient_connection(params) as conn:
            row = fetch_one(conn, VERSION_PROBE) or {}
    except DATABASE_ERRORS as e:
        latency = _elapsed_ms(started)
        classified = classify(e)
        logger.warning(
            "Connection test failed for %s@%s:%s/%s: %s",
            params.username, params.host, params.port, params.database,
            classified.raw_message,
        )
        return 400, {
            "success": False,
            "message": classified.message,
            "latency": latency,
            "details": {
                "error_type": classified.error_type,
                "attempted_at": _now_iso(),
            },
        }

    latency = _elapsed_ms(started)
    logger.info(
        "Connection test successful for %s@%s:%s/%s (%dms)",
        params.username, params.host, params.port, params.database, latency,
    )
    return 200, {
        "success": True,
        "message": "Connection successful",
        "latency": latency,
        "details": {
            "version": row.get("version"),
            "database": row.get("database"),
            "connected_at": _now_iso(),
        },
    }


def get_tables(config: ActionConfig) -> ServiceResult:
    """List user tables and views, skipping system schemas."""
    try:
        with transient_connection(config.to_params()) as conn:
            tables = fetch_all(conn, LIST_TABLES)
    except DATABASE_ERRORS as e:
        return 400, {"success": False, "message": classify(e).message}

    return 200, {"success": True, "tables": tables}


def get_table_schema(config: ActionConfig) -> ServiceResult:
    """Column definitions of one table in ordinal order."""
    if not config.table_name:
        return 400, {"success": False, "message": "tableName is required"}

    try:
        with transient_connection(config.to_params()) as conn:
            columns = fetch_all(conn, TABLE_COLUMNS, [config.table_name])
    except DATABASE_ERRORS as e:
        return 400, {"success": False, "message": classify(e).message}

    return 200, {"success": True, "schema": columns}


def execute_query(config: ActionConfig) -> ServiceResult:
    """Run the caller's SQL with positional parameters."""
    if not config.query or not config.query.strip():
        return 400, {"success": False, "message": "query is required", "query": config.query}

    logger.info(
        "Executing query (%d chars, %d params) on %s:%s/%s",
        len(config.query), len(config.params), config.host, config.port, config.database,
    )

    try:
        with transient_connection(config.to_params()) as conn:
            outcome = run_query(conn, config.query, config.params)
    except ValueError as e:
        return 400, {"success": False, "message": str(e), "query": config.query}
    except DATABASE_ERRORS as e:
        classified = classify(e)
        logger.warning("Query failed: %s", classified.raw_message)
        return 400, {"success": False, "message": classified.message, "query": config.query}

    return 200, {
        "success": True,
        "data": outcome.rows,
        "rowCount": outcome.row_count,
        "executionTime": outcome.execution_time_ms,
        "query": config.query,
    }


ACTIONS: dict[str, Callable[[ActionConfig], ServiceResult]] = {
    "test_connection": test_connection,
    "get_tables": get_tables,
    "get_table_schema": get_table_schema,
    "execute_query": execute_query,
}


def dispatch(request: ActionRequest) -> ServiceResult:
    """Route a {action, config} body to its handler."""
    handler = ACTIONS.get(request.action)
    if handler is None:
        return 400, {"success": False, "message": "Invalid action"}
    return handler(request.config)
