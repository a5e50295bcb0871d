"""
PostgreSQL engine construction and raw query execution.

Two engine flavours are used by the service:
- transient: NullPool, opened for one request and disposed afterwards
- pooled: one shared pool for the proxy-server routes
"""
import logging
import re
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Sequence

from psycopg2.extras import Json
from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine, URL
from sqlalchemy.pool import NullPool

from app.config import Settings, get_settings


logger = logging.getLogger(__name__)

DRIVERNAME = "postgresql+psycopg2"


@dataclass(frozen=True)
class ConnectionParams:
    """Everything needed to open a connection to one PostgreSQL database."""
    host: str
    port: int
    database: str
    username: str
    password: str
    ssl_mode: str = "prefer"
    connect_timeout: int = 30

    def __repr__(self) -> str:
        # Keep passwords out of logs and tracebacks
        return (
            f"ConnectionParams(host={self.host!r}, port={self.port}, "
            f"database={self.database!r}, username={self.username!r}, "
            f"ssl_mode={self.ssl_mode!r})"
        )


@dataclass
class QueryOutcome:
    """Normalized result of one statement."""
    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    fields: list[dict[str, Any]] = field(default_factory=list)
    returns_rows: bool = False
    execution_time_ms: int = 0


# === Engines ===

def build_url(params: ConnectionParams) -> URL:
    """Build a SQLAlchemy URL; credentials are escaped by URL.create."""
    return URL.create(
        DRIVERNAME,
        username=params.username,
        password=params.password,
        host=params.host,
        port=params.port,
        database=params.database,
    )


def build_connect_args(
    params: ConnectionParams,
    settings: Optional[Settings] = None,
) -> dict[str, Any]:
    """
    libpq connection arguments.

    ssl_mode is passed through unchanged; libpq understands all six modes.
    """
    settings = settings or get_settings()
    return {
        "sslmode": params.ssl_mode,
        "connect_timeout": params.connect_timeout,
        "application_name": settings.SERVICE_NAME,
        "options": f"-c statement_timeout={settings.DB_QUERY_TIMEOUT * 1000}",
    }


def create_transient_engine(params: ConnectionParams, autocommit: bool = True) -> Engine:
    """
    Engine without pooling: every connect() opens a fresh session.

    Args:
        params: Target database
        autocommit: Each statement commits on its own (raw query paths);
            pass False for ORM sessions that manage their own transactions
    """
    options: dict[str, Any] = {}
    if autocommit:
        options["isolation_level"] = "AUTOCOMMIT"
    return create_engine(
        build_url(params),
        connect_args=build_connect_args(params),
        poolclass=NullPool,
        echo=False,
        **options,
    )


def create_pool_engine(settings: Optional[Settings] = None) -> Engine:
    """
    Shared pool for the proxy-server routes, configured from DB_* settings.
    """
    settings = settings or get_settings()
    params = ConnectionParams(
        host=settings.DB_HOST or "localhost",
        port=settings.DB_PORT,
        database=settings.DB_NAME or "",
        username=settings.DB_USER or "",
        password=settings.DB_PASSWORD or "",
        ssl_mode=settings.DB_SSL_MODE,
        connect_timeout=settings.DB_CONNECTION_TIMEOUT,
    )
    return create_engine(
        build_url(params),
        connect_args=build_connect_args(params, settings),
        pool_size=settings.DB_MAX_CONNECTIONS,
        max_overflow=0,
        pool_timeout=settings.DB_CONNECTION_TIMEOUT,
        pool_recycle=settings.DB_IDLE_TIMEOUT,
        pool_pre_ping=True,
        isolation_level="AUTOCOMMIT",
        echo=False,
    )


@contextmanager
def transient_connection(params: ConnectionParams) -> Iterator[Connection]:
    """
    Open one short-lived connection and close it when the block exits.

    Usage:
        with transient_connection(params) as conn:
            outcome = run_query(conn, "SELECT 1")
    """
    engine = create_transient_engine(params)
    try:
        with engine.connect() as conn:
            yield conn
    finally:
        engine.dispose()


# === Query execution ===

# Tokens that must be copied verbatim apart from '%' doubling:
# string literals, quoted identifiers, dollar-quoted bodies, line and block
# comments. Group 2 captures $n placeholders not preceded by an identifier
# character.
_SQL_TOKEN = re.compile(
    r"'(?:[^']|'')*'"
    r'|"(?:[^"]|"")*"'
    r"|\$((?:[A-Za-z_]\w*)?)\$.*?\$\1\$"
    r"|--[^\n]*"
    r"|/\*.*?\*/"
    r"|(?<![\w$])\$(\d+)"
    r"|%",
    re.DOTALL,
)


def _adapt(value: Any) -> Any:
    """JSON objects go in as json; lists stay lists so psycopg2 sends arrays."""
    if isinstance(value, dict):
        return Json(value)
    return value


def translate_placeholders(
    query: str,
    params: Sequence[Any],
) -> tuple[str, dict[str, Any]]:
    """
    Rewrite PostgreSQL positional placeholders ($1, $2, ...) into the
    pyformat style psycopg2 expects.

    Placeholders inside literals, quoted identifiers, dollar-quoted bodies
    and comments are left alone. A placeholder may appear more than once.

    Raises:
        ValueError: a placeholder has no matching parameter
    """
    def _replace(match: re.Match) -> str:
        index = match.group(2)
        if index is not None:
            position = int(index)
            if position < 1 or position > len(params):
                raise ValueError(f"No value supplied for placeholder ${position}")
            return f"%(p{position})s"
        return match.group(0).replace("%", "%%")

    sql = _SQL_TOKEN.sub(_replace, query)
    bound = {f"p{i}": _adapt(v) for i, v in enumerate(params, start=1)}
    return sql, bound


def run_query(
    conn: Connection,
    query: str,
    params: Optional[Sequence[Any]] = None,
) -> QueryOutcome:
    """
    Execute one statement (or a parameterless multi-statement script).

    Args:
        conn: Open SQLAlchemy connection (autocommit)
        query: SQL text using $n placeholders
        params: Positional parameter values

    Returns:
        QueryOutcome with rows as dicts and driver field metadata
    """
    started = time.perf_counter()

    if params:
        sql, bound = translate_placeholders(query, params)
        result = conn.exec_driver_sql(sql, bound)
    else:
        # No driver-side formatting, so literal '%' stays as written
        result = conn.execution_options(no_parameters=True).exec_driver_sql(query)

    outcome = QueryOutcome(returns_rows=result.returns_rows)
    if result.returns_rows:
        description = result.cursor.description or ()
        outcome.fields = [
            {"name": column[0], "dataTypeID": column[1]} for column in description
        ]
        outcome.row_count = result.rowcount
        outcome.rows = [dict(row._mapping) for row in result]
        if outcome.row_count < 0:
            outcome.row_count = len(outcome.rows)
    else:
        outcome.row_count = max(result.rowcount, 0)

    outcome.execution_time_ms = int((time.perf_counter() - started) * 1000)
    logger.debug(
        "Statement finished in %dms (%d rows)",
        outcome.execution_time_ms,
        outcome.row_count,
    )
    return outcome


def fetch_all(
    conn: Connection,
    query: str,
    params: Optional[Sequence[Any]] = None,
) -> list[dict[str, Any]]:
    """Run a row-returning statement and return its rows."""
    return run_query(conn, query, params).rows


def fetch_one(
    conn: Connection,
    query: str,
    params: Optional[Sequence[Any]] = None,
) -> Optional[dict[str, Any]]:
    """Run a row-returning statement and return its first row, if any."""
    rows = fetch_all(conn, query, params)
    return rows[0] if rows else None
