"""
Classification of PostgreSQL driver errors into user-facing messages.

The table is matched in order: SQLSTATE / errno code first, then, for
errors without a code, case-insensitive substrings of the driver message.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import exc as sa_exc
import psycopg2


INTERNAL_ERROR_MESSAGE = "Internal server error"


@dataclass(frozen=True)
class ErrorRule:
    """One row of the classification table."""
    category: str
    message: str
    codes: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()
    regex: Optional[re.Pattern] = field(default=None, compare=False)

    @property
    def canonical_code(self) -> Optional[str]:
        return self.codes[0] if self.codes else None

    def matches_code(self, code: Optional[str]) -> bool:
        return bool(code) and code in self.codes

    def matches_text(self, text: str) -> bool:
        if any(p in text for p in self.patterns):
            return True
        return bool(self.regex and self.regex.search(text))


@dataclass(frozen=True)
class ClassifiedError:
    """Result of classifying a driver error."""
    category: Optional[str]
    message: str
    code: Optional[str]
    raw_message: str
    error_type: str

    @property
    def matched(self) -> bool:
        return self.category is not None


# Connection-level failures, checked first
CONNECTION_RULES: tuple[ErrorRule, ...] = (
    ErrorRule(
        category="connection_refused",
        message="Connection refused. Please check if the database server is running and accessible.",
        codes=("ECONNREFUSED",),
        patterns=("connection refused", "econnrefused"),
    ),
    ErrorRule(
        category="host_not_found",
        message="Host not found. Please check the hostname or IP address.",
        codes=("ENOTFOUND",),
        patterns=(
            "could not translate host name",
            "name or service not known",
            "nodename nor servname",
            "enotfound",
        ),
    ),
    ErrorRule(
        category="authentication_failed",
        message="Authentication failed. Please check your username and password.",
        codes=("28P01", "28000"),
        patterns=("authentication failed", "no pg_hba.conf entry"),
    ),
    ErrorRule(
        category="database_not_found",
        message="Database does not exist. Please check the database name.",
        codes=("3D000",),
        regex=re.compile(r"database .* does not exist"),
    ),
    ErrorRule(
        category="timeout",
        message="Connection timeout. The database server may be slow to respond.",
        codes=("ETIMEDOUT", "57014"),
        patterns=("timeout", "timed out"),
    ),
    ErrorRule(
        category="ssl_error",
        message="SSL connection error. Please check your SSL configuration.",
        patterns=("ssl",),
    ),
)

# Statement-level failures
QUERY_RULES: tuple[ErrorRule, ...] = (
    ErrorRule(category="undefined_table", message="Table does not exist", codes=("42P01",)),
    ErrorRule(category="undefined_column", message="Column does not exist", codes=("42703",)),
    ErrorRule(
        category="unique_violation",
        message="Duplicate key value violates unique constraint",
        codes=("23505",),
    ),
    ErrorRule(
        category="foreign_key_violation",
        message="Foreign key constraint violation",
        codes=("23503",),
    ),
)

ALL_RULES = CONNECTION_RULES + QUERY_RULES


def unwrap(error: BaseException) -> BaseException:
    """Return the DBAPI exception wrapped by SQLAlchemy, if any."""
    if isinstance(error, sa_exc.DBAPIError) and error.orig is not None:
        return error.orig
    return error


# Driver, SQLAlchemy and socket-level failures; everything else is internal
DATABASE_ERRORS = (sa_exc.SQLAlchemyError, psycopg2.Error, ConnectionError, TimeoutError)


class ApiError(Exception):
    """
    Error that already knows its HTTP status and JSON envelope.

    Raised from dependencies (auth) and rendered by the app's handler.
    """

    def __init__(
        self,
        status_code: int,
        body: dict[str, Any],
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(body.get("error") or body.get("message"))
        self.status_code = status_code
        self.body = body
        self.headers = headers


def error_code(error: BaseException) -> Optional[str]:
    """SQLSTATE for server errors, errno name for socket errors."""
    original = unwrap(error)
    pgcode = getattr(original, "pgcode", None)
    if pgcode:
        return pgcode
    if isinstance(original, ConnectionRefusedError):
        return "ECONNREFUSED"
    if isinstance(original, TimeoutError):
        return "ETIMEDOUT"
    return None


def raw_message(error: BaseException) -> str:
    """Driver message without SQLAlchemy's statement/background suffix."""
    original = unwrap(error)
    message = str(original).strip()
    return message or type(original).__name__


def classify(
    error: BaseException,
    fallback: Optional[str] = None,
    rules: tuple[ErrorRule, ...] = ALL_RULES,
) -> ClassifiedError:
    """
    Map a driver error to a human-readable category.

    Args:
        error: Exception raised while connecting or querying
        fallback: Message for unmatched errors (defaults to the raw message)
        rules: Classification table to apply

    Returns:
        ClassifiedError with category None when nothing matched
    """
    code = error_code(error)
    message = raw_message(error)
    original = unwrap(error)

    matched = next((r for r in rules if r.matches_code(code)), None)
    # Server errors carry a SQLSTATE; only codeless connect failures fall back to text
    if matched is None and code is None:
        text = message.lower()
        matched = next((r for r in rules if r.matches_text(text)), None)

    if matched is not None:
        return ClassifiedError(
            category=matched.category,
            message=matched.message,
            code=code or matched.canonical_code,
            raw_message=message,
            error_type=type(original).__name__,
        )

    return ClassifiedError(
        category=None,
        message=fallback or message,
        code=code,
        raw_message=message,
        error_type=type(original).__name__,
    )


def connection_suggestion(category: Optional[str]) -> Optional[str]:
    """Short troubleshooting hint for a connection category (CLI output)."""
    return {
        "host_not_found": "Check if the hostname is correct",
        "connection_refused": "Check if the server is running and port is correct",
        "authentication_failed": "Check username and password",
        "database_not_found": "Check if the database exists",
        "timeout": "Check network connectivity and firewall settings",
        "ssl_error": "Check the ssl_mode and server certificate",
    }.get(category or "")
