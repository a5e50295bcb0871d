"""
Dependency injection for FastAPI routes.
Provides the shared proxy pool, API-key authentication and the rate limiter.
"""
import logging
import secrets
from typing import Annotated, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.engine import Engine

from app.config import Settings, get_settings
from app.db.postgres import create_pool_engine
from app.errors import ApiError
from app.ratelimit import FixedWindowRateLimiter


logger = logging.getLogger(__name__)


# === Proxy Pool ===

_engine: Optional[Engine] = None


def get_proxy_engine() -> Optional[Engine]:
    """
    Get or create the shared pool for the proxy routes.

    Returns None when DB_HOST / DB_NAME / DB_USER are not configured; the
    routes answer with their failure envelopes in that case.
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        if not settings.proxy_db_configured:
            return None
        _engine = create_pool_engine(settings)
        logger.info(
            "Proxy pool created for %s:%s/%s (max %d connections)",
            settings.DB_HOST, settings.DB_PORT, settings.DB_NAME, settings.DB_MAX_CONNECTIONS,
        )
    return _engine


def dispose_proxy_engine() -> None:
    """Close every pooled connection (shutdown and tests)."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
        logger.info("Proxy pool disposed")


# === Rate Limiting ===

_limiter: Optional[FixedWindowRateLimiter] = None


def get_rate_limiter() -> FixedWindowRateLimiter:
    """Process-wide limiter sized from RATE_LIMIT_* settings."""
    global _limiter
    if _limiter is None:
        settings = get_settings()
        _limiter = FixedWindowRateLimiter(
            limit=settings.RATE_LIMIT_REQUESTS,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        )
    return _limiter


def reset_rate_limiter() -> None:
    global _limiter
    _limiter = None


# === API Key Authentication ===

def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def extract_api_key(
    x_api_key: Optional[str],
    authorization: Optional[str],
) -> Optional[str]:
    """x-api-key wins; otherwise a 'Bearer <key>' Authorization header."""
    if x_api_key:
        return x_api_key
    if authorization:
        return authorization.removeprefix("Bearer ").strip() or None
    return None


def require_api_key(
    request: Request,
    x_api_key: Annotated[Optional[str], Header()] = None,
    authorization: Annotated[Optional[str], Header()] = None,
) -> None:
    """
    Reject requests without the configured API key.

    An unset API_KEY rejects everything.

    Usage:
        @app.get("/api/tables", dependencies=[Depends(require_api_key)])
    """
    settings = get_settings()
    supplied = extract_api_key(x_api_key, authorization)

    if not settings.API_KEY or not supplied or not secrets.compare_digest(
        supplied.encode(), settings.API_KEY.encode()
    ):
        logger.warning(
            "Unauthorized access attempt ip=%s userAgent=%s path=%s",
            client_ip(request),
            request.headers.get("user-agent"),
            request.url.path,
        )
        raise ApiError(
            401,
            {"success": False, "error": "Unauthorized: Invalid or missing API key"},
        )


# === Type Aliases ===

ProxyEngine = Annotated[Optional[Engine], Depends(get_proxy_engine)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
ApiKey = Depends(require_api_key)
