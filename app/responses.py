"""
JSON envelope rendering.

Every endpoint answers with {"success": bool, ...}; row values coming back
from PostgreSQL (timestamps, numerics, UUIDs, bytea) are made JSON-safe here.
"""
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


_CUSTOM_ENCODERS = {
    bytes: lambda b: b.hex(),
    memoryview: lambda m: m.tobytes().hex(),
}


def to_jsonable(body: Any) -> Any:
    """Convert rows and envelopes to JSON-compatible values."""
    return jsonable_encoder(body, custom_encoder=_CUSTOM_ENCODERS)


def envelope(
    body: dict[str, Any],
    status_code: int = 200,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    """Render an envelope dict as a JSON response."""
    return JSONResponse(
        content=to_jsonable(body),
        status_code=status_code,
        headers=headers,
    )


def failure(
    message: str,
    status_code: int,
    key: str = "error",
    **extra: Any,
) -> JSONResponse:
    """
    Failure envelope.

    The function endpoints report under "message", the proxy routes under
    "error"; extra keys with a None value are omitted.
    """
    body: dict[str, Any] = {"success": False, key: message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return envelope(body, status_code=status_code)


# (HTTP status, envelope body) returned by the service layer
ServiceResult = tuple[int, dict[str, Any]]
