"""
Generic query proxy for the external-db function: {connection, query, params}.
"""
import logging

from app.db.postgres import run_query, transient_connection
from app.errors import DATABASE_ERRORS, classify
from app.responses import ServiceResult
from app.schemas import ExternalQueryRequest


logger = logging.getLogger(__name__)


def execute(request: ExternalQueryRequest) -> ServiceResult:
    """
    Run one statement (or a parameterless script) on the caller's database.

    Row-returning statements answer with the rows; anything else answers
    with an empty data list and a confirmation message.
    """
    params = request.connection.to_params()
    logger.info(
        "Connecting to %s@%s:%s/%s (%d chars, %d params)",
        params.username, params.host, params.port, params.database,
        len(request.query), len(request.params),
    )

    try:
        with transient_connection(params) as conn:
            outcome = run_query(conn, request.query, request.params)
    except ValueError as e:
        return 400, {"success": False, "error": str(e)}
    except DATABASE_ERRORS as e:
        classified = classify(e)
        logger.warning("External query failed: %s", classified.raw_message)
        return 400, {"success": False, "error": classified.message}

    body = {
        "success": True,
        "data": outcome.rows,
        "rowsAffected": outcome.row_count,
    }
    if not outcome.returns_rows:
        body["message"] = "Query executed successfully"
    return 200, body
