"""
FastAPI application: serverless-style function endpoints, the API-key
proxy routes, and the dashboard table store.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import get_settings
from app.deps import (
    ApiKey,
    ProxyEngine,
    SettingsDep,
    client_ip,
    dispose_proxy_engine,
    get_rate_limiter,
)
from app.errors import DATABASE_ERRORS, INTERNAL_ERROR_MESSAGE, ApiError, classify
from app.logging_config import configure_logging
from app.responses import envelope, failure
from app.schemas import (
    ActionRequest,
    AiPersonaCreateRequest,
    AiSettingsSaveRequest,
    ApiCredentialCreateRequest,
    ExternalQueryRequest,
    ProxyConnectionTest,
    ProxyQueryRequest,
    SavedPromptCreateRequest,
    StoreRequest,
    UserScopedRequest,
)
from app.services import client_ip as client_ip_service
from app.services import connections, external_db, proxy, store


settings = get_settings()
configure_logging(settings)
logger = logging.getLogger(__name__)

DB_CONNECTION_PATH = "/functions/db-connection"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("DataLLM backend starting (environment=%s)", settings.ENVIRONMENT)
    if settings.proxy_db_configured:
        logger.info("Proxy database host: %s", settings.DB_HOST)
    else:
        logger.warning("Proxy database not configured; /api routes will fail")
    if not settings.API_KEY:
        logger.warning("API_KEY not set; every /api request will be rejected")

    yield

    logger.info("Shutting down gracefully")
    dispose_proxy_engine()


app = FastAPI(
    title="DataLLM Backend",
    version="0.1.0",
    description="PostgreSQL connection proxy for the DataLLM dashboard",
    lifespan=lifespan,
)


# === Middleware ===

@app.middleware("http")
async def catch_unhandled(request: Request, call_next):
    """
    Render unhandled errors as the 500 envelope.

    Runs inside CORSMiddleware so browser callers can read the body.
    """
    try:
        return await call_next(request)
    except Exception as exc:
        logger.exception("Unhandled error on %s", request.url.path)
        return failure(
            INTERNAL_ERROR_MESSAGE,
            500,
            details=str(exc) if settings.is_development else None,
        )


@app.middleware("http")
async def rate_limit_api(request: Request, call_next):
    """Fixed-window limit per client IP on /api routes."""
    if not request.url.path.startswith("/api/") or request.method == "OPTIONS":
        return await call_next(request)

    limiter = get_rate_limiter()
    decision = limiter.hit(client_ip(request))
    if not decision.allowed:
        logger.warning("Rate limit exceeded ip=%s path=%s", client_ip(request), request.url.path)
        return envelope(
            {
                "error": "Too many requests from this IP, please try again later.",
                "retryAfter": limiter.window_seconds,
            },
            status_code=429,
            headers=decision.headers(),
        )

    response = await call_next(request)
    response.headers.update(decision.headers())
    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every incoming request."""
    logger.info(
        "Incoming request method=%s path=%s ip=%s userAgent=%s",
        request.method,
        request.url.path,
        client_ip(request),
        request.headers.get("user-agent"),
    )
    return await call_next(request)


# Added last so it wraps everything, including 401/429 answers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials="*" not in settings.ALLOWED_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-API-Key"],
)


# === Exception Handlers ===

@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return envelope(exc.body, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Body validation failures answer 400 in the endpoint's envelope style."""
    details = [
        f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
        for err in exc.errors()
    ]
    key = "message" if request.url.path == DB_CONNECTION_PATH else "error"
    return failure("Validation error", 400, key=key, details=details)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return failure("Endpoint not found", 404)
    return failure(str(exc.detail), exc.status_code)


# === Function Endpoints ===

@app.post(DB_CONNECTION_PATH)
def db_connection(request: ActionRequest):
    """
    Action dispatch: test_connection, get_tables, get_table_schema,
    execute_query. Each call uses its own short-lived connection.
    """
    try:
        status_code, body = connections.dispatch(request)
    except Exception:
        logger.exception("Database connection error")
        return failure(INTERNAL_ERROR_MESSAGE, 500, key="message")
    return envelope(body, status_code=status_code)


@app.post("/functions/external-db")
def external_db_query(request: ExternalQueryRequest):
    """Generic {connection, query, params} proxy."""
    try:
        status_code, body = external_db.execute(request)
    except Exception:
        logger.exception("Database operation failed")
        return failure("Database operation failed", 500)
    return envelope(body, status_code=status_code)


@app.get("/functions/get-public-ip")
async def get_public_ip(request: Request):
    """Caller IP as seen through proxies/CDN headers."""
    return envelope({"success": True, "data": client_ip_service.describe_client(request.headers)})


# === Proxy Server ===

@app.get("/health")
def health_check(engine: ProxyEngine):
    """Pool connectivity; 503 when the database is unreachable."""
    status_code, body = proxy.health(engine)
    return envelope(body, status_code=status_code)


@app.post("/api/test-connection", dependencies=[ApiKey])
def api_test_connection(body: ProxyConnectionTest, settings: SettingsDep):
    status_code, result = proxy.test_connection(body, settings)
    return envelope(result, status_code=status_code)


@app.post("/api/query", dependencies=[ApiKey])
def api_query(body: ProxyQueryRequest, request: Request, engine: ProxyEngine, settings: SettingsDep):
    status_code, result = proxy.execute_query(engine, body, settings, client_ip(request))
    return envelope(result, status_code=status_code)


@app.get("/api/tables", dependencies=[ApiKey])
def api_tables(engine: ProxyEngine, settings: SettingsDep):
    status_code, result = proxy.list_tables(engine, settings)
    return envelope(result, status_code=status_code)


@app.get("/api/tables/{table_name}/schema", dependencies=[ApiKey])
def api_table_schema(table_name: str, engine: ProxyEngine, settings: SettingsDep):
    status_code, result = proxy.table_schema(engine, table_name, settings)
    return envelope(result, status_code=status_code)


# === Dashboard Table Store ===

def _store_failure(exc: Exception):
    classified = classify(exc)
    logger.warning("Store operation failed: %s", classified.raw_message)
    return failure(classified.message, 400)


@app.post("/store/init")
def store_init(request: StoreRequest):
    """Create saved_prompts, api_credentials, ai_personas, ai_settings if missing."""
    try:
        with store.store_engine(request.connection) as engine:
            tables = store.init_schema(engine)
    except DATABASE_ERRORS as e:
        return _store_failure(e)
    return envelope({"success": True, "message": "Schema initialized", "tables": tables})


@app.post("/store/saved-prompts/list")
def store_list_saved_prompts(request: UserScopedRequest):
    try:
        with store.store_engine(request.connection) as engine:
            prompts = store.list_saved_prompts(engine, request.user_id)
    except DATABASE_ERRORS as e:
        return _store_failure(e)
    return envelope({"success": True, "data": [p.model_dump() for p in prompts]})


@app.post("/store/saved-prompts")
def store_create_saved_prompt(request: SavedPromptCreateRequest):
    try:
        with store.store_engine(request.connection) as engine:
            prompt = store.create_saved_prompt(engine, request.prompt)
    except DATABASE_ERRORS as e:
        return _store_failure(e)
    return envelope({"success": True, "data": prompt.model_dump()}, status_code=201)


@app.put("/store/saved-prompts/{prompt_id}")
def store_update_saved_prompt(prompt_id: str, request: SavedPromptCreateRequest):
    try:
        with store.store_engine(request.connection) as engine:
            prompt = store.update_saved_prompt(engine, prompt_id, request.prompt)
    except DATABASE_ERRORS as e:
        return _store_failure(e)
    if prompt is None:
        return failure("Saved prompt not found", 404)
    return envelope({"success": True, "data": prompt.model_dump()})


@app.delete("/store/saved-prompts/{prompt_id}")
def store_delete_saved_prompt(prompt_id: str, request: StoreRequest):
    try:
        with store.store_engine(request.connection) as engine:
            deleted = store.delete_saved_prompt(engine, prompt_id)
    except DATABASE_ERRORS as e:
        return _store_failure(e)
    if not deleted:
        return failure("Saved prompt not found", 404)
    return envelope({"success": True, "message": "Saved prompt deleted"})


@app.post("/store/api-credentials/list")
def store_list_api_credentials(request: UserScopedRequest):
    try:
        with store.store_engine(request.connection) as engine:
            credentials = store.list_api_credentials(engine, request.user_id)
    except DATABASE_ERRORS as e:
        return _store_failure(e)
    return envelope({"success": True, "data": [c.model_dump() for c in credentials]})


@app.post("/store/api-credentials")
def store_create_api_credential(request: ApiCredentialCreateRequest):
    try:
        with store.store_engine(request.connection) as engine:
            credential = store.create_api_credential(engine, request.credential)
    except DATABASE_ERRORS as e:
        return _store_failure(e)
    return envelope({"success": True, "data": credential.model_dump()}, status_code=201)


@app.post("/store/ai-personas/list")
def store_list_ai_personas(request: UserScopedRequest):
    try:
        with store.store_engine(request.connection) as engine:
            personas = store.list_ai_personas(engine, request.user_id)
    except DATABASE_ERRORS as e:
        return _store_failure(e)
    return envelope({"success": True, "data": [p.model_dump() for p in personas]})


@app.post("/store/ai-personas")
def store_create_ai_persona(request: AiPersonaCreateRequest):
    try:
        with store.store_engine(request.connection) as engine:
            persona = store.create_ai_persona(engine, request.persona)
    except DATABASE_ERRORS as e:
        return _store_failure(e)
    return envelope({"success": True, "data": persona.model_dump()}, status_code=201)


@app.post("/store/ai-settings/get")
def store_get_ai_settings(request: UserScopedRequest):
    try:
        with store.store_engine(request.connection) as engine:
            ai_settings = store.get_ai_settings(engine, request.user_id)
    except DATABASE_ERRORS as e:
        return _store_failure(e)
    return envelope({
        "success": True,
        "data": ai_settings.model_dump() if ai_settings else None,
    })


@app.put("/store/ai-settings")
def store_save_ai_settings(request: AiSettingsSaveRequest):
    try:
        with store.store_engine(request.connection) as engine:
            ai_settings = store.save_ai_settings(engine, request.settings)
    except DATABASE_ERRORS as e:
        return _store_failure(e)
    return envelope({"success": True, "data": ai_settings.model_dump()})
