#!/usr/bin/env python3
"""
DataLLM Backend CLI - Command-line interface for common operations.

Usage:
    python cli.py health               # Check configuration and proxy database
    python cli.py test-connection      # Probe the configured database
    python cli.py tables               # List user tables
    python cli.py init-schema          # Create the dashboard tables
    python cli.py serve                # Run the API server
"""
import sys
import time

# Add app to path
sys.path.insert(0, ".")

from app.config import get_settings
from app.db.postgres import create_pool_engine, fetch_all, fetch_one
from app.db.queries import COUNT_USER_TABLES, LIST_TABLES, SERVER_TIME_PROBE
from app.errors import DATABASE_ERRORS, classify, connection_suggestion
from app.services import store


def print_header(text: str):
    """Print formatted header."""
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def print_status(key: str, value: object, indent: int = 0):
    """Print formatted status line."""
    spaces = "  " * indent
    print(f"{spaces}{key:30s}: {value}")


def require_proxy_db() -> bool:
    settings = get_settings()
    if not settings.proxy_db_configured:
        print("✗ DB_HOST, DB_NAME and DB_USER must be set (environment or .env)")
        return False
    return True


def report_failure(error: Exception):
    classified = classify(error)
    print(f"✗ Connection failed: {classified.raw_message}")
    if classified.code:
        print_status("Error Code", classified.code)
    suggestion = connection_suggestion(classified.category)
    if suggestion:
        print(f"💡 Suggestion: {suggestion}")


def cmd_health():
    """Check configuration and proxy database health."""
    print_header("System Health Check")

    settings = get_settings()

    print("Configuration:")
    print_status("Environment", settings.ENVIRONMENT, 1)
    print_status("API Key", "✓ Set" if settings.API_KEY else "✗ Not set", 1)
    print_status("Allowed Origins", ", ".join(settings.ALLOWED_ORIGINS), 1)
    print_status(
        "Rate Limit",
        f"{settings.RATE_LIMIT_REQUESTS} per {settings.RATE_LIMIT_WINDOW_SECONDS}s",
        1,
    )

    print("\nProxy Database:")
    if not settings.proxy_db_configured:
        print_status("Status", "✗ Not configured", 1)
        print()
        return

    print_status("Host", f"{settings.DB_HOST}:{settings.DB_PORT}", 1)
    print_status("Database", settings.DB_NAME, 1)
    print_status("SSL Mode", settings.DB_SSL_MODE, 1)
    print_status("Max Connections", settings.DB_MAX_CONNECTIONS, 1)

    engine = create_pool_engine(settings)
    try:
        with engine.connect() as conn:
            row = fetch_one(conn, SERVER_TIME_PROBE) or {}
        print_status("Status", "✓ Healthy", 1)
        print_status("Server Time", row.get("server_time"), 1)
    except DATABASE_ERRORS as e:
        print_status("Status", f"✗ Unhealthy: {classify(e).message}", 1)
    finally:
        engine.dispose()

    print()


def cmd_test_connection() -> bool:
    """Probe the configured database and print server details."""
    print_header("PostgreSQL Connection Test")

    if not require_proxy_db():
        return False

    settings = get_settings()
    print_status("Host", settings.DB_HOST)
    print_status("Port", settings.DB_PORT)
    print_status("Database", settings.DB_NAME)
    print_status("User", settings.DB_USER)
    print_status("SSL Mode", settings.DB_SSL_MODE)
    print()

    engine = create_pool_engine(settings)
    try:
        started = time.perf_counter()
        with engine.connect() as conn:
            latency = int((time.perf_counter() - started) * 1000)
            print(f"✅ Connection successful! ({latency}ms)")

            row = fetch_one(conn, SERVER_TIME_PROBE) or {}
            print(f"📅 Server Time: {row.get('server_time')}")
            print(f"🔧 Version: {row.get('version')}")

            count = fetch_one(conn, COUNT_USER_TABLES) or {}
            print(f"📊 User Tables: {count.get('table_count')}")

        print("✅ Connection test completed successfully!")
        return True
    except DATABASE_ERRORS as e:
        report_failure(e)
        return False
    finally:
        engine.dispose()


def cmd_tables() -> bool:
    """List user tables on the configured database."""
    print_header("User Tables")

    if not require_proxy_db():
        return False

    engine = create_pool_engine()
    try:
        with engine.connect() as conn:
            tables = fetch_all(conn, LIST_TABLES)
    except DATABASE_ERRORS as e:
        report_failure(e)
        return False
    finally:
        engine.dispose()

    if not tables:
        print("No user tables found.")
    for table in tables:
        print_status(f"{table['table_schema']}.{table['table_name']}", table["table_type"])
    print()
    return True


def cmd_init_schema() -> bool:
    """Create the dashboard tables on the configured database."""
    print_header("Dashboard Schema Initialization")

    if not require_proxy_db():
        return False

    engine = create_pool_engine()
    try:
        tables = store.init_schema(engine)
    except DATABASE_ERRORS as e:
        report_failure(e)
        return False
    finally:
        engine.dispose()

    for name in tables:
        print(f"✓ {name}")
    print("\n✓ Schema initialized")
    return True


def cmd_serve():
    """Run the API server with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.HOST, port=settings.PORT)


def print_help():
    """Print help message."""
    print("""
DataLLM Backend CLI

Usage:
    python cli.py <command>

Commands:
    health               Check configuration and proxy database health
    test-connection      Probe the configured database (DB_* settings)
    tables               List user tables on the configured database
    init-schema          Create saved_prompts, api_credentials, ai_personas, ai_settings
    serve                Run the API server
    help                 Show this help message

Examples:
    python cli.py health
    DB_SSL_MODE=disable python cli.py test-connection
    python cli.py serve
""")


def main():
    """Main CLI entry point."""
    if len(sys.argv) < 2:
        print_help()
        return

    command = sys.argv[1].lower()

    try:
        if command == "health":
            cmd_health()
        elif command == "test-connection":
            if not cmd_test_connection():
                sys.exit(1)
        elif command == "tables":
            if not cmd_tables():
                sys.exit(1)
        elif command == "init-schema":
            if not cmd_init_schema():
                sys.exit(1)
        elif command == "serve":
            cmd_serve()
        elif command == "help":
            print_help()
        else:
            print(f"Unknown command: {command}")
            print_help()
            sys.exit(1)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    main()
