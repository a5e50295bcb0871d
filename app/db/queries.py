"""
Fixed SQL issued against the target database.
"""

# Probe used by test_connection on the function endpoint
VERSION_PROBE = "SELECT version() AS version, current_database() AS database"

# Probe used by /health and /api/test-connection
SERVER_TIME_PROBE = "SELECT NOW() AS server_time, version() AS version"

LIST_TABLES = """
    SELECT
        table_name,
        table_schema,
        table_type
    FROM information_schema.tables
    WHERE table_schema NOT IN ('information_schema', 'pg_catalog')
    ORDER BY table_schema, table_name
"""

COUNT_USER_TABLES = """
    SELECT COUNT(*) AS table_count
    FROM information_schema.tables
    WHERE table_schema NOT IN ('information_schema', 'pg_catalog')
"""

TABLE_COLUMNS = """
    SELECT
        column_name,
        data_type,
        is_nullable,
        column_default,
        character_maximum_length,
        numeric_precision,
        numeric_scale
    FROM information_schema.columns
    WHERE table_name = $1
    AND table_schema NOT IN ('information_schema', 'pg_catalog')
    ORDER BY ordinal_position
"""
