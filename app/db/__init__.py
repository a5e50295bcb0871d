"""
Database module - PostgreSQL access and the dashboard's table models.

Uses SQLAlchemy engines over psycopg2 for raw queries and SQLModel for
the dashboard tables.
"""

from app.db import models, postgres, queries

__all__ = ["models", "postgres", "queries"]
