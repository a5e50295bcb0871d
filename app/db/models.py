"""
SQLModel models for the dashboard's own tables in a target database.

Rows are tagged with a free-form user_id; there are no foreign keys.
JSON and array columns use JSONB / TEXT[] on PostgreSQL and plain JSON
elsewhere, so the same models work against SQLite in tests.
"""
from typing import Any, Optional
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Numeric
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlmodel import SQLModel, Field, Column, Text, Index


JsonType = JSON().with_variant(JSONB(), "postgresql")
TextArrayType = JSON().with_variant(ARRAY(Text), "postgresql")


def timestamp_column(nullable: bool = True) -> Column:
    """TIMESTAMPTZ; values are stored as UTC."""
    return Column(DateTime(timezone=True), nullable=nullable)


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class SavedPrompt(SQLModel, table=True):
    """Prompt saved from the data analyzer, optionally starred or auto-executed."""
    __tablename__ = "saved_prompts"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=255)
    user_id: str = Field(max_length=255, nullable=False)

    name: str = Field(max_length=255, nullable=False)
    prompt: str = Field(sa_column=Column(Text, nullable=False))
    category: str = Field(max_length=100, nullable=False)
    tags: Optional[list[str]] = Field(default=None, sa_column=Column(TextArrayType))

    auto_execute: bool = Field(default=False)
    is_starred: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column(nullable=False))
    last_used: Optional[datetime] = Field(default=None, sa_column=timestamp_column())
    usage_count: int = Field(default=0)

    variables: Optional[Any] = Field(default=None, sa_column=Column(JsonType))
    description: Optional[str] = Field(default=None, sa_column=Column(Text))

    __table_args__ = (
        Index("idx_saved_prompts_user_id", "user_id"),
    )


class ApiCredential(SQLModel, table=True):
    """LLM provider credential with usage bookkeeping."""
    __tablename__ = "api_credentials"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=255)
    user_id: str = Field(max_length=255, nullable=False)

    provider_id: str = Field(max_length=100, nullable=False)
    name: str = Field(max_length=255, nullable=False)
    api_key: str = Field(sa_column=Column(Text, nullable=False))
    model: str = Field(max_length=255, nullable=False)

    is_default: bool = Field(default=False)
    is_active: bool = Field(default=True)
    last_tested: Optional[datetime] = Field(default=None, sa_column=timestamp_column())
    status: str = Field(default="untested", max_length=50)

    usage_data: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JsonType))
    settings: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JsonType))

    created_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column(nullable=False))

    __table_args__ = (
        Index("idx_api_credentials_user_id", "user_id"),
    )


class AiPersona(SQLModel, table=True):
    """Named instruction set and tone for AI responses."""
    __tablename__ = "ai_personas"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=255)
    user_id: str = Field(max_length=255, nullable=False)

    name: str = Field(max_length=255, nullable=False)
    description: Optional[str] = Field(default=None, sa_column=Column(Text))
    instructions: str = Field(sa_column=Column(Text, nullable=False))
    tone: str = Field(max_length=100, nullable=False)
    expertise: Optional[list[str]] = Field(default=None, sa_column=Column(TextArrayType))
    is_default: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column(nullable=False))

    __table_args__ = (
        Index("idx_ai_personas_user_id", "user_id"),
    )


class AiSettings(SQLModel, table=True):
    """
    Generation settings, one row per user.

    The unique index on user_id is what makes save-by-user an upsert.
    """
    __tablename__ = "ai_settings"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=255)
    user_id: str = Field(max_length=255, nullable=False)

    default_persona: Optional[str] = Field(default=None, max_length=255)
    temperature: float = Field(default=0.7, sa_column=Column(Numeric(3, 2, asdecimal=False)))
    max_tokens: int = Field(default=2048)
    top_p: float = Field(default=0.9, sa_column=Column(Numeric(3, 2, asdecimal=False)))
    frequency_penalty: float = Field(default=0.0, sa_column=Column(Numeric(3, 2, asdecimal=False)))
    presence_penalty: float = Field(default=0.0, sa_column=Column(Numeric(3, 2, asdecimal=False)))
    response_format: str = Field(default="detailed", max_length=50)
    include_explanations: bool = Field(default=True)
    show_confidence: bool = Field(default=False)
    enable_context_memory: bool = Field(default=True)
    max_context_length: int = Field(default=4000)

    updated_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column(nullable=False))

    __table_args__ = (
        Index("idx_ai_settings_user_id", "user_id", unique=True),
    )


APP_TABLES = [
    SavedPrompt.__table__,
    ApiCredential.__table__,
    AiPersona.__table__,
    AiSettings.__table__,
]
