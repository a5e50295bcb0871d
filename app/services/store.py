"""
Dashboard tables kept in a user-supplied database.

Saved prompts, API credentials, AI personas and AI settings live in the
target database itself. Every function takes an Engine so the same code
runs against a transient PostgreSQL engine in production and SQLite in
tests.
"""
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy import desc
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, select

from app.db.models import (
    APP_TABLES,
    AiPersona,
    AiSettings,
    ApiCredential,
    SavedPrompt,
    utc_now,
)
from app.db.postgres import create_transient_engine
from app.schemas import (
    AiPersonaIn,
    AiSettingsIn,
    ApiCredentialIn,
    ConnectionDescriptor,
    SavedPromptIn,
)


logger = logging.getLogger(__name__)

# Fields the dashboard may change on an existing saved prompt
SAVED_PROMPT_EDITABLE = (
    "name",
    "prompt",
    "category",
    "tags",
    "auto_execute",
    "variables",
    "description",
)


@contextmanager
def store_engine(connection: ConnectionDescriptor) -> Iterator[Engine]:
    """Transactional engine for one request against the caller's database."""
    engine = create_transient_engine(connection.to_params(), autocommit=False)
    try:
        yield engine
    finally:
        engine.dispose()


def _row_values(data: Any) -> dict[str, Any]:
    """Input model to column values; server-side defaults fill missing id/created_at."""
    values = data.model_dump()
    for key in ("id", "created_at"):
        if values.get(key) is None:
            values.pop(key, None)
    return values


def _insert(engine: Engine, row: SQLModel) -> SQLModel:
    with Session(engine) as session:
        session.add(row)
        session.commit()
        session.refresh(row)
        return row


def _list_for_user(engine: Engine, model: type[SQLModel], user_id: str) -> list[Any]:
    with Session(engine) as session:
        statement = (
            select(model)
            .where(model.user_id == user_id)
            .order_by(desc(model.created_at))
        )
        return list(session.exec(statement).all())


# === Schema ===

def init_schema(engine: Engine) -> list[str]:
    """
    Create the dashboard tables and their user_id indexes if missing.

    Returns:
        Names of the managed tables
    """
    SQLModel.metadata.create_all(engine, tables=APP_TABLES, checkfirst=True)
    names = [table.name for table in APP_TABLES]
    logger.info("Application tables ensured: %s", ", ".join(names))
    return names


# === Saved Prompts ===

def list_saved_prompts(engine: Engine, user_id: str) -> list[SavedPrompt]:
    """Newest first."""
    return _list_for_user(engine, SavedPrompt, user_id)


def create_saved_prompt(engine: Engine, data: SavedPromptIn) -> SavedPrompt:
    return _insert(engine, SavedPrompt(**_row_values(data)))


def update_saved_prompt(
    engine: Engine,
    prompt_id: str,
    data: SavedPromptIn,
) -> Optional[SavedPrompt]:
    """Apply editable fields; None when the prompt does not exist."""
    values = data.model_dump()
    with Session(engine) as session:
        prompt = session.get(SavedPrompt, prompt_id)
        if prompt is None:
            return None
        for key in SAVED_PROMPT_EDITABLE:
            setattr(prompt, key, values[key])
        session.add(prompt)
        session.commit()
        session.refresh(prompt)
        return prompt


def delete_saved_prompt(engine: Engine, prompt_id: str) -> bool:
    with Session(engine) as session:
        prompt = session.get(SavedPrompt, prompt_id)
        if prompt is None:
            return False
        session.delete(prompt)
        session.commit()
        return True


# === API Credentials ===

def list_api_credentials(engine: Engine, user_id: str) -> list[ApiCredential]:
    return _list_for_user(engine, ApiCredential, user_id)


def create_api_credential(engine: Engine, data: ApiCredentialIn) -> ApiCredential:
    return _insert(engine, ApiCredential(**_row_values(data)))


# === AI Personas ===

def list_ai_personas(engine: Engine, user_id: str) -> list[AiPersona]:
    return _list_for_user(engine, AiPersona, user_id)


def create_ai_persona(engine: Engine, data: AiPersonaIn) -> AiPersona:
    return _insert(engine, AiPersona(**_row_values(data)))


# === AI Settings ===

def get_ai_settings(engine: Engine, user_id: str) -> Optional[AiSettings]:
    with Session(engine) as session:
        statement = select(AiSettings).where(AiSettings.user_id == user_id).limit(1)
        return session.exec(statement).first()


def save_ai_settings(engine: Engine, data: AiSettingsIn) -> AiSettings:
    """Insert or update the single settings row for data.user_id."""
    values = data.model_dump()
    values.pop("id", None)

    with Session(engine) as session:
        statement = select(AiSettings).where(AiSettings.user_id == data.user_id)
        settings = session.exec(statement).first()

        if settings is None:
            settings = AiSettings(**values)
            if data.id:
                settings.id = data.id
        else:
            for key, value in values.items():
                setattr(settings, key, value)
        settings.updated_at = utc_now()

        session.add(settings)
        session.commit()
        session.refresh(settings)
        return settings
