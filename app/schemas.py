"""
Pydantic schemas for API request bodies.

Design principles:
- Wire field names match what the dashboard sends (tableName, user)
- Connection descriptors convert to ConnectionParams for the db layer
- Response envelopes are plain dicts built by the services
"""
from typing import Any, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, Field, field_validator, ConfigDict

from app.config import SslMode, get_settings
from app.db.postgres import ConnectionParams


# === Connection Descriptors ===

class ConnectionDescriptor(BaseModel):
    """Credentials identifying one target PostgreSQL database."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    host: str = Field(min_length=1, max_length=255)
    port: int = Field(default=5432, ge=1, le=65535)
    database: str = Field(min_length=1, max_length=255)
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(default="", max_length=1024)
    ssl_mode: Optional[SslMode] = None
    connection_timeout: Optional[int] = Field(default=None, ge=1, le=600)

    @field_validator("host", "database", "username")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Reject values that are only whitespace."""
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("ssl_mode", "connection_timeout", mode="before")
    @classmethod
    def blank_as_default(cls, v: Any) -> Any:
        """Forms send '' for untouched optional fields."""
        if v == "":
            return None
        return v

    def to_params(self, timeout: Optional[int] = None) -> ConnectionParams:
        """Convert to the db layer's connection parameters."""
        settings = get_settings()
        return ConnectionParams(
            host=self.host,
            port=self.port,
            database=self.database,
            username=self.username,
            password=self.password,
            ssl_mode=self.ssl_mode or "prefer",
            connect_timeout=timeout or self.connection_timeout or settings.DEFAULT_CONNECTION_TIMEOUT,
        )


class ActionConfig(ConnectionDescriptor):
    """Descriptor plus the action-specific fields of the db-connection function."""
    table_name: Optional[str] = Field(default=None, alias="tableName", max_length=255)
    query: Optional[str] = None
    params: list[Any] = Field(default_factory=list)

    @field_validator("params", mode="before")
    @classmethod
    def null_params(cls, v: Any) -> Any:
        return [] if v is None else v


class ActionRequest(BaseModel):
    """Body of POST /functions/db-connection."""
    action: str
    config: ActionConfig


class ExternalQueryRequest(BaseModel):
    """Body of POST /functions/external-db."""
    connection: ConnectionDescriptor
    query: str = Field(min_length=1)
    params: list[Any] = Field(default_factory=list)


# === Proxy Server ===

class ProxyConnectionTest(BaseModel):
    """Body of POST /api/test-connection (uses 'user', defaults to ssl 'require')."""
    host: str = Field(min_length=1)
    port: int = Field(default=5432, ge=1, le=65535)
    database: str = Field(min_length=1)
    user: str = Field(min_length=1)
    password: str = Field(min_length=1)
    ssl_mode: SslMode = "require"

    def to_params(self) -> ConnectionParams:
        return ConnectionParams(
            host=self.host,
            port=self.port,
            database=self.database,
            username=self.user,
            password=self.password,
            ssl_mode=self.ssl_mode,
            connect_timeout=get_settings().TEST_CONNECTION_TIMEOUT,
        )


class ProxyQueryRequest(BaseModel):
    """Body of POST /api/query."""
    query: str = Field(min_length=1)
    params: list[Any] = Field(default_factory=list)

    @field_validator("query")
    @classmethod
    def validate_length(cls, v: str) -> str:
        limit = get_settings().MAX_QUERY_LENGTH
        if len(v) > limit:
            raise ValueError(f"query must be at most {limit} characters")
        return v


# === Application Tables ===

class StoreRequest(BaseModel):
    """Any /store call: the target database."""
    connection: ConnectionDescriptor


class UserScopedRequest(StoreRequest):
    """List/get calls scoped to one user."""
    user_id: str = Field(min_length=1, max_length=255)


class CreatedAtIn(BaseModel):
    """Client-supplied creation time; naive values are taken as UTC."""
    created_at: Optional[datetime] = None

    @field_validator("created_at")
    @classmethod
    def as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class PromptVariable(BaseModel):
    name: str
    type: str = "text"
    defaultValue: Optional[str] = None
    options: Optional[list[str]] = None


class SavedPromptIn(CreatedAtIn):
    """Saved prompt as created or edited in the dashboard."""
    id: Optional[str] = Field(default=None, max_length=255)
    user_id: str = Field(min_length=1, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    prompt: str = Field(min_length=1)
    category: str = Field(min_length=1, max_length=100)
    tags: list[str] = Field(default_factory=list)
    auto_execute: bool = False
    is_starred: bool = False
    usage_count: int = Field(default=0, ge=0)
    variables: Optional[list[PromptVariable]] = None
    description: Optional[str] = None


class SavedPromptCreateRequest(StoreRequest):
    prompt: SavedPromptIn


class ApiCredentialIn(CreatedAtIn):
    """Stored API key for an LLM provider."""
    id: Optional[str] = Field(default=None, max_length=255)
    user_id: str = Field(min_length=1, max_length=255)
    provider_id: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=255)
    api_key: str = Field(min_length=1)
    model: str = Field(min_length=1, max_length=255)
    is_default: bool = False
    is_active: bool = True
    status: str = Field(default="untested", max_length=50)
    settings: Optional[dict[str, Any]] = None


class ApiCredentialCreateRequest(StoreRequest):
    credential: ApiCredentialIn


class AiPersonaIn(CreatedAtIn):
    id: Optional[str] = Field(default=None, max_length=255)
    user_id: str = Field(min_length=1, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    instructions: str = Field(min_length=1)
    tone: str = Field(min_length=1, max_length=100)
    expertise: list[str] = Field(default_factory=list)
    is_default: bool = False


class AiPersonaCreateRequest(StoreRequest):
    persona: AiPersonaIn


class AiSettingsIn(BaseModel):
    """Per-user generation settings; one row per user."""
    id: Optional[str] = Field(default=None, max_length=255)
    user_id: str = Field(min_length=1, max_length=255)
    default_persona: Optional[str] = Field(default=None, max_length=255)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, ge=1)
    top_p: float = Field(default=0.9, ge=0.0, le=1.0)
    frequency_penalty: float = Field(default=0.0, ge=-2.0, le=2.0)
    presence_penalty: float = Field(default=0.0, ge=-2.0, le=2.0)
    response_format: str = Field(default="detailed", max_length=50)
    include_explanations: bool = True
    show_confidence: bool = False
    enable_context_memory: bool = True
    max_context_length: int = Field(default=4000, ge=1)


class AiSettingsSaveRequest(StoreRequest):
    settings: AiSettingsIn
