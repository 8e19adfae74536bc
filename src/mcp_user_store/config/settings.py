"""Runtime settings loaded from environment variables."""

from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

NonEmptyStr = Annotated[str, Field(min_length=1)]
PositiveInt = Annotated[int, Field(gt=0)]
PortInt = Annotated[int, Field(ge=1, le=65535)]


class Settings(BaseSettings):
    """Environment-driven application settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: NonEmptyStr = Field(
        default="sqlite+aiosqlite:///:memory:",
        validation_alias="DATABASE_URL",
    )
    database_echo: bool = Field(default=False, validation_alias="DATABASE_ECHO")
    database_auto_create_schema: bool = Field(
        default=True,
        validation_alias="DATABASE_AUTO_CREATE_SCHEMA",
    )
    user_batch_size: PositiveInt = Field(default=20, validation_alias="USER_BATCH_SIZE")
    mcp_server_name: NonEmptyStr = Field(
        default="mcp-user-store",
        validation_alias="MCP_SERVER_NAME",
    )
    mcp_server_version: NonEmptyStr = Field(
        default="1.0.0",
        validation_alias="MCP_SERVER_VERSION",
    )
    cors_allowed_origins: Annotated[list[str], NoDecode] = Field(
        default=["*"],
        validation_alias="CORS_ALLOWED_ORIGINS",
    )
    api_host: NonEmptyStr = Field(default="0.0.0.0", validation_alias="API_HOST")
    api_port: PortInt = Field(default=8080, validation_alias="API_PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: list[str] | str) -> list[str]:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Load and cache application settings."""

    return Settings()
