"""
Configuration management using pydantic and pydantic-settings.

KVConfig is the explicit struct the core accepts from its caller. Settings
loads the same values from environment variables and .env files; only the
CLI reads it, the core never touches the environment.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from sqlkv.exceptions import ConfigurationError
from sqlkv.types import EventListener


class KVConfig(BaseModel):
    """Options recognised by ``open_kv``.

    Attributes:
        auth_token: Token for authenticated backing stores.
        embedded_replica_path: Local file kept in sync with the primary.
        sync_interval: Seconds between automatic replica syncs.
        event_listener: Called with a ChangeEvent after every set and delete.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra="forbid",
        populate_by_name=True,
    )

    auth_token: str | None = Field(default=None, alias="authToken")
    embedded_replica_path: Path | None = Field(
        default=None, alias="embeddedReplicaPath"
    )
    sync_interval: float | None = Field(default=None, gt=0, alias="syncInterval")
    event_listener: EventListener | None = Field(
        default=None, alias="eventListener"
    )

    @field_validator("sync_interval", mode="before")
    @classmethod
    def validate_sync_interval(cls, v: Any) -> Any:
        """Reject booleans, which pydantic would otherwise read as 0/1."""
        if isinstance(v, bool):
            raise ValueError("syncInterval must be number")
        return v

    @classmethod
    def create(cls, config: KVConfig | dict[str, Any] | None = None, **kwargs: Any) -> KVConfig:
        """Build a KVConfig, reporting problems as ConfigurationError.

        Args:
            config: An existing KVConfig, a mapping of options, or None.
            **kwargs: Options overriding those in ``config``.

        Raises:
            ConfigurationError: If any option is invalid.
        """
        if isinstance(config, KVConfig):
            values = config.model_dump()
        else:
            values = dict(config or {})
        values.update(kwargs)

        try:
            return cls.model_validate(values)
        except PydanticValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise ConfigurationError(
                "Invalid KV configuration",
                context={"fields": fields, "errors": e.error_count()},
            ) from e


class Settings(BaseSettings):
    """CLI settings loaded from environment variables.

    Required:
        KV_URL: Location of the primary database

    Optional:
        KV_TOKEN: Auth token for the backing store
        KV_EMBEDDED_REPLICA_PATH: Local replica file
        KV_SYNC_INTERVAL: Seconds between replica syncs
        LOG_LEVEL: Logging level
        LOG_FILE: JSON-lines log file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    KV_URL: str = Field(..., description="Location of the primary database")
    KV_TOKEN: str | None = Field(default=None, description="Backing store auth token")
    KV_EMBEDDED_REPLICA_PATH: Path | None = Field(
        default=None, description="Local embedded replica file"
    )
    KV_SYNC_INTERVAL: float | None = Field(
        default=None, gt=0, description="Seconds between replica syncs"
    )

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON-lines log file")

    @field_validator("KV_URL")
    @classmethod
    def validate_kv_url(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("KV_URL must not be empty")
        return v.strip()

    def to_kv_config(self, **kwargs: Any) -> KVConfig:
        """Build the explicit core configuration from these settings."""
        return KVConfig.create(
            auth_token=self.KV_TOKEN,
            embedded_replica_path=self.KV_EMBEDDED_REPLICA_PATH,
            sync_interval=self.KV_SYNC_INTERVAL,
            **kwargs,
        )

    def redacted_display(self) -> dict[str, str | float | None]:
        """Return settings with the auth token redacted for display."""
        token = self.KV_TOKEN
        if token is not None:
            token = f"{token[:8]}...{token[-4:]}" if len(token) > 12 else "***"

        return {
            "KV_URL": self.KV_URL,
            "KV_TOKEN": token,
            "KV_EMBEDDED_REPLICA_PATH": (
                str(self.KV_EMBEDDED_REPLICA_PATH) if self.KV_EMBEDDED_REPLICA_PATH else None
            ),
            "KV_SYNC_INTERVAL": self.KV_SYNC_INTERVAL,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
