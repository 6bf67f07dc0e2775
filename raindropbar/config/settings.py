from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .raindrop import RaindropConfig
from .sync import SyncConfig

DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "raindropbar"


class RuntimeConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    db_path: str = Field(
        default=str(DEFAULT_DATA_DIR / "raindropbar.db"), validation_alias="DB_PATH"
    )
    token_dir: str = Field(default=str(DEFAULT_DATA_DIR / "credentials"), validation_alias="TOKEN_DIR")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    log_use_loguru: bool = Field(default=True, validation_alias="LOG_USE_LOGURU")

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: Any) -> str:
        log_level = str(value or "INFO").upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if log_level not in valid_levels:
            msg = f"Invalid log level: {value}. Must be one of {valid_levels}"
            raise ValueError(msg)
        return log_level

    @field_validator("db_path", "token_dir", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> str:
        raw = str(value or "").strip()
        if not raw:
            msg = "Path settings cannot be empty"
            raise ValueError(msg)
        if "\x00" in raw:
            msg = "Path contains invalid characters"
            raise ValueError(msg)
        if raw == ":memory:":
            return raw
        return str(Path(raw).expanduser())

    @field_validator("log_file", mode="before")
    @classmethod
    def _validate_log_file(cls, value: Any) -> str | None:
        if value is None:
            return None
        trimmed = str(value).strip()
        return str(Path(trimmed).expanduser()) if trimmed else None


@dataclass(frozen=True)
class AppConfig:
    raindrop: RaindropConfig
    sync: SyncConfig
    runtime: RuntimeConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env``.

    Nested models are populated by matching validation_alias on each field.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    raindrop: RaindropConfig = Field(default_factory=RaindropConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    @model_validator(mode="before")
    @classmethod
    def _build_nested_from_env(cls, data: Any) -> Any:
        """Build nested config dicts from flat environment variables.

        Constructor arguments take precedence over the process environment.
        """
        if not isinstance(data, dict):
            return data

        result = dict(data)
        merged_source = {**dict(os.environ), **data}

        for field_name, field_info in cls.model_fields.items():
            annotation = field_info.annotation
            if not isinstance(annotation, type) or not issubclass(annotation, BaseModel):
                continue

            nested_data: dict[str, Any] = {}
            for nested_field_name, nested_field in annotation.model_fields.items():
                env_value = cls._resolve_env_value(merged_source, nested_field)
                if env_value is not None:
                    nested_data[nested_field_name] = env_value

            if nested_data:
                if field_name in result and isinstance(result[field_name], dict):
                    result[field_name] = {**nested_data, **result[field_name]}
                else:
                    result[field_name] = nested_data

        return result

    @staticmethod
    def _resolve_env_value(data: dict[str, Any], field: Any) -> Any | None:
        aliases: list[str] = []
        alias = field.validation_alias
        if isinstance(alias, AliasChoices):
            aliases.extend(choice for choice in alias.choices if isinstance(choice, str))
        elif isinstance(alias, str):
            aliases.append(alias)

        for name in aliases:
            if name in data:
                return data[name]
        return None

    def as_app_config(self) -> AppConfig:
        return AppConfig(raindrop=self.raindrop, sync=self.sync, runtime=self.runtime)


def load_config(**overrides: Any) -> AppConfig:
    """Load application configuration from the environment.

    Args:
        **overrides: Flat ``ALIAS=value`` pairs that win over the environment
            (handy for tests and CLI flags).

    Returns:
        Immutable AppConfig instance with all configuration sections.

    Raises:
        RuntimeError: If configuration validation fails.
    """
    try:
        settings = Settings(**overrides)
    except ValidationError as exc:
        msg = f"Configuration validation failed: {exc}"
        raise RuntimeError(msg) from exc
    return settings.as_app_config()
