from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

DEFAULT_API_URL = "https://api.raindrop.io/rest/v1"


class RaindropConfig(BaseModel):
    """Raindrop.io REST API access, pacing and retry policy."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_url: str = Field(default=DEFAULT_API_URL, validation_alias="RAINDROP_API_URL")
    request_timeout_sec: float = Field(default=30.0, validation_alias="RAINDROP_REQUEST_TIMEOUT_SEC")
    min_request_interval_sec: float = Field(
        default=0.55, validation_alias="RAINDROP_MIN_REQUEST_INTERVAL_SEC"
    )
    default_throttle_sec: float = Field(default=60.0, validation_alias="RAINDROP_DEFAULT_THROTTLE_SEC")
    max_rate_limit_retries: int = Field(default=3, validation_alias="RAINDROP_MAX_RATE_LIMIT_RETRIES")
    max_server_retries: int = Field(default=4, validation_alias="RAINDROP_MAX_SERVER_RETRIES")
    backoff_base_sec: float = Field(default=0.5, validation_alias="RAINDROP_BACKOFF_BASE_SEC")
    backoff_max_sec: float = Field(default=10.0, validation_alias="RAINDROP_BACKOFF_MAX_SEC")
    backoff_jitter_sec: float = Field(default=0.3, validation_alias="RAINDROP_BACKOFF_JITTER_SEC")

    @field_validator("api_url", mode="before")
    @classmethod
    def _validate_api_url(cls, value: Any) -> str:
        url = str(value or DEFAULT_API_URL).strip()
        if not url:
            return DEFAULT_API_URL
        if not url.startswith(("http://", "https://")):
            msg = "Raindrop API URL must start with http:// or https://"
            raise ValueError(msg)
        return url.rstrip("/")

    @field_validator("request_timeout_sec", "default_throttle_sec", mode="before")
    @classmethod
    def _validate_positive_float(cls, value: Any, info: ValidationInfo) -> float:
        default = cls.model_fields[info.field_name].default
        try:
            parsed = float(str(value if value not in (None, "") else default))
        except ValueError as exc:
            msg = f"{info.field_name.replace('_', ' ')} must be a number"
            raise ValueError(msg) from exc
        if parsed <= 0:
            msg = f"{info.field_name.replace('_', ' ').capitalize()} must be positive"
            raise ValueError(msg)
        return parsed

    @field_validator(
        "min_request_interval_sec",
        "backoff_base_sec",
        "backoff_max_sec",
        "backoff_jitter_sec",
        mode="before",
    )
    @classmethod
    def _validate_non_negative_float(cls, value: Any, info: ValidationInfo) -> float:
        default = cls.model_fields[info.field_name].default
        try:
            parsed = float(str(value if value not in (None, "") else default))
        except ValueError as exc:
            msg = f"{info.field_name.replace('_', ' ')} must be a number"
            raise ValueError(msg) from exc
        if parsed < 0:
            msg = f"{info.field_name.replace('_', ' ').capitalize()} cannot be negative"
            raise ValueError(msg)
        return parsed

    @field_validator("max_rate_limit_retries", "max_server_retries", mode="before")
    @classmethod
    def _validate_retries(cls, value: Any, info: ValidationInfo) -> int:
        default = cls.model_fields[info.field_name].default
        try:
            parsed = int(str(value if value not in (None, "") else default))
        except ValueError as exc:
            msg = f"{info.field_name.replace('_', ' ')} must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 0 or parsed > 20:
            msg = f"{info.field_name.replace('_', ' ').capitalize()} must be between 0 and 20"
            raise ValueError(msg)
        return parsed
