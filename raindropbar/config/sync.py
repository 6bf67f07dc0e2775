from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class SyncConfig(BaseModel):
    """Paging, checkpointing and scheduling for the sync orchestrator."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    page_size: int = Field(default=50, validation_alias="SYNC_PAGE_SIZE")
    checkpoint_interval_pages: int = Field(
        default=10, validation_alias="SYNC_CHECKPOINT_INTERVAL_PAGES"
    )
    overlap_sec: int = Field(default=600, validation_alias="SYNC_OVERLAP_SEC")
    auto_interval_sec: int = Field(default=900, validation_alias="SYNC_AUTO_INTERVAL_SEC")
    auto_enabled: bool = Field(default=True, validation_alias="SYNC_AUTO_ENABLED")
    trash_enabled: bool = Field(default=False, validation_alias="SYNC_TRASH_ENABLED")

    @field_validator("page_size", mode="before")
    @classmethod
    def _validate_page_size(cls, value: Any) -> int:
        try:
            parsed = int(str(value if value not in (None, "") else 50))
        except ValueError as exc:
            msg = "Sync page size must be a valid integer"
            raise ValueError(msg) from exc
        # The API caps perpage at 50.
        if parsed < 1 or parsed > 50:
            msg = "Sync page size must be between 1 and 50"
            raise ValueError(msg)
        return parsed

    @field_validator("checkpoint_interval_pages", "auto_interval_sec", mode="before")
    @classmethod
    def _validate_positive_int(cls, value: Any, info: ValidationInfo) -> int:
        default = cls.model_fields[info.field_name].default
        try:
            parsed = int(str(value if value not in (None, "") else default))
        except ValueError as exc:
            msg = f"{info.field_name.replace('_', ' ')} must be a valid integer"
            raise ValueError(msg) from exc
        if parsed <= 0:
            msg = f"{info.field_name.replace('_', ' ').capitalize()} must be positive"
            raise ValueError(msg)
        return parsed

    @field_validator("overlap_sec", mode="before")
    @classmethod
    def _validate_overlap(cls, value: Any) -> int:
        try:
            parsed = int(str(value if value not in (None, "") else 600))
        except ValueError as exc:
            msg = "Sync overlap must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 0:
            msg = "Sync overlap cannot be negative"
            raise ValueError(msg)
        return parsed
