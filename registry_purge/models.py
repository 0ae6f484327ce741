from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

import dateutil.parser
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Verdict(StrEnum):
    DELETE = "delete"
    PRESERVE = "preserve"
    SKIP = "skip"


class Namespace(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str


class Image(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str


class Tag(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def fallback_to_created_at(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("updated_at"):
            return {**data, "updated_at": data.get("created_at")}
        return data

    @field_validator("updated_at", mode="before")
    @classmethod
    def parse_timestamp(cls, value: Any) -> datetime:
        if isinstance(value, str):
            value = dateutil.parser.parse(value)
        if isinstance(value, datetime) and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class RunStatistics(BaseModel):
    """Counters for one purge run.

    Every enumerated tag lands in exactly one of ``deleted_tags``,
    ``preserved_tags``, ``skipped_tags`` or ``error_tags``.
    """

    namespace: str
    dry_run: bool
    retention_days: int
    cutoff: datetime
    started_at: datetime
    finished_at: datetime | None = None
    images_count: int = 0
    tags_count: int = 0
    deleted_tags: int = 0
    preserved_tags: int = 0
    skipped_tags: int = 0
    error_tags: int = 0
    error_images: int = 0
    errors: list[str] = Field(default_factory=list)

    def counters(self) -> dict[str, int]:
        return {
            "images": self.images_count,
            "tags": self.tags_count,
            "deleted": self.deleted_tags,
            "preserved": self.preserved_tags,
            "skipped": self.skipped_tags,
            "error_tags": self.error_tags,
            "error_images": self.error_images,
        }
