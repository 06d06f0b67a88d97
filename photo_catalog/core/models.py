from __future__ import annotations

from datetime import datetime, time
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class TechnicalMetadata(BaseModel):
    captured_at: Optional[datetime] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    gps_latitude: Optional[float] = None
    gps_longitude: Optional[float] = None
    exposure_time: Optional[float] = None
    f_number: Optional[float] = None
    iso: Optional[int] = None
    focal_length: Optional[float] = None
    orientation: Optional[int] = None

    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())


def normalize_extension(extension: str) -> str:
    """Lower-case, dot-prefixed form used as the script index key (".JPG" and "jpg" -> ".jpg")."""
    ext = extension.strip().lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return ext


class ExtensionTrigger(BaseModel):
    """Run against every ingested file carrying this extension."""

    kind: Literal["extension"] = "extension"
    extension: str

    @field_validator("extension")
    @classmethod
    def _norm_extension(cls, v: str) -> str:
        normalized = normalize_extension(v)
        if normalized in {"", "."}:
            raise ValueError("extension is required")
        return normalized


class DailyTrigger(BaseModel):
    """Run once per day at a fixed wall-clock time, without a target file."""

    kind: Literal["daily"] = "daily"
    run_time: time


class IntervalTrigger(BaseModel):
    """Run every N minutes, without a target file."""

    kind: Literal["interval"] = "interval"
    minutes: int = Field(gt=0)


ScriptTrigger = Annotated[
    Union[ExtensionTrigger, DailyTrigger, IntervalTrigger], Field(discriminator="kind")
]


class ScriptDefinition(BaseModel):
    id: Optional[int] = None
    name: str
    script_path: Optional[str] = None
    script_contents: Optional[str] = None
    trigger: ScriptTrigger

    def has_inline_contents(self) -> bool:
        return bool(self.script_contents and self.script_contents.strip())


class StageOutcome(BaseModel):
    """Result of one enrichment stage inside a single process_asset call."""

    stage: str
    ok: bool
    error: Optional[str] = None


class ExecutionEntry(BaseModel):
    id: int
    script_id: Optional[int] = None
    script_name: Optional[str] = None
    asset_id: Optional[int] = None
    status: str
    error_message: Optional[str] = None
    executed_at: Optional[datetime] = None


class AssetSummary(BaseModel):
    id: int
    file_path: str
    file_name: str
    file_size: Optional[int] = None
    owner_email: Optional[str] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    thumbnail_path: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    custom_fields: dict[str, str] = Field(default_factory=dict)
    metadata: Optional[TechnicalMetadata] = None
