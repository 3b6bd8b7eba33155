from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from docsynth.models.interfaces import AcquisitionAttempt, ImageConfig, LineItemColumn, LineItemConfig


# --- Requests ---


class InspectRequest(BaseModel):
    url: str
    strategy: str | None = None
    fetch: bool = True


class LineItemColumnModel(BaseModel):
    label: str
    source_field: str = Field(alias="sourceField")

    model_config = {"populate_by_name": True}


class LineItemConfigModel(BaseModel):
    enabled: bool = False
    collection_field: str = Field(default="", alias="collectionField")
    columns: list[LineItemColumnModel] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    def to_config(self) -> LineItemConfig:
        return LineItemConfig(
            enabled=self.enabled,
            collection_field=self.collection_field,
            columns=[LineItemColumn(label=c.label, source_field=c.source_field) for c in self.columns],
        )


class ImageConfigModel(BaseModel):
    width: int = Field(default=200, gt=0)
    height: int | Literal["auto"] = "auto"

    def to_config(self) -> ImageConfig:
        return ImageConfig(width=self.width, height=self.height)


class GenerateRequest(BaseModel):
    url: str
    mapping: dict[str, str]
    record: dict[str, Any]
    line_items: LineItemConfigModel | None = None
    image: ImageConfigModel | None = None
    strategy: str | None = None


# --- Responses ---


class ReferenceCheckResponse(BaseModel):
    valid: bool
    errors: list[str]
    document_id: str | None = None
    is_publicly_shared: bool = False


class AttemptResponse(BaseModel):
    method: str
    priority: int
    succeeded: bool
    score: int
    tries: int
    status_code: int | None = None
    content_length: int = 0
    error: str | None = None

    @classmethod
    def from_attempt(cls, attempt: AcquisitionAttempt) -> AttemptResponse:
        return cls(
            method=attempt.method,
            priority=attempt.priority,
            succeeded=attempt.succeeded,
            score=attempt.score,
            tries=attempt.tries,
            status_code=attempt.status_code,
            content_length=attempt.content_length,
            error=attempt.error,
        )


class InspectResponse(BaseModel):
    check: ReferenceCheckResponse
    strategy: str | None = None
    title: str | None = None
    acquisition_method: str | None = None
    placeholders: list[str] = Field(default_factory=list)
    recognizer_counts: dict[str, int] = Field(default_factory=dict)
    attempts: list[AttemptResponse] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    message: str
    context: dict[str, Any] = Field(default_factory=dict)
    diagnostics: list[AttemptResponse] = Field(default_factory=list)
