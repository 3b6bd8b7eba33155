from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from collections.abc import Mapping
from typing import Any, Literal


class AccessStrategy(str, Enum):
    API_ACCESS = "api-access"
    PUBLIC_COPY = "public-copy"
    FALLBACK_FETCH = "fallback-fetch"

    @property
    def mutates_working_copy(self) -> bool:
        return self in (AccessStrategy.API_ACCESS, AccessStrategy.PUBLIC_COPY)


class AcquisitionDiscipline(str, Enum):
    FIRST_VIABLE = "first_viable"
    BEST_OF_ALL = "best_of_all"


class HandleKind(str, Enum):
    REMOTE_COPY = "remote-copy"
    EPHEMERAL = "ephemeral"


class HandleState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CREATED = "created"
    POPULATED = "populated"
    EXPORTED = "exported"
    FAILED = "failed"
    DELETED = "deleted"


FormatHint = Literal["html", "txt", "proxy-json"]


@dataclass(frozen=True, slots=True)
class DocumentReference:
    source_url: str
    document_id: str
    strategy: AccessStrategy | None = None

    def with_strategy(self, strategy: AccessStrategy) -> DocumentReference:
        return DocumentReference(
            source_url=self.source_url,
            document_id=self.document_id,
            strategy=strategy,
        )


@dataclass(frozen=True, slots=True)
class ReferenceCheck:
    valid: bool
    errors: list[str]
    document_id: str | None = None
    is_publicly_shared: bool = False


@dataclass(frozen=True, slots=True)
class Capabilities:
    api_available: bool = False


@dataclass(frozen=True, slots=True)
class CandidateEndpoint:
    name: str
    url_template: str
    priority: int
    format_hint: FormatHint = "html"
    headers: dict[str, str] = field(default_factory=dict)

    def url_for(self, document_id: str) -> str:
        return self.url_template.format(doc_id=document_id)


@dataclass(slots=True)
class AcquisitionAttempt:
    method: str
    priority: int
    url: str = ""
    succeeded: bool = False
    content: str | None = None
    error: str | None = None
    status_code: int | None = None
    tries: int = 0
    placeholder_signal: bool = False
    placeholder_count: int = 0
    score: int = 0

    @property
    def content_length(self) -> int:
        return len(self.content or "")


@dataclass(slots=True)
class AcquisitionResult:
    reference: DocumentReference
    content: str
    method: str
    format_hint: FormatHint
    title: str
    attempts: list[AcquisitionAttempt]
    placeholders: list[str] = field(default_factory=list)
    elapsed_ms: int = 0


@dataclass(frozen=True, slots=True)
class PlaceholderToken:
    raw_match: str
    normalized_name: str
    recognizer: str = ""


@dataclass(slots=True)
class ExtractionReport:
    names: list[str]
    tokens: list[PlaceholderToken]
    recognizer_counts: dict[str, int]


@dataclass(frozen=True, slots=True)
class Attachment:
    url: str
    filename: str = ""
    media_type: str = ""

    @property
    def is_image(self) -> bool:
        return self.media_type.lower().startswith("image/")

    @classmethod
    def from_value(cls, value: Any) -> Attachment | None:
        """Recognise attachment-like mappings (``{filename, url, type|mediaType}``)."""
        if isinstance(value, Attachment):
            return value
        if not isinstance(value, Mapping):
            return None
        url = value.get("url")
        if not isinstance(url, str) or not url:
            return None
        media_type = (
            value.get("mediaType")
            or value.get("media_type")
            or value.get("type")
            or ""
        )
        filename = value.get("filename") or ""
        return cls(url=url, filename=str(filename), media_type=str(media_type))


@dataclass(slots=True)
class DataRecord:
    fields: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    @classmethod
    def coerce(cls, value: DataRecord | Mapping[str, Any] | None) -> DataRecord:
        if isinstance(value, DataRecord):
            return value
        if value is None:
            return cls()
        fields = value.get("fields")
        if isinstance(fields, Mapping):
            record_id = value.get("id")
            return cls(fields=dict(fields), id=str(record_id) if record_id is not None else None)
        return cls(fields=dict(value))

    def resolve(self, field_name: str) -> Any:
        return self.fields.get(field_name)


@dataclass(frozen=True, slots=True)
class LineItemColumn:
    label: str
    source_field: str


@dataclass(slots=True)
class LineItemConfig:
    enabled: bool = False
    collection_field: str = ""
    columns: list[LineItemColumn] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ImageConfig:
    width: int = 200
    height: int | Literal["auto"] = "auto"

    @property
    def css_height(self) -> str:
        return "auto" if self.height == "auto" else f"{int(self.height)}px"


@dataclass(slots=True)
class TempResourceHandle:
    id: str
    kind: HandleKind
    created_at: datetime
    expiry: datetime
    reference: DocumentReference
    state: HandleState = HandleState.UNINITIALIZED
    remote_id: str | None = None
    template_content: str = ""
    content: str = ""
    format_hint: FormatHint = "html"
    title: str = ""
    acquisition_method: str = ""

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expiry


@dataclass(slots=True)
class GenerationMetadata:
    document_id: str
    strategy: AccessStrategy
    title: str = ""
    placeholder_count: int = 0
    acquisition_method_used: str = ""
    content_length: int = 0
    output_size: int = 0
    started_at: str = ""
    completed_at: str = ""
    duration_ms: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "strategy": self.strategy.value,
            "title": self.title,
            "placeholder_count": self.placeholder_count,
            "acquisition_method_used": self.acquisition_method_used,
            "content_length": self.content_length,
            "output_size": self.output_size,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_ms": self.duration_ms,
        }


@dataclass(slots=True)
class GenerationResult:
    content: bytes
    metadata: GenerationMetadata
