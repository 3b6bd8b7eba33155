"""End-to-end generation: reference -> strategy -> working copy or read-then-render -> bytes."""

from __future__ import annotations

import time
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from docsynth.models.events import EventCategory, LogLevel
from docsynth.models.interfaces import (
    AccessStrategy,
    DataRecord,
    GenerationMetadata,
    GenerationResult,
    ImageConfig,
    LineItemConfig,
)
from docsynth.services.logger import log_generation
from docsynth.services.observability import ObservabilityLog, default_log, safe_emit
from docsynth.services.renderer import HtmlDocumentRenderer, Renderer
from docsynth.template_core.acquire.service import ContentAcquirer
from docsynth.template_core.extract.service import PlaceholderExtractor
from docsynth.template_core.resources.manager import TemporaryResourceManager
from docsynth.template_core.strategy.service import AccessStrategySelector
from docsynth.template_core.substitute.markup import clean_document_html, escape_markup
from docsynth.template_core.substitute.service import SubstitutionEngine


class DocumentSynthesizer:
    def __init__(
        self,
        *,
        selector: AccessStrategySelector | None = None,
        acquirer: ContentAcquirer | None = None,
        extractor: PlaceholderExtractor | None = None,
        substitution: SubstitutionEngine | None = None,
        resources: TemporaryResourceManager | None = None,
        renderer: Renderer | None = None,
        log: ObservabilityLog | None = None,
    ):
        self._log = log if log is not None else default_log
        self.selector = selector or AccessStrategySelector(log=self._log)
        self.extractor = extractor or PlaceholderExtractor()
        self.acquirer = acquirer or ContentAcquirer(extractor=self.extractor, log=self._log)
        self.substitution = substitution or SubstitutionEngine()
        self.renderer = renderer or HtmlDocumentRenderer()
        self.resources = resources or TemporaryResourceManager(
            acquirer=self.acquirer,
            substitution=self.substitution,
            renderer=self.renderer,
            log=self._log,
        )

    async def generate(
        self,
        source_url: str,
        mapping: Mapping[str, str],
        record: DataRecord | Mapping[str, Any] | None,
        line_items: LineItemConfig | None = None,
        image_config: ImageConfig | None = None,
        *,
        strategy: AccessStrategy | str | None = None,
    ) -> GenerationResult:
        started_at = datetime.now(timezone.utc)
        started = time.monotonic()
        record = DataRecord.coerce(record)
        reference = await self.selector.resolve(source_url, override=strategy)
        metadata = GenerationMetadata(
            document_id=reference.document_id,
            strategy=reference.strategy or AccessStrategy.FALLBACK_FETCH,
            started_at=started_at.isoformat(),
        )
        safe_emit(
            self._log,
            LogLevel.INFO,
            EventCategory.GENERATION,
            "Generation started",
            {"document_id": reference.document_id, "strategy": metadata.strategy.value, "record_id": record.id},
        )

        try:
            if metadata.strategy.mutates_working_copy:
                content = await self._mutate_then_export(reference, mapping, record, line_items, image_config, metadata)
            else:
                content = await self._read_then_render(reference, mapping, record, line_items, image_config, metadata)
        except Exception as exc:
            duration_ms = int((time.monotonic() - started) * 1000)
            log_generation(
                reference.document_id,
                "failed",
                record_id=record.id,
                method=metadata.acquisition_method_used or metadata.strategy.value,
                duration_ms=duration_ms,
                error=f"{type(exc).__name__}: {exc}",
            )
            safe_emit(
                self._log,
                LogLevel.ERROR,
                EventCategory.GENERATION,
                "Generation failed",
                {"document_id": reference.document_id, "error": str(exc), **getattr(exc, "context", {})},
            )
            raise

        metadata.output_size = len(content)
        metadata.completed_at = datetime.now(timezone.utc).isoformat()
        metadata.duration_ms = int((time.monotonic() - started) * 1000)
        log_generation(
            reference.document_id,
            "success",
            record_id=record.id,
            method=metadata.acquisition_method_used,
            duration_ms=metadata.duration_ms,
            output_size=metadata.output_size,
        )
        safe_emit(self._log, LogLevel.INFO, EventCategory.GENERATION, "Generation completed", metadata.as_dict())
        return GenerationResult(content=content, metadata=metadata)

    async def _mutate_then_export(self, reference, mapping, record, line_items, image_config, metadata) -> bytes:
        handle = await self.resources.create(reference)
        metadata.title = handle.title
        metadata.content_length = len(handle.template_content)
        metadata.placeholder_count = self.extractor.count(handle.template_content)
        metadata.acquisition_method_used = handle.acquisition_method
        await self.resources.populate(handle, mapping, record, line_items, image_config)
        return await self.resources.export(handle)

    async def _read_then_render(self, reference, mapping, record, line_items, image_config, metadata) -> bytes:
        acquisition = await self.acquirer.acquire(reference, strategy=AccessStrategy.FALLBACK_FETCH)
        metadata.title = acquisition.title
        metadata.content_length = len(acquisition.content)
        metadata.placeholder_count = len(acquisition.placeholders)
        metadata.acquisition_method_used = acquisition.method

        if acquisition.format_hint == "txt":
            text = self.substitution.substitute(
                acquisition.content, mapping, record, line_items, image_config, target="text"
            )
            markup = f"<pre>{escape_markup(text)}</pre>"
        else:
            markup = self.substitution.substitute(
                clean_document_html(acquisition.content), mapping, record, line_items, image_config, target="html"
            )
        return await self.renderer.render(markup, title=acquisition.title)
