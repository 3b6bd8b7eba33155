"""Lifecycle of temporary working copies: create, populate, export, delete.

Every failure after ``create`` routes through a best-effort delete before the
original exception propagates, so a handle never outlives the call that broke
it. Cleanup errors are attached to the original exception as secondary
information.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Mapping
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator

from docsynth.config import settings
from docsynth.errors import (
    CleanupFailure,
    DocSynthError,
    InvalidHandleState,
    OperationTimeout,
    attach_secondary,
)
from docsynth.models.events import EventCategory, LogLevel
from docsynth.models.interfaces import (
    AccessStrategy,
    DataRecord,
    DocumentReference,
    HandleKind,
    HandleState,
    ImageConfig,
    LineItemConfig,
    TempResourceHandle,
)
from docsynth.services.google_docs import GoogleDocsApiClient, document_text
from docsynth.services.logger import log_resource_operation
from docsynth.services.observability import ObservabilityLog, default_log, safe_emit
from docsynth.services.renderer import HtmlDocumentRenderer, Renderer
from docsynth.template_core.acquire.service import ContentAcquirer
from docsynth.template_core.substitute.markup import clean_document_html, escape_markup
from docsynth.template_core.substitute.service import SubstitutionEngine
from docsynth.template_core.resources.registry import LiveHandleRegistry

TRANSITIONS: dict[HandleState, frozenset[HandleState]] = {
    HandleState.UNINITIALIZED: frozenset({HandleState.CREATED}),
    HandleState.CREATED: frozenset({HandleState.POPULATED, HandleState.FAILED, HandleState.DELETED}),
    HandleState.POPULATED: frozenset(
        {HandleState.POPULATED, HandleState.EXPORTED, HandleState.FAILED, HandleState.DELETED}
    ),
    HandleState.EXPORTED: frozenset({HandleState.FAILED, HandleState.DELETED}),
    HandleState.FAILED: frozenset({HandleState.DELETED}),
    HandleState.DELETED: frozenset(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def transition(handle: TempResourceHandle, target: HandleState) -> None:
    if target not in TRANSITIONS[handle.state]:
        raise InvalidHandleState(
            f"Handle {handle.id} cannot move from {handle.state.value} to {target.value}",
            context={"handle_id": handle.id, "state": handle.state.value, "target": target.value},
        )
    handle.state = target


class TemporaryResourceManager:
    """Owns every working copy it creates; use ``async with`` to bound their lifetime."""

    def __init__(
        self,
        *,
        registry: LiveHandleRegistry | None = None,
        acquirer: ContentAcquirer | None = None,
        substitution: SubstitutionEngine | None = None,
        renderer: Renderer | None = None,
        google_client: GoogleDocsApiClient | None = None,
        ttl_hours: float | None = None,
        render_timeout_s: float | None = None,
        cleanup_timeout_s: float | None = None,
        clock: Callable[[], datetime] | None = None,
        log: ObservabilityLog | None = None,
    ):
        self.registry = registry if registry is not None else LiveHandleRegistry()
        self.acquirer = acquirer or ContentAcquirer()
        self.substitution = substitution or SubstitutionEngine()
        self.renderer = renderer or HtmlDocumentRenderer()
        self.google_client = google_client
        self.ttl = timedelta(hours=settings.temp_resource_ttl_hours if ttl_hours is None else ttl_hours)
        self.render_timeout_s = settings.render_timeout_s if render_timeout_s is None else render_timeout_s
        self.cleanup_timeout_s = settings.cleanup_timeout_s if cleanup_timeout_s is None else cleanup_timeout_s
        self._clock = clock or _utcnow
        self._log = log if log is not None else default_log
        self._busy: set[str] = set()

    async def __aenter__(self) -> TemporaryResourceManager:
        return self

    async def __aexit__(self, *_exc_info: Any) -> None:
        await self.cleanup_all()

    async def create(self, reference: DocumentReference) -> TempResourceHandle:
        strategy = reference.strategy or AccessStrategy.PUBLIC_COPY
        now = self._clock()
        handle = TempResourceHandle(
            id=f"tmp_{uuid.uuid4().hex}",
            kind=HandleKind.REMOTE_COPY if strategy == AccessStrategy.API_ACCESS else HandleKind.EPHEMERAL,
            created_at=now,
            expiry=now + self.ttl,
            reference=reference.with_strategy(strategy),
        )
        if handle.kind == HandleKind.REMOTE_COPY:
            await self._create_remote_copy(handle)
        else:
            await self._create_ephemeral(handle)

        transition(handle, HandleState.CREATED)
        self.registry.add(handle)
        log_resource_operation("create", handle.id, "success", details=f"{handle.kind.value} of {reference.document_id}")
        self._emit(LogLevel.INFO, "Working copy created", handle)
        return handle

    async def populate(
        self,
        handle: TempResourceHandle,
        mapping: Mapping[str, str],
        record: DataRecord | Mapping[str, Any] | None,
        line_items: LineItemConfig | None = None,
        image_config: ImageConfig | None = None,
    ) -> TempResourceHandle:
        self._require_live(handle, {HandleState.CREATED, HandleState.POPULATED})
        with self._exclusive(handle):
            try:
                if handle.kind == HandleKind.REMOTE_COPY:
                    if handle.state == HandleState.POPULATED:
                        # The previous edits consumed the placeholders; start over from the template.
                        await self._replace_remote_copy(handle)
                    requests = self.substitution.build_replace_requests(mapping, record, line_items)
                    await asyncio.wait_for(
                        self._apply_remote_edits(handle, requests),
                        timeout=self.render_timeout_s,
                    )
                else:
                    # Always from the pristine template, so repeat calls overwrite.
                    handle.content = self.substitution.substitute(
                        handle.template_content,
                        mapping,
                        record,
                        line_items,
                        image_config,
                        target="text" if handle.format_hint == "txt" else "html",
                    )
                transition(handle, HandleState.POPULATED)
            except Exception as exc:
                await self._fail(handle, exc, "populate")
                raise
        log_resource_operation("populate", handle.id, "success")
        self._emit(LogLevel.INFO, "Working copy populated", handle)
        return handle

    async def export(self, handle: TempResourceHandle) -> bytes:
        self._require_live(handle, {HandleState.CREATED, HandleState.POPULATED})
        with self._exclusive(handle):
            try:
                try:
                    data = await asyncio.wait_for(self._render(handle), timeout=self.render_timeout_s)
                except (TimeoutError, asyncio.TimeoutError) as exc:
                    raise OperationTimeout(
                        f"Export of {handle.id} exceeded {self.render_timeout_s}s",
                        context={"handle_id": handle.id},
                    ) from exc
                transition(handle, HandleState.EXPORTED)
            except Exception as exc:
                await self._fail(handle, exc, "export")
                raise
        log_resource_operation("export", handle.id, "success", details=f"{len(data)} bytes")
        self._emit(LogLevel.INFO, "Working copy exported", handle, output_size=len(data))

        try:
            await self.delete(handle)
        except CleanupFailure as exc:
            # The export already succeeded; a leaked remote copy is reported, not raised.
            log_resource_operation("delete", handle.id, "failed", error=str(exc))
        return data

    async def delete(self, handle: TempResourceHandle) -> None:
        if handle.state == HandleState.DELETED:
            return
        try:
            if handle.is_expired(self._clock()):
                log_resource_operation("delete", handle.id, "skipped", details="expired")
                return
            if handle.kind == HandleKind.REMOTE_COPY and handle.remote_id:
                try:
                    await asyncio.wait_for(
                        self._google().delete_document(handle.remote_id),
                        timeout=self.cleanup_timeout_s,
                    )
                except Exception as exc:
                    raise CleanupFailure(
                        f"Failed to delete working copy {handle.remote_id}: {exc}",
                        context={"handle_id": handle.id, "remote_id": handle.remote_id},
                    ) from exc
            log_resource_operation("delete", handle.id, "success")
        finally:
            self.registry.discard(handle.id)
            handle.state = HandleState.DELETED
            handle.content = ""
            self._emit(LogLevel.DEBUG, "Working copy deleted", handle)

    async def cleanup_all(self) -> int:
        """Best-effort delete of every live handle. Returns how many remain registered."""
        handles = self.registry.snapshot()
        results = await asyncio.gather(*(self.delete(h) for h in handles), return_exceptions=True)
        for handle, result in zip(handles, results):
            if isinstance(result, BaseException):
                log_resource_operation("cleanup_all", handle.id, "failed", error=str(result))
        remaining = len(self.registry)
        safe_emit(
            self._log,
            LogLevel.INFO,
            EventCategory.RESOURCES,
            "Cleanup completed",
            {"attempted": len(handles), "remaining": remaining},
        )
        return remaining

    async def _create_remote_copy(self, handle: TempResourceHandle) -> None:
        client = self._google()
        document_id = handle.reference.document_id
        handle.remote_id = await client.copy_document(document_id, f"docsynth working copy {document_id}")
        try:
            document = await client.read_document(handle.remote_id)
        except Exception as exc:
            # Never leave the fresh copy behind.
            try:
                await asyncio.wait_for(client.delete_document(handle.remote_id), timeout=self.cleanup_timeout_s)
                handle.remote_id = None
            except Exception as cleanup_exc:
                attach_secondary(exc, cleanup_exc)
            raise
        handle.title = str(document.get("title") or "")
        handle.template_content = document_text(document)
        handle.content = handle.template_content
        handle.format_hint = "txt"
        handle.acquisition_method = "google-api"

    async def _replace_remote_copy(self, handle: TempResourceHandle) -> None:
        previous = handle.remote_id
        if previous:
            try:
                await asyncio.wait_for(self._google().delete_document(previous), timeout=self.cleanup_timeout_s)
            except Exception as exc:
                raise CleanupFailure(
                    f"Failed to delete working copy {previous}: {exc}",
                    context={"handle_id": handle.id, "remote_id": previous},
                ) from exc
            log_resource_operation("delete", handle.id, "success", details=f"replaced {previous}")
        handle.remote_id = None
        await self._create_remote_copy(handle)

    async def _apply_remote_edits(self, handle: TempResourceHandle, requests: list[dict[str, Any]]) -> None:
        client = self._google()
        await client.batch_update(handle.remote_id or "", requests)
        document = await client.read_document(handle.remote_id or "")
        handle.content = document_text(document)

    async def _create_ephemeral(self, handle: TempResourceHandle) -> None:
        acquisition = await self.acquirer.acquire(handle.reference)
        content = acquisition.content
        if acquisition.format_hint != "txt":
            content = clean_document_html(content)
        handle.template_content = content
        handle.content = content
        handle.format_hint = acquisition.format_hint
        handle.title = acquisition.title
        handle.acquisition_method = acquisition.method

    async def _render(self, handle: TempResourceHandle) -> bytes:
        if handle.kind == HandleKind.REMOTE_COPY:
            return await self._google().export_pdf(handle.remote_id or "")
        markup = handle.content
        if handle.format_hint == "txt":
            markup = f"<pre>{escape_markup(markup)}</pre>"
        return await self.renderer.render(markup, title=handle.title)

    async def _fail(self, handle: TempResourceHandle, exc: BaseException, operation: str) -> None:
        log_resource_operation(operation, handle.id, "failed", error=f"{type(exc).__name__}: {exc}")
        if handle.state in TRANSITIONS and HandleState.FAILED in TRANSITIONS[handle.state]:
            handle.state = HandleState.FAILED
        try:
            await self.delete(handle)
        except Exception as cleanup_exc:
            attach_secondary(exc, cleanup_exc)
            log_resource_operation("delete", handle.id, "failed", error=str(cleanup_exc))
        self._emit(LogLevel.ERROR, f"{operation} failed, working copy discarded", handle, error=str(exc))

    def _require_live(self, handle: TempResourceHandle, allowed: set[HandleState]) -> None:
        if handle.state != HandleState.DELETED and handle.is_expired(self._clock()):
            self.registry.discard(handle.id)
            handle.state = HandleState.DELETED
            raise InvalidHandleState(f"Handle {handle.id} expired at {handle.expiry.isoformat()}")
        if handle.state not in allowed:
            raise InvalidHandleState(
                f"Handle {handle.id} is {handle.state.value}; expected one of "
                f"{', '.join(sorted(s.value for s in allowed))}"
            )

    @contextmanager
    def _exclusive(self, handle: TempResourceHandle) -> Iterator[None]:
        if handle.id in self._busy:
            raise InvalidHandleState(f"Handle {handle.id} is already in use")
        self._busy.add(handle.id)
        try:
            yield
        finally:
            self._busy.discard(handle.id)

    def _google(self) -> GoogleDocsApiClient:
        if self.google_client is None:
            raise DocSynthError("api-access working copies require an authenticated Google client")
        return self.google_client

    def _emit(self, level: LogLevel, message: str, handle: TempResourceHandle, **data: Any) -> None:
        safe_emit(
            self._log,
            level,
            EventCategory.RESOURCES,
            message,
            {"handle_id": handle.id, "kind": handle.kind.value, "state": handle.state.value, **data},
        )
