from __future__ import annotations

import asyncio
import re
from datetime import datetime, timedelta, timezone

import pytest

from docsynth.errors import CleanupFailure, InvalidHandleState, OperationTimeout, RenderFailure
from docsynth.models.interfaces import (
    AccessStrategy,
    AcquisitionResult,
    DocumentReference,
    HandleKind,
    HandleState,
)
from docsynth.template_core.resources.manager import TemporaryResourceManager, transition
from docsynth.template_core.resources.registry import LiveHandleRegistry

TEMPLATE = "<html><head><script>track()</script></head><body><p>Dear {{name}},</p></body></html>"
PUBLIC_REF = DocumentReference(
    source_url="https://docs.google.com/document/d/DOC1/view?usp=sharing",
    document_id="DOC1",
    strategy=AccessStrategy.PUBLIC_COPY,
)
API_REF = DocumentReference(
    source_url="https://docs.google.com/document/d/DOC1/edit",
    document_id="DOC1",
    strategy=AccessStrategy.API_ACCESS,
)


class _FakeAcquirer:
    def __init__(self, content: str = TEMPLATE):
        self.content = content
        self.calls = 0

    async def acquire(self, reference, candidates=None, *, strategy=None):
        self.calls += 1
        return AcquisitionResult(
            reference=reference,
            content=self.content,
            method="html-export",
            format_hint="html",
            title="Letter",
            attempts=[],
        )


class _Renderer:
    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.rendered: list[str] = []

    async def render(self, markup: str, *, title: str = "") -> bytes:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RenderFailure("renderer crashed")
        self.rendered.append(markup)
        return markup.encode("utf-8")


class _FakeGoogle:
    def __init__(self, *, fail_read=False, fail_update=False, fail_delete=False):
        self.fail_read = fail_read
        self.fail_update = fail_update
        self.fail_delete = fail_delete
        self.copies: list[str] = []
        self.deleted: list[str] = []
        self.updates: list[list[dict]] = []

    async def copy_document(self, document_id, title):
        copy_id = f"copy-{len(self.copies) + 1}"
        self.copies.append(copy_id)
        return copy_id

    async def read_document(self, document_id):
        if self.fail_read:
            raise RuntimeError("read failed")
        return {
            "title": "Remote Letter",
            "body": {"content": [{"paragraph": {"elements": [{"textRun": {"content": "Dear {{name}}\n"}}]}}]},
        }

    async def batch_update(self, document_id, requests):
        if self.fail_update:
            raise RuntimeError("quota exceeded")
        self.updates.append(requests)
        return {"documentId": document_id}

    async def export_pdf(self, document_id):
        return b"%PDF-1.7 fake"

    async def delete_document(self, document_id):
        if self.fail_delete:
            raise RuntimeError("drive unavailable")
        self.deleted.append(document_id)


class _EditingGoogle(_FakeGoogle):
    """Keeps per-copy text and applies replaceAllText like the Docs API."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.documents: dict[str, str] = {}

    async def copy_document(self, document_id, title):
        copy_id = await super().copy_document(document_id, title)
        self.documents[copy_id] = "Dear {{name}}\n"
        return copy_id

    async def read_document(self, document_id):
        text = self.documents[document_id]
        return {
            "title": "Remote Letter",
            "body": {"content": [{"paragraph": {"elements": [{"textRun": {"content": text}}]}}]},
        }

    async def batch_update(self, document_id, requests):
        await super().batch_update(document_id, requests)
        text = self.documents[document_id]
        for request in requests:
            edit = request["replaceAllText"]
            pattern = re.compile(re.escape(edit["containsText"]["text"]), re.IGNORECASE)
            text = pattern.sub(lambda _m: edit["replaceText"], text)
        self.documents[document_id] = text
        return {"documentId": document_id}


def _manager(**kwargs) -> TemporaryResourceManager:
    kwargs.setdefault("acquirer", _FakeAcquirer())
    kwargs.setdefault("renderer", _Renderer())
    return TemporaryResourceManager(**kwargs)


@pytest.mark.asyncio
async def test_ephemeral_lifecycle_happy_path():
    registry = LiveHandleRegistry()
    manager = _manager(registry=registry)

    handle = await manager.create(PUBLIC_REF)
    assert handle.kind == HandleKind.EPHEMERAL
    assert handle.state == HandleState.CREATED
    assert handle.id in registry
    assert "<script>" not in handle.template_content
    assert handle.expiry - handle.created_at == timedelta(hours=24)

    await manager.populate(handle, {"name": "Name"}, {"Name": "Ada"})
    assert handle.state == HandleState.POPULATED
    assert "Dear Ada," in handle.content

    data = await manager.export(handle)
    assert b"Dear Ada," in data
    assert handle.state == HandleState.DELETED
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_populate_is_idempotent_and_overwrites():
    manager = _manager()
    handle = await manager.create(PUBLIC_REF)
    await manager.populate(handle, {"name": "Name"}, {"Name": "First"})
    await manager.populate(handle, {"name": "Name"}, {"Name": "Second"})
    assert "Dear Second," in handle.content
    assert "First" not in handle.content


@pytest.mark.asyncio
async def test_export_failure_deletes_handle_and_surfaces_render_failure():
    registry = LiveHandleRegistry()
    manager = _manager(registry=registry, renderer=_Renderer(fail=True))
    handle = await manager.create(PUBLIC_REF)
    await manager.populate(handle, {"name": "Name"}, {"Name": "Ada"})

    with pytest.raises(RenderFailure, match="renderer crashed") as exc_info:
        await manager.export(handle)

    assert handle.state == HandleState.DELETED
    assert len(registry) == 0
    assert exc_info.value.secondary == []


@pytest.mark.asyncio
async def test_export_timeout_is_bounded_and_cleans_up():
    registry = LiveHandleRegistry()
    manager = _manager(registry=registry, renderer=_Renderer(delay=1.0), render_timeout_s=0.02)
    handle = await manager.create(PUBLIC_REF)
    with pytest.raises(OperationTimeout):
        await manager.export(handle)
    assert handle.state == HandleState.DELETED
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_remote_copy_lifecycle_uses_structured_edits():
    google = _FakeGoogle()
    registry = LiveHandleRegistry()
    manager = _manager(registry=registry, google_client=google)

    handle = await manager.create(API_REF)
    assert handle.kind == HandleKind.REMOTE_COPY
    assert handle.remote_id == "copy-1"
    assert handle.title == "Remote Letter"

    await manager.populate(handle, {"name": "Name"}, {"Name": "Ada"})
    assert google.updates[0][0]["replaceAllText"]["replaceText"] == "Ada"

    data = await manager.export(handle)
    assert data.startswith(b"%PDF")
    assert google.deleted == ["copy-1"]
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_cleanup_failure_is_attached_as_secondary():
    google = _FakeGoogle(fail_update=True, fail_delete=True)
    registry = LiveHandleRegistry()
    manager = _manager(registry=registry, google_client=google)
    handle = await manager.create(API_REF)

    with pytest.raises(RuntimeError, match="quota exceeded") as exc_info:
        await manager.populate(handle, {"name": "Name"}, {"Name": "Ada"})

    notes = getattr(exc_info.value, "__notes__", [])
    assert any("CleanupFailure" in note for note in notes)
    assert handle.state == HandleState.DELETED
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_create_removes_remote_copy_when_read_fails():
    google = _FakeGoogle(fail_read=True)
    registry = LiveHandleRegistry()
    manager = _manager(registry=registry, google_client=google)

    with pytest.raises(RuntimeError, match="read failed"):
        await manager.create(API_REF)
    assert google.copies == ["copy-1"]
    assert google.deleted == ["copy-1"]
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_delete_is_idempotent():
    google = _FakeGoogle()
    manager = _manager(google_client=google)
    handle = await manager.create(API_REF)
    await manager.delete(handle)
    await manager.delete(handle)
    assert google.deleted == ["copy-1"]
    assert handle.state == HandleState.DELETED


@pytest.mark.asyncio
async def test_delete_raises_cleanup_failure_but_still_forgets_handle():
    google = _FakeGoogle(fail_delete=True)
    registry = LiveHandleRegistry()
    manager = _manager(registry=registry, google_client=google)
    handle = await manager.create(API_REF)
    with pytest.raises(CleanupFailure):
        await manager.delete(handle)
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_expired_handles_are_treated_as_destroyed():
    now = [datetime(2026, 1, 1, tzinfo=timezone.utc)]
    google = _FakeGoogle()
    registry = LiveHandleRegistry()
    manager = _manager(registry=registry, google_client=google, clock=lambda: now[0])
    handle = await manager.create(API_REF)

    now[0] += timedelta(hours=25)
    with pytest.raises(InvalidHandleState, match="expired"):
        await manager.populate(handle, {"name": "Name"}, {"Name": "Ada"})
    assert len(registry) == 0
    assert google.deleted == []

    other = await manager.create(API_REF)
    now[0] += timedelta(hours=25)
    assert await manager.cleanup_all() == 0
    assert google.deleted == []
    assert other.state == HandleState.DELETED


@pytest.mark.asyncio
async def test_cleanup_all_never_raises():
    google = _FakeGoogle(fail_delete=True)
    registry = LiveHandleRegistry()
    manager = _manager(registry=registry, google_client=google)
    await manager.create(API_REF)
    await manager.create(API_REF)
    assert len(registry) == 2
    assert await manager.cleanup_all() == 0


@pytest.mark.asyncio
async def test_scope_exit_cleans_up_live_handles():
    registry = LiveHandleRegistry()
    async with _manager(registry=registry) as manager:
        await manager.create(PUBLIC_REF)
        await manager.create(PUBLIC_REF)
        assert len(registry) == 2
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_operations_on_deleted_handle_are_rejected():
    manager = _manager()
    handle = await manager.create(PUBLIC_REF)
    await manager.delete(handle)
    with pytest.raises(InvalidHandleState):
        await manager.export(handle)
    with pytest.raises(InvalidHandleState):
        transition(handle, HandleState.CREATED)


@pytest.mark.asyncio
async def test_each_create_owns_exactly_one_remote_copy():
    google = _FakeGoogle()
    manager = _manager(google_client=google)
    first = await manager.create(API_REF)
    second = await manager.create(API_REF)
    assert (first.remote_id, second.remote_id) == ("copy-1", "copy-2")
    await manager.cleanup_all()
    assert sorted(google.deleted) == ["copy-1", "copy-2"]


@pytest.mark.asyncio
@pytest.mark.parametrize("stage", ["populate", "export"])
async def test_injected_failure_never_leaks_handle(stage):
    registry = LiveHandleRegistry()
    google = _FakeGoogle(fail_update=stage == "populate")
    manager = _manager(registry=registry, google_client=google)
    handle = await manager.create(API_REF)

    async def broken_export(_document_id):
        raise RenderFailure("pdf export failed")

    google.export_pdf = broken_export
    with pytest.raises(Exception):
        await manager.populate(handle, {"name": "Name"}, {"Name": "Ada"})
        await manager.export(handle)
    assert handle.id not in registry
    assert handle.state == HandleState.DELETED


@pytest.mark.asyncio
async def test_repeat_populate_of_remote_copy_overwrites_from_fresh_copy():
    google = _EditingGoogle()
    registry = LiveHandleRegistry()
    manager = _manager(registry=registry, google_client=google)
    handle = await manager.create(API_REF)

    await manager.populate(handle, {"name": "Name"}, {"Name": "Alice"})
    assert handle.content == "Dear Alice\n"

    await manager.populate(handle, {"name": "Name"}, {"Name": "Bob"})
    assert handle.content == "Dear Bob\n"
    assert "Alice" not in handle.content
    assert handle.state == HandleState.POPULATED
    assert handle.remote_id == "copy-2"
    assert google.deleted == ["copy-1"]
    assert len(registry) == 1

    await manager.export(handle)
    assert google.deleted == ["copy-1", "copy-2"]
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_repeat_populate_cleanup_failure_discards_handle():
    google = _EditingGoogle()
    registry = LiveHandleRegistry()
    manager = _manager(registry=registry, google_client=google)
    handle = await manager.create(API_REF)
    await manager.populate(handle, {"name": "Name"}, {"Name": "Alice"})

    google.fail_delete = True
    with pytest.raises(CleanupFailure):
        await manager.populate(handle, {"name": "Name"}, {"Name": "Bob"})
    assert google.copies == ["copy-1"]
    assert handle.state == HandleState.DELETED
    assert len(registry) == 0
