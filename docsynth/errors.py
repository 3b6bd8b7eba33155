from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from docsynth.models.interfaces import AcquisitionAttempt


class DocSynthError(Exception):
    """Base class for every failure the synthesis engine surfaces."""

    def __init__(self, message: str, *, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = dict(context or {})
        self.secondary: list[BaseException] = []


class InvalidReference(DocSynthError):
    """Source URL failed structural validation. Raised before any network call."""

    def __init__(self, message: str, *, url: str = "", errors: list[str] | None = None):
        super().__init__(message, context={"url": url, "errors": list(errors or [])})
        self.url = url
        self.errors = list(errors or [])


class DocumentUnreachable(DocSynthError):
    """No acquisition candidate produced viable content."""

    def __init__(
        self,
        message: str,
        *,
        diagnostics: list[AcquisitionAttempt] | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        self.diagnostics: list[AcquisitionAttempt] = list(diagnostics or [])


class OperationTimeout(DocSynthError):
    """A single step or a whole episode exceeded its time bound."""


class AcquisitionTimeout(OperationTimeout, DocumentUnreachable):
    def __init__(
        self,
        message: str,
        *,
        diagnostics: list[AcquisitionAttempt] | None = None,
        context: dict[str, Any] | None = None,
    ):
        DocumentUnreachable.__init__(self, message, diagnostics=diagnostics, context=context)


class UnresolvedCriticalField(DocSynthError):
    def __init__(self, message: str, *, placeholders: list[str]):
        super().__init__(message, context={"placeholders": list(placeholders)})
        self.placeholders = list(placeholders)


class RenderFailure(DocSynthError):
    """Raised by (or on behalf of) the Renderer collaborator."""


class CleanupFailure(DocSynthError):
    """Best-effort deletion of a working copy failed. Logged, never propagated over a root cause."""


class InvalidHandleState(DocSynthError):
    """Operation is not allowed in the handle's current lifecycle state."""


def attach_secondary(exc: BaseException, secondary: BaseException) -> BaseException:
    """Record ``secondary`` on ``exc`` without replacing it as the propagating error."""
    if isinstance(exc, DocSynthError):
        exc.secondary.append(secondary)
    exc.add_note(f"secondary failure during cleanup: {type(secondary).__name__}: {secondary}")
    return exc
