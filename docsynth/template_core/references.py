"""Source reference parsing: document id rules and sharing markers."""

from __future__ import annotations

import re
from urllib.parse import urlparse

from docsynth.errors import InvalidReference
from docsynth.models.interfaces import DocumentReference, ReferenceCheck

# Ordered, first match wins.
DOCUMENT_ID_PATTERNS = (
    re.compile(r"/document/d/([a-zA-Z0-9_-]+)"),
    re.compile(r"/document/d/([^/?#]+)"),
    re.compile(r"[?&]id=([a-zA-Z0-9_-]+)"),
)

PUBLIC_SHARING_MARKERS = (
    "/view?usp=sharing",
    "/pub?",
    "sharing=true",
    "published=true",
)


def extract_document_id(url: str) -> str | None:
    for pattern in DOCUMENT_ID_PATTERNS:
        match = pattern.search(url or "")
        if match and match.group(1):
            return match.group(1)
    return None


def is_publicly_shared(url: str) -> bool:
    return any(marker in (url or "") for marker in PUBLIC_SHARING_MARKERS)


def with_scheme(url: str) -> str:
    """Shared links are often pasted without a scheme; treat those as https."""
    raw = (url or "").strip()
    if raw and "://" not in raw:
        return "https://" + raw.lstrip("/")
    return raw


def check_reference(url: str) -> ReferenceCheck:
    """Structural validation only; never touches the network."""
    errors: list[str] = []
    raw = with_scheme(url)
    if not raw:
        return ReferenceCheck(valid=False, errors=["URL is required"])

    parsed = urlparse(raw)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        errors.append("URL must be an absolute http(s) URL")

    document_id = extract_document_id(raw)
    if document_id is None:
        errors.append("Unable to extract document ID from URL")

    return ReferenceCheck(
        valid=not errors,
        errors=errors,
        document_id=document_id,
        is_publicly_shared=is_publicly_shared(raw),
    )


def parse_reference(url: str) -> DocumentReference:
    check = check_reference(url)
    if not check.valid or check.document_id is None:
        raise InvalidReference(
            f"Invalid document reference: {'; '.join(check.errors)}",
            url=url or "",
            errors=check.errors,
        )
    return DocumentReference(source_url=with_scheme(url), document_id=check.document_id)
