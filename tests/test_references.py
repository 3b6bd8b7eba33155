from __future__ import annotations

import pytest

from docsynth.errors import InvalidReference
from docsynth.template_core.references import (
    check_reference,
    extract_document_id,
    is_publicly_shared,
    parse_reference,
)


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://docs.google.com/document/d/1AbC-d_E/edit", "1AbC-d_E"),
        ("https://docs.google.com/document/d/1AbC-d_E/view?usp=sharing", "1AbC-d_E"),
        ("https://docs.google.com/document/d/abc.def/edit", "abc"),
        ("https://drive.google.com/open?id=XyZ_123", "XyZ_123"),
        ("https://example.com/nothing-here", None),
    ],
)
def test_extract_document_id(url, expected):
    assert extract_document_id(url) == expected


def test_extraction_is_idempotent():
    url = "https://docs.google.com/document/d/1AbC/edit"
    doc_id = extract_document_id(url)
    assert extract_document_id(f"https://docs.google.com/document/d/{doc_id}/pub") == doc_id


@pytest.mark.parametrize(
    "url,shared",
    [
        ("https://docs.google.com/document/d/1AbC/view?usp=sharing", True),
        ("https://docs.google.com/document/d/1AbC/pub?embedded=true", True),
        ("https://docs.google.com/document/d/1AbC/edit?sharing=true", True),
        ("https://docs.google.com/document/d/1AbC/edit", False),
    ],
)
def test_public_sharing_markers(url, shared):
    assert is_publicly_shared(url) is shared


def test_check_reference_reports_errors():
    check = check_reference("not a url")
    assert not check.valid
    assert "Unable to extract document ID from URL" in check.errors
    assert check_reference("").errors == ["URL is required"]


def test_parse_reference_raises_invalid_reference():
    with pytest.raises(InvalidReference) as exc_info:
        parse_reference("https://example.com/no-id")
    assert exc_info.value.url == "https://example.com/no-id"
    assert exc_info.value.errors


def test_parse_reference_returns_reference():
    ref = parse_reference("  https://docs.google.com/document/d/1AbC/edit ")
    assert ref.document_id == "1AbC"
    assert ref.strategy is None


def test_schemeless_share_link_defaults_to_https():
    check = check_reference("docs.google.com/document/d/abc123/view?usp=sharing")
    assert check.valid
    assert check.document_id == "abc123"
    assert check.is_publicly_shared

    ref = parse_reference("docs.google.com/document/d/abc123/view?usp=sharing")
    assert ref.document_id == "abc123"
    assert ref.source_url == "https://docs.google.com/document/d/abc123/view?usp=sharing"


def test_non_http_scheme_is_still_rejected():
    check = check_reference("ftp://docs.google.com/document/d/abc123/edit")
    assert not check.valid
    assert "URL must be an absolute http(s) URL" in check.errors
