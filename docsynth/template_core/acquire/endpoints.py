"""Candidate endpoint catalog, kept as data and ordered by priority."""

from __future__ import annotations

from urllib.parse import quote

from docsynth.config import settings
from docsynth.models.interfaces import AccessStrategy, CandidateEndpoint

DOCS_BASE = "https://docs.google.com/document/d/{doc_id}"

HTML_EXPORT = CandidateEndpoint("html-export", DOCS_BASE + "/export?format=html", 1, "html")
PUBLISHED = CandidateEndpoint("published", DOCS_BASE + "/pub", 2, "html")
TEXT_EXPORT = CandidateEndpoint("text-export", DOCS_BASE + "/export?format=txt", 3, "txt")
SHARED_EDIT = CandidateEndpoint("shared-edit", DOCS_BASE + "/edit?usp=sharing", 4, "html")
MOBILE_BASIC = CandidateEndpoint("mobile-basic", DOCS_BASE + "/mobilebasic", 5, "html")


def cors_proxy_candidate(priority: int = 6) -> CandidateEndpoint:
    # The proxied URL is pre-encoded; {doc_id} stays literal so url_for can fill it.
    target = quote(PUBLISHED.url_template, safe="{}")
    return CandidateEndpoint(
        "cors-proxy",
        settings.cors_proxy_url.replace("{url}", target),
        priority,
        "proxy-json",
    )


def candidates_for(strategy: AccessStrategy) -> list[CandidateEndpoint]:
    if strategy == AccessStrategy.API_ACCESS:
        # api-access reads through the authenticated client instead.
        return []
    if strategy == AccessStrategy.PUBLIC_COPY:
        candidates = [HTML_EXPORT, PUBLISHED]
    else:
        candidates = [HTML_EXPORT, PUBLISHED, TEXT_EXPORT, SHARED_EDIT, MOBILE_BASIC]
    if settings.cors_proxy_enabled:
        candidates.append(cors_proxy_candidate(len(candidates) + 1))
    return candidates
