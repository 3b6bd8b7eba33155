from __future__ import annotations

import html
import re
from typing import Iterable

from docsynth.config import settings
from docsynth.models.interfaces import ExtractionReport, PlaceholderToken
from docsynth.template_core.extract.recognizers import (
    DEFAULT_RECOGNIZERS,
    PlaceholderRecognizer,
    RecognizerMatch,
)

DENYLIST = frozenset(
    {
        "style", "script", "html", "head", "body", "meta", "link", "span",
        "div", "class", "font", "margin", "padding", "kix", "google",
        "function", "var", "let", "const", "return", "if", "else", "for",
        "true", "false", "null",
    }
)

# Raw substrings that suggest a template carries placeholders at all.
PLACEHOLDER_SIGNALS = ("{{", "}}", "&#123;", "&#125;", "&lcub;", "&rcub;")

_TAG_RE = re.compile(r"<[^<>]*>")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f\u200b-\u200d\u2060\ufeff]")
_WHITESPACE_RE = re.compile(r"\s+")
_NUMERIC_RE = re.compile(r"[\d\s.,+\-]+")
_ALNUM_RE = re.compile(r"[^\W_]")
_STRIP_BLOCKS_RE = re.compile(
    r"<(script|style)\b[^>]*>.*?</\1\s*>|<!--.*?-->",
    re.IGNORECASE | re.DOTALL,
)
_QUOTES = "\"'\u201c\u201d\u2018\u2019"


def normalize_placeholder(raw: str) -> str:
    text = _TAG_RE.sub("", raw or "")
    text = html.unescape(text)
    text = _CONTROL_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    text = text.strip(_QUOTES).strip()
    return text.lower()


def strip_non_content(content: str) -> str:
    """Drop script/style bodies and comments so recognizers never scan CSS or JS."""
    return _STRIP_BLOCKS_RE.sub(" ", content or "")


def has_placeholder_signal(content: str) -> bool:
    return any(signal in (content or "") for signal in PLACEHOLDER_SIGNALS)


class PlaceholderExtractor:
    """Pure placeholder recognizer ensemble: raw and entity-decoded passes, normalized and deduplicated."""

    def __init__(
        self,
        *,
        recognizers: Iterable[PlaceholderRecognizer] | None = None,
        min_length: int | None = None,
        max_length: int | None = None,
        max_matches: int | None = None,
        denylist: Iterable[str] | None = None,
    ):
        self.recognizers = tuple(recognizers) if recognizers is not None else DEFAULT_RECOGNIZERS
        self.min_length = settings.placeholder_min_length if min_length is None else int(min_length)
        self.max_length = settings.placeholder_max_length if max_length is None else int(max_length)
        self.max_matches = settings.placeholder_max_matches if max_matches is None else int(max_matches)
        self.denylist = frozenset(d.lower() for d in denylist) if denylist is not None else DENYLIST

    def is_valid_name(self, name: str) -> bool:
        if not name:
            return False
        if not (self.min_length <= len(name) <= self.max_length):
            return False
        if _NUMERIC_RE.fullmatch(name):
            return False
        if not _ALNUM_RE.search(name):
            return False
        return name not in self.denylist

    def extract(self, content: str) -> list[str]:
        return self.analyze(content).names

    def analyze(self, content: str) -> ExtractionReport:
        """Full pass with per-recognizer match counts (diagnostic mode)."""
        counts = {recognizer.name: 0 for recognizer in self.recognizers}
        tokens: list[PlaceholderToken] = []
        seen: set[str] = set()

        for match in self._scan_variants(content):
            counts[match.recognizer] += 1
            name = normalize_placeholder(match.inner)
            if name in seen or not self.is_valid_name(name):
                continue
            seen.add(name)
            tokens.append(
                PlaceholderToken(
                    raw_match=match.raw_match,
                    normalized_name=name,
                    recognizer=match.recognizer,
                )
            )

        return ExtractionReport(names=sorted(seen), tokens=tokens, recognizer_counts=counts)

    def count(self, content: str) -> int:
        return len(self.extract(content))

    def _scan_variants(self, content: str) -> Iterable[RecognizerMatch]:
        raw = strip_non_content(content)
        decoded = html.unescape(raw)
        variants = [raw] if decoded == raw else [raw, decoded]
        for variant in variants:
            for recognizer in self.recognizers:
                yield from recognizer.scan(variant, self.max_matches)
