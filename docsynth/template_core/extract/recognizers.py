"""Delimiter recognizers for placeholder tokens.

Each recognizer owns one delimiter style. The extractor and the substitution
engine walk the same ordered list, so adding a style is a matter of adding a
recognizer to ``DEFAULT_RECOGNIZERS``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from itertools import islice
from typing import Callable, Iterator

# &#123; &#x7b; &lcub; &lbrace; and their closing twins
_ENTITY_OPEN = r"(?:&#0*123;|&#[xX]0*7[bB];|&lcub;|&lbrace;)"
_ENTITY_CLOSE = r"(?:&#0*125;|&#[xX]0*7[dD];|&rcub;|&rbrace;)"
_TAGS = r"(?:\s*<[^<>]*>\s*)*"


@dataclass(frozen=True, slots=True)
class RecognizerMatch:
    recognizer: str
    raw_match: str
    inner: str


@dataclass(frozen=True, slots=True)
class PlaceholderRecognizer:
    name: str
    pattern: re.Pattern[str]

    def scan(self, content: str, limit: int | None = None) -> Iterator[RecognizerMatch]:
        matches = self.pattern.finditer(content)
        if limit is not None:
            matches = islice(matches, max(limit, 0))
        for match in matches:
            yield RecognizerMatch(self.name, match.group(0), match.group("inner"))

    def sub(self, content: str, replace: Callable[[str], str | None]) -> tuple[str, int]:
        """Replace every match for which ``replace(inner)`` returns a string."""
        hits = 0

        def _swap(match: re.Match[str]) -> str:
            nonlocal hits
            replacement = replace(match.group("inner"))
            if replacement is None:
                return match.group(0)
            hits += 1
            return replacement

        return self.pattern.sub(_swap, content), hits


DOUBLE_BRACE = PlaceholderRecognizer(
    "double_brace",
    re.compile(r"\{\{\s*(?P<inner>[^{}]{1,500}?)\s*\}\}", re.DOTALL),
)

DOUBLE_BRACKET = PlaceholderRecognizer(
    "double_bracket",
    re.compile(r"\[\[\s*(?P<inner>[^\[\]]{1,500}?)\s*\]\]", re.DOTALL),
)

ENTITY_BRACE = PlaceholderRecognizer(
    "entity_brace",
    re.compile(
        rf"{_ENTITY_OPEN}{{2}}\s*(?P<inner>(?:(?!{_ENTITY_OPEN}|{_ENTITY_CLOSE}).){{1,500}}?)\s*{_ENTITY_CLOSE}{{2}}",
        re.DOTALL,
    ),
)

# Editors that style each character separately emit {</span><span>{name}</span><span>}
MARKUP_WRAPPED_BRACE = PlaceholderRecognizer(
    "markup_wrapped_brace",
    re.compile(
        rf"\{{{_TAGS}\{{(?P<inner>[^{{}}]{{1,500}}?)\}}{_TAGS}\}}",
        re.DOTALL,
    ),
)

# Identifier-like content only, and never adjacent to another brace.
SINGLE_BRACE = PlaceholderRecognizer(
    "single_brace",
    re.compile(r"(?<![{$\\])\{\s*(?P<inner>[A-Za-z_][\w .\-]{0,99}?)\s*\}(?!\})"),
)

DEFAULT_RECOGNIZERS: tuple[PlaceholderRecognizer, ...] = (
    DOUBLE_BRACE,
    DOUBLE_BRACKET,
    ENTITY_BRACE,
    MARKUP_WRAPPED_BRACE,
    SINGLE_BRACE,
)
