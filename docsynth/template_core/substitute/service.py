from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal

from docsynth.config import settings
from docsynth.errors import UnresolvedCriticalField
from docsynth.models.interfaces import DataRecord, ImageConfig, LineItemConfig
from docsynth.template_core.extract.recognizers import DEFAULT_RECOGNIZERS, PlaceholderRecognizer
from docsynth.template_core.extract.service import normalize_placeholder, strip_non_content
from docsynth.template_core.substitute.formatting import format_value, image_attachments
from docsynth.template_core.substitute.markup import (
    build_image_html,
    build_line_items_html,
    build_line_items_text,
    escape_markup,
    insert_before_body_end,
    looks_like_html,
)

Target = Literal["html", "text"]

# Private-use code points; inserted values are parked behind these until the last recognizer has run.
_SENTINEL_RE = re.compile("\ue000(\\d+)\ue001")
_MARKER_CHARS_RE = re.compile("[\ue000\ue001]")


@dataclass(slots=True)
class SubstitutionResult:
    content: str
    target: Target
    replaced: dict[str, int] = field(default_factory=dict)
    unresolved: list[str] = field(default_factory=list)
    line_items_rendered: int = 0
    images_rendered: int = 0

    @property
    def replacement_count(self) -> int:
        return sum(self.replaced.values())


class _Parking:
    def __init__(self) -> None:
        self.values: list[str] = []

    def park(self, value: str) -> str:
        self.values.append(value)
        return f"\ue000{len(self.values) - 1}\ue001"

    def shelter(self, content: str) -> str:
        """Park marker characters already in the content so restore returns them untouched."""
        return _MARKER_CHARS_RE.sub(lambda m: self.park(m.group()), content)

    def restore(self, content: str) -> str:
        return _SENTINEL_RE.sub(lambda m: self.values[int(m.group(1))], content)


class SubstitutionEngine:
    """Pure substitution of record values into template content.

    Placeholders are matched with the same recognizers and normalization the
    extractor uses, so ``{{ Customer Name }}``, ``[[customer name]]`` and the
    entity-encoded forms all resolve through one mapping entry. Placeholders
    with no mapping entry are left as they are.
    """

    def __init__(
        self,
        *,
        recognizers: Iterable[PlaceholderRecognizer] | None = None,
        separator: str | None = None,
        no_items_marker: str | None = None,
        line_items_placeholder: str | None = None,
        strict: bool = False,
    ):
        self.recognizers = tuple(recognizers) if recognizers is not None else DEFAULT_RECOGNIZERS
        self.separator = settings.value_separator if separator is None else separator
        self.no_items_marker = settings.no_items_marker if no_items_marker is None else no_items_marker
        self.line_items_placeholder = normalize_placeholder(
            settings.line_items_placeholder if line_items_placeholder is None else line_items_placeholder
        )
        self.strict = strict

    def substitute(
        self,
        content: str,
        mapping: Mapping[str, str],
        record: DataRecord | Mapping[str, Any] | None,
        line_items: LineItemConfig | None = None,
        image_config: ImageConfig | None = None,
        *,
        target: Target | None = None,
    ) -> str:
        return self.apply(content, mapping, record, line_items, image_config, target=target).content

    def apply(
        self,
        content: str,
        mapping: Mapping[str, str],
        record: DataRecord | Mapping[str, Any] | None,
        line_items: LineItemConfig | None = None,
        image_config: ImageConfig | None = None,
        *,
        target: Target | None = None,
    ) -> SubstitutionResult:
        content = content or ""
        record = DataRecord.coerce(record)
        image_config = image_config or default_image_config()
        target = target or ("html" if looks_like_html(content) else "text")
        result = SubstitutionResult(content=content, target=target)

        fields = self._normalized_mapping(mapping)
        if self.strict:
            self._check_critical(content, fields, record)

        replacements: dict[str, str] = {}

        # Images first so attachment arrays render as media rather than filenames.
        if target == "html":
            for name, field_name in fields.items():
                images = image_attachments(record.resolve(field_name))
                if images:
                    replacements[name] = build_image_html(images, image_config)
                    result.images_rendered += len(images)

        table: str | None = None
        if line_items is not None and line_items.enabled:
            items = record.resolve(line_items.collection_field)
            if isinstance(items, (list, tuple)) and items:
                if target == "html":
                    table = build_line_items_html(items, line_items.columns)
                else:
                    table = build_line_items_text(items, line_items.columns)
                result.line_items_rendered = len(items)
                replacements[self.line_items_placeholder] = table
            else:
                marker = self.no_items_marker
                replacements[self.line_items_placeholder] = escape_markup(marker) if target == "html" else marker

        for name, field_name in fields.items():
            if name in replacements:
                continue
            value = record.resolve(field_name)
            if value is None:
                result.unresolved.append(name)
            text = format_value(value, self.separator)
            replacements[name] = escape_markup(text) if target == "html" else text

        parking = _Parking()
        content = parking.shelter(content)

        def _replace(inner: str) -> str | None:
            name = normalize_placeholder(inner)
            if name not in replacements:
                return None
            result.replaced[name] = result.replaced.get(name, 0) + 1
            return parking.park(replacements[name])

        for recognizer in self.recognizers:
            content, _ = recognizer.sub(content, _replace)

        if table is not None and self.line_items_placeholder not in result.replaced and target == "html":
            content = insert_before_body_end(content, parking.park(table))

        result.content = parking.restore(content)
        return result

    def build_replace_requests(
        self,
        mapping: Mapping[str, str],
        record: DataRecord | Mapping[str, Any] | None,
        line_items: LineItemConfig | None = None,
    ) -> list[dict[str, Any]]:
        """Structured edit requests (``replaceAllText``) for a remote working copy."""
        record = DataRecord.coerce(record)
        requests: list[dict[str, Any]] = []
        for placeholder, field_name in mapping.items():
            name = normalize_placeholder(placeholder)
            if not name or not field_name:
                continue
            if line_items is not None and line_items.enabled and name == self.line_items_placeholder:
                continue
            requests.append(
                _replace_all_text(placeholder, format_value(record.resolve(field_name), self.separator))
            )

        if line_items is not None and line_items.enabled:
            items = record.resolve(line_items.collection_field)
            if isinstance(items, (list, tuple)) and items:
                text = build_line_items_text(items, line_items.columns)
            else:
                text = self.no_items_marker
            requests.append(_replace_all_text(self.line_items_placeholder, text))
        return requests

    def _normalized_mapping(self, mapping: Mapping[str, str]) -> dict[str, str]:
        fields: dict[str, str] = {}
        for placeholder, field_name in (mapping or {}).items():
            name = normalize_placeholder(str(placeholder))
            if name and field_name:
                fields.setdefault(name, str(field_name))
        return fields

    def _check_critical(self, content: str, fields: dict[str, str], record: DataRecord) -> None:
        present: set[str] = set()
        scan_target = strip_non_content(content)
        for recognizer in self.recognizers:
            for match in recognizer.scan(scan_target):
                present.add(normalize_placeholder(match.inner))
        missing = sorted(
            name for name, field_name in fields.items() if name in present and record.resolve(field_name) is None
        )
        if missing:
            raise UnresolvedCriticalField(
                f"Mapped placeholders have no value: {', '.join(missing)}",
                placeholders=missing,
            )


def _replace_all_text(placeholder: str, text: str) -> dict[str, Any]:
    name = placeholder.strip()
    if not name.startswith("{{"):
        name = "{{" + name.strip("{} ") + "}}"
    return {
        "replaceAllText": {
            "containsText": {"text": name, "matchCase": False},
            "replaceText": text,
        }
    }


def default_image_config() -> ImageConfig:
    height: int | str = settings.image_default_height
    if str(height).strip().lower() != "auto":
        height = int(height)
    else:
        height = "auto"
    return ImageConfig(width=settings.image_default_width, height=height)  # type: ignore[arg-type]
