"""HTML helpers: template cleanup, titles, generated tables and media markup."""

from __future__ import annotations

import html
import re
from typing import Any, Sequence

from bs4 import BeautifulSoup, Comment

from docsynth.models.interfaces import Attachment, ImageConfig, LineItemColumn
from docsynth.template_core.substitute.formatting import format_value

GOOGLE_DOCS_TITLE_SUFFIX = " - Google Docs"
UNTITLED = "Untitled Document"

_HTML_HINT_RE = re.compile(r"<\s*(html|body|div|p|span|table|head|br)\b", re.IGNORECASE)


def looks_like_html(content: str) -> bool:
    return bool(_HTML_HINT_RE.search(content or ""))


def escape_markup(value: str) -> str:
    return html.escape(value, quote=True)


def extract_title(content: str) -> str:
    if "<title" not in (content or "").lower():
        return UNTITLED
    soup = BeautifulSoup(content, "html.parser")
    if soup.title is None or not soup.title.string:
        return UNTITLED
    title = soup.title.string.strip()
    if title.endswith(GOOGLE_DOCS_TITLE_SUFFIX):
        title = title[: -len(GOOGLE_DOCS_TITLE_SUFFIX)].strip()
    return title or UNTITLED


def clean_document_html(content: str) -> str:
    """Drop scripts, stylesheet links, editor meta tags and comments; ensure a full document wrapper."""
    soup = BeautifulSoup(content or "", "html.parser")
    for tag in soup.find_all(["script", "link"]):
        tag.decompose()
    for tag in soup.find_all("meta"):
        if "google" in str(tag).lower():
            tag.decompose()
    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()

    if soup.find("html") is None:
        return f'<html><head><meta charset="UTF-8"></head><body>{soup}</body></html>'
    head = soup.find("head")
    if head is not None and head.find("meta", attrs={"charset": True}) is None:
        head.insert(0, soup.new_tag("meta", attrs={"charset": "UTF-8"}))
    return str(soup)


def build_line_items_html(items: Sequence[Any], columns: Sequence[LineItemColumn]) -> str:
    header = "".join(
        '<th style="padding: 12px 8px; text-align: left; font-weight: 600; '
        f'border: 1px solid #dee2e6;">{escape_markup(column.label)}</th>'
        for column in columns
    )
    rows: list[str] = []
    for index, item in enumerate(items):
        shade = " background-color: #f8f9fa;" if index % 2 == 1 else ""
        cells = "".join(
            '<td style="padding: 10px 8px; border: 1px solid #dee2e6; vertical-align: top;">'
            f"{escape_markup(_cell(item, column))}</td>"
            for column in columns
        )
        rows.append(f'<tr style="border-bottom: 1px solid #dee2e6;{shade}">{cells}</tr>')
    return (
        '<table style="width: 100%; border-collapse: collapse; margin: 15px 0; font-family: inherit;">'
        '<thead><tr style="background-color: #f8f9fa; border-bottom: 2px solid #dee2e6;">'
        f"{header}</tr></thead><tbody>{''.join(rows)}</tbody></table>"
    )


def build_line_items_text(items: Sequence[Any], columns: Sequence[LineItemColumn]) -> str:
    lines = ["\t".join(column.label for column in columns)]
    for item in items:
        lines.append("\t".join(_cell(item, column) for column in columns))
    return "\n".join(lines)


def _cell(item: Any, column: LineItemColumn) -> str:
    if isinstance(item, dict):
        fields = item.get("fields") if isinstance(item.get("fields"), dict) else item
        return format_value(fields.get(column.source_field))
    return ""


def build_image_html(attachments: Sequence[Attachment], config: ImageConfig) -> str:
    return "".join(
        f'<img src="{escape_markup(attachment.url)}" '
        f'style="max-width: {int(config.width)}px; height: {config.css_height}; margin: 10px 0; display: block;" '
        f'alt="{escape_markup(attachment.filename or "Image")}" />'
        for attachment in attachments
    )


def insert_before_body_end(content: str, fragment: str) -> str:
    match = re.search(r"</body\s*>", content, re.IGNORECASE)
    if match is None:
        return content + fragment
    return content[: match.start()] + fragment + content[match.start() :]
