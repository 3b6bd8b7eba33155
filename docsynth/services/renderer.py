"""Default Renderer collaborator: print-ready HTML bytes."""

from __future__ import annotations

from typing import Protocol

from bs4 import BeautifulSoup

from docsynth.errors import RenderFailure

PRINT_STYLES = """
@page { size: A4; margin: 20mm; }
body { font-family: Arial, sans-serif; line-height: 1.4; color: #000; }
img { max-width: 100%; page-break-inside: avoid; }
table { page-break-inside: auto; }
tr { page-break-inside: avoid; page-break-after: auto; }
"""


class Renderer(Protocol):
    async def render(self, markup: str, *, title: str = "") -> bytes: ...


class HtmlDocumentRenderer:
    """Wraps final markup with print styles and returns UTF-8 bytes."""

    media_type = "text/html; charset=utf-8"
    extension = "html"

    async def render(self, markup: str, *, title: str = "") -> bytes:
        if markup is None or not str(markup).strip():
            raise RenderFailure("Nothing to render: markup is empty")
        try:
            soup = BeautifulSoup(markup, "html.parser")
            if soup.find("html") is None:
                soup = BeautifulSoup(
                    f'<html><head><meta charset="UTF-8"></head><body>{markup}</body></html>',
                    "html.parser",
                )
            head = soup.find("head")
            if head is None:
                head = soup.new_tag("head")
                soup.html.insert(0, head)
            if title and head.find("title") is None:
                title_tag = soup.new_tag("title")
                title_tag.string = title
                head.append(title_tag)
            style = soup.new_tag("style", attrs={"media": "print"})
            style.string = PRINT_STYLES
            head.append(style)
            return str(soup).encode("utf-8")
        except RenderFailure:
            raise
        except Exception as exc:
            raise RenderFailure(f"HTML rendering failed: {exc}") from exc
