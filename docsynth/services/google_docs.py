"""Authenticated Google Docs/Drive REST client."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from docsynth.config import settings

PDF_MIME_TYPE = "application/pdf"


class GoogleDocsApiClient:
    """Thin httpx wrapper over the Docs and Drive REST endpoints used by api-access."""

    def __init__(
        self,
        *,
        access_token: str | None = None,
        docs_base_url: str | None = None,
        drive_base_url: str | None = None,
        timeout_s: float | None = None,
        probe_timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = (settings.google_access_token if access_token is None else access_token).strip()
        self.docs_base_url = (docs_base_url or settings.google_docs_base_url).rstrip("/")
        self.drive_base_url = (drive_base_url or settings.google_drive_base_url).rstrip("/")
        self.timeout_s = settings.google_request_timeout_s if timeout_s is None else timeout_s
        self.probe_timeout_s = settings.google_probe_timeout_s if probe_timeout_s is None else probe_timeout_s
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.access_token)

    async def probe(self) -> bool:
        """Lightweight capability check. Any failure means unavailable."""
        if not self.configured:
            return False
        try:
            await self._request(
                "GET",
                f"{self.drive_base_url}/about",
                params={"fields": "user"},
                timeout=self.probe_timeout_s,
            )
            return True
        except Exception as exc:
            logger.warning(f"Google API probe failed: {exc}")
            return False

    async def copy_document(self, document_id: str, title: str) -> str:
        response = await self._request(
            "POST",
            f"{self.drive_base_url}/files/{document_id}/copy",
            json={"name": title},
        )
        copy_id = response.json().get("id")
        if not copy_id:
            raise RuntimeError(f"Drive copy of {document_id} returned no id")
        return str(copy_id)

    async def read_document(self, document_id: str) -> dict[str, Any]:
        response = await self._request("GET", f"{self.docs_base_url}/documents/{document_id}")
        return response.json()

    async def batch_update(self, document_id: str, requests: list[dict[str, Any]]) -> dict[str, Any]:
        if not requests:
            return {"documentId": document_id, "replies": []}
        response = await self._request(
            "POST",
            f"{self.docs_base_url}/documents/{document_id}:batchUpdate",
            json={"requests": requests},
        )
        return response.json()

    async def export_pdf(self, document_id: str) -> bytes:
        response = await self._request(
            "GET",
            f"{self.drive_base_url}/files/{document_id}/export",
            params={"mimeType": PDF_MIME_TYPE},
        )
        return response.content

    async def delete_document(self, document_id: str) -> None:
        try:
            await self._request("DELETE", f"{self.drive_base_url}/files/{document_id}")
        except httpx.HTTPStatusError as exc:
            # Already gone.
            if exc.response.status_code != 404:
                raise

    async def _request(self, method: str, url: str, *, timeout: float | None = None, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        async with httpx.AsyncClient(
            timeout=self.timeout_s if timeout is None else timeout,
            transport=self._transport,
        ) as client:
            response = await client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
            return response


def document_text(document: dict[str, Any]) -> str:
    """Plain text of a Docs API document body, paragraph by paragraph."""
    chunks: list[str] = []
    body = document.get("body") or {}
    for element in body.get("content") or []:
        paragraph = element.get("paragraph")
        if not paragraph:
            continue
        for part in paragraph.get("elements") or []:
            text_run = part.get("textRun") or {}
            content = text_run.get("content")
            if content:
                chunks.append(content)
    return "".join(chunks)
