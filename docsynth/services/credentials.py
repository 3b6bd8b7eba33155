from __future__ import annotations

from typing import Protocol

from loguru import logger

from docsynth.services.google_docs import GoogleDocsApiClient


class CredentialStore(Protocol):
    async def has_api_access(self) -> bool: ...


class SettingsCredentialStore:
    """Capability source backed by the configured Google token and a live probe."""

    def __init__(self, client: GoogleDocsApiClient | None = None):
        self.client = client or GoogleDocsApiClient()

    async def has_api_access(self) -> bool:
        if not self.client.configured:
            return False
        try:
            return await self.client.probe()
        except Exception as exc:
            logger.warning(f"Credential probe raised: {exc}")
            return False


class StaticCredentialStore:
    def __init__(self, api_available: bool = False):
        self.api_available = api_available

    async def has_api_access(self) -> bool:
        return self.api_available
