from __future__ import annotations

import asyncio

from loguru import logger

from docsynth.config import settings
from docsynth.models.events import EventCategory, LogLevel
from docsynth.models.interfaces import AccessStrategy, Capabilities, DocumentReference, ReferenceCheck
from docsynth.services.credentials import CredentialStore
from docsynth.services.observability import ObservabilityLog, default_log, safe_emit
from docsynth.template_core.references import check_reference, parse_reference


class AccessStrategySelector:
    """Deterministic strategy choice from structural URL checks and capability probes."""

    def __init__(
        self,
        *,
        credentials: CredentialStore | None = None,
        probe_timeout_s: float | None = None,
        log: ObservabilityLog | None = None,
    ):
        self.credentials = credentials
        self.probe_timeout_s = settings.google_probe_timeout_s if probe_timeout_s is None else probe_timeout_s
        self._log = log if log is not None else default_log

    def classify(self, url: str) -> ReferenceCheck:
        return check_reference(url)

    async def probe_capabilities(self) -> Capabilities:
        if self.credentials is None:
            return Capabilities(api_available=False)
        try:
            available = await asyncio.wait_for(self.credentials.has_api_access(), timeout=self.probe_timeout_s)
        except Exception as exc:
            logger.warning(f"Capability probe failed, treating API as unavailable: {exc}")
            available = False
        return Capabilities(api_available=bool(available))

    def recommend(
        self,
        url: str,
        capabilities: Capabilities,
        override: AccessStrategy | str | None = None,
    ) -> AccessStrategy:
        check = self.classify(url)
        if override is not None:
            strategy = AccessStrategy(override)
            reason = "override"
        elif capabilities.api_available and not check.is_publicly_shared:
            strategy = AccessStrategy.API_ACCESS
            reason = "api available, not publicly shared"
        elif check.valid and check.is_publicly_shared:
            strategy = AccessStrategy.PUBLIC_COPY
            reason = "publicly shared"
        else:
            strategy = AccessStrategy.FALLBACK_FETCH
            reason = "fallback"
        safe_emit(
            self._log,
            LogLevel.INFO,
            EventCategory.STRATEGY,
            "Strategy recommended",
            {
                "strategy": strategy.value,
                "reason": reason,
                "valid": check.valid,
                "publicly_shared": check.is_publicly_shared,
                "api_available": capabilities.api_available,
            },
        )
        return strategy

    async def resolve(
        self,
        url: str,
        override: AccessStrategy | str | None = None,
    ) -> DocumentReference:
        """Parse, probe and pick a strategy. Raises InvalidReference before any probe."""
        reference = parse_reference(url)
        if override is not None:
            capabilities = Capabilities(api_available=False)
        else:
            capabilities = await self.probe_capabilities()
        return reference.with_strategy(self.recommend(url, capabilities, override))
