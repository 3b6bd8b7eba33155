from __future__ import annotations

import asyncio
import json
import time
from typing import Awaitable, Callable, Sequence

import httpx
from loguru import logger

from docsynth.config import settings
from docsynth.errors import AcquisitionTimeout, DocumentUnreachable
from docsynth.models.events import EventCategory, LogLevel
from docsynth.models.interfaces import (
    AccessStrategy,
    AcquisitionAttempt,
    AcquisitionDiscipline,
    AcquisitionResult,
    CandidateEndpoint,
    DocumentReference,
)
from docsynth.services.logger import log_acquisition_attempt
from docsynth.services.observability import ObservabilityLog, default_log, safe_emit
from docsynth.template_core.acquire.endpoints import candidates_for
from docsynth.template_core.extract.service import PlaceholderExtractor, has_placeholder_signal
from docsynth.template_core.substitute.markup import UNTITLED, extract_title

FetchResult = tuple[str, int]
Fetcher = Callable[[CandidateEndpoint, str], Awaitable[FetchResult]]
Sleeper = Callable[[float], Awaitable[None]]

SIGNAL_BONUS = 1000
PLACEHOLDER_WEIGHT = 500
CANCELLED = "cancelled"


def is_transient(exc: BaseException) -> bool:
    """Timeouts, 5xx, 429 and transport failures are worth another try; other 4xx never are."""
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


def score_content(content: str, placeholder_count: int) -> int:
    signal = SIGNAL_BONUS if has_placeholder_signal(content) else 0
    return len(content) + signal + PLACEHOLDER_WEIGHT * placeholder_count


def select_winner(attempts: Sequence[AcquisitionAttempt]) -> AcquisitionAttempt | None:
    """Highest score among viable attempts; ties go to the better (lower) priority."""
    viable = [attempt for attempt in attempts if attempt.succeeded]
    if not viable:
        return None
    return max(viable, key=lambda attempt: (attempt.score, -attempt.priority))


def decode_proxy_payload(text: str) -> str:
    payload = json.loads(text)
    if not isinstance(payload, dict) or not isinstance(payload.get("contents"), str):
        raise ValueError("proxy response missing 'contents'")
    return payload["contents"]


class ContentAcquirer:
    """Concurrent, scored acquisition of template content from candidate endpoints."""

    def __init__(
        self,
        *,
        extractor: PlaceholderExtractor | None = None,
        discipline: AcquisitionDiscipline | str | None = None,
        retry_max: int | None = None,
        backoff_base_ms: int | None = None,
        backoff_max_ms: int | None = None,
        candidate_timeout_s: float | None = None,
        episode_timeout_s: float | None = None,
        min_content_chars: int | None = None,
        max_candidates: int | None = None,
        fetcher: Fetcher | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleeper | None = None,
        log: ObservabilityLog | None = None,
    ):
        self.extractor = extractor or PlaceholderExtractor()
        self.discipline = AcquisitionDiscipline(discipline or settings.acquisition_discipline)
        self.retry_max = max(int(settings.acquisition_retry_max if retry_max is None else retry_max), 0)
        self.backoff_base_ms = settings.acquisition_backoff_base_ms if backoff_base_ms is None else backoff_base_ms
        self.backoff_max_ms = settings.acquisition_backoff_max_ms if backoff_max_ms is None else backoff_max_ms
        self.candidate_timeout_s = (
            settings.acquisition_candidate_timeout_s if candidate_timeout_s is None else candidate_timeout_s
        )
        self.episode_timeout_s = (
            settings.acquisition_episode_timeout_s if episode_timeout_s is None else episode_timeout_s
        )
        self.min_content_chars = (
            settings.acquisition_min_content_chars if min_content_chars is None else min_content_chars
        )
        self.max_candidates = max(
            int(settings.acquisition_max_candidates if max_candidates is None else max_candidates), 1
        )
        self._fetcher = fetcher
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._log = log if log is not None else default_log

    def backoff_delay(self, retry_number: int) -> float:
        delay_ms = self.backoff_base_ms * (2 ** max(retry_number - 1, 0))
        return min(delay_ms, self.backoff_max_ms) / 1000.0

    async def acquire(
        self,
        reference: DocumentReference,
        candidates: Sequence[CandidateEndpoint] | None = None,
        *,
        strategy: AccessStrategy | None = None,
    ) -> AcquisitionResult:
        strategy = strategy or reference.strategy or AccessStrategy.FALLBACK_FETCH
        if candidates is None:
            candidates = candidates_for(strategy)
        ordered = sorted(candidates, key=lambda c: c.priority)[: self.max_candidates]
        if not ordered:
            raise DocumentUnreachable(
                f"No acquisition candidates for strategy {strategy.value}",
                context={"document_id": reference.document_id, "strategy": strategy.value},
            )

        started = time.monotonic()
        attempts = [
            AcquisitionAttempt(method=c.name, priority=c.priority, url=c.url_for(reference.document_id))
            for c in ordered
        ]
        safe_emit(
            self._log,
            LogLevel.INFO,
            EventCategory.ACQUIRE,
            "Acquisition started",
            {
                "document_id": reference.document_id,
                "strategy": strategy.value,
                "discipline": self.discipline.value,
                "candidates": [c.name for c in ordered],
            },
        )

        if self._fetcher is not None:
            winner, timed_out = await self._run_episode(ordered, attempts, self._fetcher)
        else:
            async with httpx.AsyncClient(
                timeout=self.candidate_timeout_s,
                follow_redirects=True,
                transport=self._transport,
            ) as client:

                async def fetch(candidate: CandidateEndpoint, url: str) -> FetchResult:
                    return await self._fetch_with_httpx(client, candidate, url)

                winner, timed_out = await self._run_episode(ordered, attempts, fetch)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        for attempt in attempts:
            log_acquisition_attempt(
                document_id=reference.document_id,
                method=attempt.method,
                status="viable" if attempt.succeeded else "rejected",
                tries=attempt.tries,
                content_length=attempt.content_length,
                score=attempt.score,
                error=attempt.error,
            )

        if winner is None:
            diagnostics = [
                {"method": a.method, "error": a.error, "status_code": a.status_code, "tries": a.tries}
                for a in attempts
            ]
            safe_emit(
                self._log,
                LogLevel.ERROR,
                EventCategory.ACQUIRE,
                "No viable candidate",
                {"document_id": reference.document_id, "timed_out": timed_out, "attempts": diagnostics},
            )
            context = {"document_id": reference.document_id, "strategy": strategy.value, "elapsed_ms": elapsed_ms}
            if timed_out:
                raise AcquisitionTimeout(
                    f"Acquisition of {reference.document_id} exceeded {self.episode_timeout_s}s",
                    diagnostics=attempts,
                    context=context,
                )
            raise DocumentUnreachable(
                f"Document {reference.document_id} unreachable: no viable candidate among {len(attempts)}",
                diagnostics=attempts,
                context=context,
            )

        content = winner.content or ""
        format_hint = next(c.format_hint for c in ordered if c.name == winner.method)
        title = extract_title(content) if format_hint != "txt" else UNTITLED
        placeholders = self.extractor.extract(content)
        safe_emit(
            self._log,
            LogLevel.INFO,
            EventCategory.ACQUIRE,
            "Acquisition selected candidate",
            {
                "document_id": reference.document_id,
                "method": winner.method,
                "score": winner.score,
                "content_length": winner.content_length,
                "placeholder_count": len(placeholders),
                "elapsed_ms": elapsed_ms,
            },
        )
        return AcquisitionResult(
            reference=reference.with_strategy(strategy),
            content=content,
            method=winner.method,
            format_hint=format_hint,
            title=title,
            attempts=attempts,
            placeholders=placeholders,
            elapsed_ms=elapsed_ms,
        )

    async def _run_episode(
        self,
        candidates: Sequence[CandidateEndpoint],
        attempts: Sequence[AcquisitionAttempt],
        fetch: Fetcher,
    ) -> tuple[AcquisitionAttempt | None, bool]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.episode_timeout_s
        tasks = {
            asyncio.create_task(self._attempt(candidate, attempt, fetch)): attempt
            for candidate, attempt in zip(candidates, attempts)
        }
        finished: set[int] = set()
        pending: set[asyncio.Task] = set(tasks)
        winner: AcquisitionAttempt | None = None
        timed_out = False

        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    timed_out = True
                    break
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    finished.add(id(tasks[task]))
                if self.discipline == AcquisitionDiscipline.FIRST_VIABLE:
                    winner = self._first_viable(attempts, finished)
                    if winner is not None:
                        break
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            for task in pending:
                attempt = tasks[task]
                attempt.succeeded = False
                attempt.content = None
                attempt.score = 0
                attempt.error = CANCELLED if not timed_out else f"{CANCELLED}: episode timeout"

        if winner is None:
            if self.discipline == AcquisitionDiscipline.FIRST_VIABLE:
                winner = next((attempt for attempt in attempts if attempt.succeeded), None)
            else:
                winner = select_winner(attempts)
        return winner, timed_out

    @staticmethod
    def _first_viable(
        attempts: Sequence[AcquisitionAttempt], finished: set[int]
    ) -> AcquisitionAttempt | None:
        # Priority order: a viable result only wins once every better candidate has failed.
        for attempt in attempts:
            if id(attempt) not in finished:
                return None
            if attempt.succeeded:
                return attempt
        return None

    async def _attempt(
        self,
        candidate: CandidateEndpoint,
        attempt: AcquisitionAttempt,
        fetch: Fetcher,
    ) -> AcquisitionAttempt:
        for try_number in range(1, self.retry_max + 2):
            attempt.tries = try_number
            try:
                text, status_code = await asyncio.wait_for(
                    fetch(candidate, attempt.url), timeout=self.candidate_timeout_s
                )
                attempt.status_code = int(status_code)
                content = decode_proxy_payload(text) if candidate.format_hint == "proxy-json" else text
                self._evaluate(attempt, content or "")
                return attempt
            except Exception as exc:
                attempt.error = f"{type(exc).__name__}: {exc}"
                if isinstance(exc, httpx.HTTPStatusError):
                    attempt.status_code = exc.response.status_code
                if not is_transient(exc) or try_number > self.retry_max:
                    return attempt
                delay = self.backoff_delay(try_number)
                logger.debug(f"Retrying {candidate.name} in {delay:.2f}s after {attempt.error}")
                await self._sleep(delay)
        return attempt

    def _evaluate(self, attempt: AcquisitionAttempt, content: str) -> None:
        attempt.content = content
        if len(content) <= self.min_content_chars:
            attempt.succeeded = False
            attempt.error = f"content below viability threshold ({len(content)} <= {self.min_content_chars} chars)"
            return
        attempt.error = None
        attempt.succeeded = True
        attempt.placeholder_signal = has_placeholder_signal(content)
        attempt.placeholder_count = self.extractor.count(content)
        attempt.score = score_content(content, attempt.placeholder_count)

    async def _fetch_with_httpx(
        self,
        client: httpx.AsyncClient,
        candidate: CandidateEndpoint,
        url: str,
    ) -> FetchResult:
        headers = {"User-Agent": settings.acquisition_user_agent, **candidate.headers}
        response = await client.get(url, headers=headers)
        response.raise_for_status()
        return response.text, int(response.status_code)
