"""Centralized logging service using loguru."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from docsynth.config import settings
from docsynth.models.events import ObservabilityEvent

# Remove default handler
logger.remove()

# Console handler with color
logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level=settings.app_log_level.upper(),
    colorize=True,
)

if settings.log_to_file:
    LOG_DIR = Path(settings.log_dir)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logger.add(
        LOG_DIR / "docsynth_{time:YYYY-MM-DD}.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level="DEBUG",
        rotation="00:00",
        retention="7 days",
        compression="zip",
    )

for logger_name in (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "httpx",
    "httpcore",
    "asyncio",
):
    logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_event(event: ObservabilityEvent) -> None:
    """Log an engine event as one JSON line at its own level."""
    logger.log(event.level.value.upper(), f"EVENT: {event.format()}")


def log_acquisition_attempt(
    document_id: str,
    method: str,
    status: str,
    tries: int = 0,
    content_length: int = 0,
    score: int = 0,
    error: Optional[str] = None,
) -> None:
    """Log one candidate endpoint attempt."""
    attempt_data = {
        "timestamp": _now(),
        "document_id": document_id,
        "method": method,
        "status": status,
        "tries": tries,
        "content_length": content_length,
        "score": score,
        "error": error,
    }
    if error:
        logger.warning(f"ACQUISITION_ATTEMPT_FAILED: {attempt_data}")
    else:
        logger.info(f"ACQUISITION_ATTEMPT: {attempt_data}")


def log_resource_operation(
    operation: str,
    handle_id: str,
    status: str,
    details: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    """Log a temporary resource lifecycle operation."""
    op_data = {
        "timestamp": _now(),
        "operation": operation,
        "handle_id": handle_id,
        "status": status,
        "details": details,
        "error": error,
    }
    if error:
        logger.error(f"RESOURCE_OPERATION_FAILED: {op_data}")
    else:
        logger.info(f"RESOURCE_OPERATION: {op_data}")


def log_generation(
    document_id: str,
    status: str,
    record_id: Optional[str] = None,
    method: Optional[str] = None,
    duration_ms: int = 0,
    output_size: int = 0,
    error: Optional[str] = None,
) -> None:
    """Log a finished (or failed) document generation."""
    generation_data = {
        "timestamp": _now(),
        "document_id": document_id,
        "record_id": record_id,
        "status": status,
        "method": method,
        "duration_ms": duration_ms,
        "output_size": output_size,
        "error": error,
    }
    if error:
        logger.error(f"GENERATION_FAILED: {generation_data}")
    else:
        logger.info(f"GENERATION: {generation_data}")
