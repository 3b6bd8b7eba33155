from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docsynth.api.routes import documents, templates
from docsynth.config import settings
from docsynth.errors import (
    DocSynthError,
    DocumentUnreachable,
    InvalidReference,
    OperationTimeout,
    RenderFailure,
    UnresolvedCriticalField,
)
from docsynth.models.schemas import AttemptResponse, ErrorResponse
from docsynth.services.logger import logger

# Most specific first: AcquisitionTimeout is both a timeout and unreachable.
ERROR_STATUS: tuple[tuple[type[DocSynthError], int], ...] = (
    (InvalidReference, 422),
    (UnresolvedCriticalField, 422),
    (OperationTimeout, 504),
    (DocumentUnreachable, 502),
    (RenderFailure, 500),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("docsynth API starting")
    yield
    logger.info("docsynth API stopped")


app = FastAPI(
    title="docsynth",
    description="Template resolution and document synthesis",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DocSynthError)
async def docsynth_error_handler(_request: Request, exc: DocSynthError):
    status_code = next((code for kind, code in ERROR_STATUS if isinstance(exc, kind)), 500)
    diagnostics = [
        AttemptResponse.from_attempt(a)
        for a in getattr(exc, "diagnostics", [])
    ]
    body = ErrorResponse(
        error=type(exc).__name__,
        message=exc.message,
        context={k: v for k, v in exc.context.items() if isinstance(v, (str, int, float, bool, list, type(None)))},
        diagnostics=diagnostics,
    )
    if status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=status_code, content=body.model_dump())


# Routes
app.include_router(templates.router)
app.include_router(documents.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "docsynth"}
