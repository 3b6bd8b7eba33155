from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from docsynth.api.deps import get_synthesizer
from docsynth.models.interfaces import AccessStrategy
from docsynth.models.schemas import GenerateRequest
from docsynth.services.synthesizer import DocumentSynthesizer

router = APIRouter(prefix="/api/documents", tags=["documents"])


@router.post("/generate")
async def generate_document(
    request: GenerateRequest,
    synthesizer: DocumentSynthesizer = Depends(get_synthesizer),
):
    """Fill the template with one record and return the rendered document."""
    async with synthesizer.resources:
        result = await synthesizer.generate(
            request.url,
            request.mapping,
            request.record,
            request.line_items.to_config() if request.line_items else None,
            request.image.to_config() if request.image else None,
            strategy=request.strategy,
        )

    metadata = result.metadata
    if metadata.strategy == AccessStrategy.API_ACCESS:
        media_type = "application/pdf"
    else:
        media_type = "text/html; charset=utf-8"
    headers = {
        "X-Document-Id": metadata.document_id,
        "X-Access-Strategy": metadata.strategy.value,
        "X-Acquisition-Method": metadata.acquisition_method_used,
        "X-Placeholder-Count": str(metadata.placeholder_count),
        "X-Content-Length": str(metadata.content_length),
        "X-Generated-At": metadata.completed_at,
        "X-Duration-Ms": str(metadata.duration_ms),
    }
    return Response(content=result.content, media_type=media_type, headers=headers)
