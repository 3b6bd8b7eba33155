from __future__ import annotations

from fastapi import APIRouter, Depends

from docsynth.api.deps import get_acquirer, get_google_client, get_selector
from docsynth.errors import InvalidReference
from docsynth.models.interfaces import AccessStrategy
from docsynth.models.schemas import AttemptResponse, InspectRequest, InspectResponse, ReferenceCheckResponse
from docsynth.services.google_docs import GoogleDocsApiClient, document_text
from docsynth.template_core.acquire.service import ContentAcquirer
from docsynth.template_core.strategy.service import AccessStrategySelector

router = APIRouter(prefix="/api/templates", tags=["templates"])


@router.post("/inspect", response_model=InspectResponse)
async def inspect_template(
    request: InspectRequest,
    selector: AccessStrategySelector = Depends(get_selector),
    acquirer: ContentAcquirer = Depends(get_acquirer),
    google: GoogleDocsApiClient = Depends(get_google_client),
):
    """Classify a template URL, pick a strategy and list the placeholders it carries."""
    check = selector.classify(request.url)
    if not check.valid:
        raise InvalidReference(f"Invalid document reference: {'; '.join(check.errors)}", url=request.url, errors=check.errors)

    reference = await selector.resolve(request.url, override=request.strategy)
    response = InspectResponse(
        check=ReferenceCheckResponse(
            valid=check.valid,
            errors=check.errors,
            document_id=check.document_id,
            is_publicly_shared=check.is_publicly_shared,
        ),
        strategy=reference.strategy.value if reference.strategy else None,
    )
    if not request.fetch:
        return response

    if reference.strategy == AccessStrategy.API_ACCESS:
        document = await google.read_document(reference.document_id)
        content = document_text(document)
        response.title = str(document.get("title") or "")
        response.acquisition_method = "google-api"
    else:
        acquisition = await acquirer.acquire(reference)
        content = acquisition.content
        response.title = acquisition.title
        response.acquisition_method = acquisition.method
        response.attempts = [
            AttemptResponse.from_attempt(a)
            for a in acquisition.attempts
        ]

    report = acquirer.extractor.analyze(content)
    response.placeholders = report.names
    response.recognizer_counts = report.recognizer_counts
    return response
