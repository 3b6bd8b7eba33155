from __future__ import annotations

from functools import lru_cache

from docsynth.services.credentials import SettingsCredentialStore
from docsynth.services.google_docs import GoogleDocsApiClient
from docsynth.services.synthesizer import DocumentSynthesizer
from docsynth.template_core.acquire.service import ContentAcquirer
from docsynth.template_core.extract.service import PlaceholderExtractor
from docsynth.template_core.resources.manager import TemporaryResourceManager
from docsynth.template_core.strategy.service import AccessStrategySelector


@lru_cache
def get_google_client() -> GoogleDocsApiClient:
    return GoogleDocsApiClient()


def get_selector() -> AccessStrategySelector:
    return AccessStrategySelector(credentials=SettingsCredentialStore(get_google_client()))


def get_extractor() -> PlaceholderExtractor:
    return PlaceholderExtractor()


def get_acquirer() -> ContentAcquirer:
    return ContentAcquirer(extractor=get_extractor())


def get_synthesizer() -> DocumentSynthesizer:
    """Fresh engine per request; working copies are scoped to the request's resource manager."""
    acquirer = get_acquirer()
    return DocumentSynthesizer(
        selector=get_selector(),
        acquirer=acquirer,
        extractor=acquirer.extractor,
        resources=TemporaryResourceManager(acquirer=acquirer, google_client=get_google_client()),
    )
