"""Shared fixtures for unit tests."""

import httpx
import pytest
from pydantic import SecretStr

from invoice_pipeline.clients.llm_client import ModelClient
from invoice_pipeline.core.settings import (
    IngestSettings,
    LLMSettings,
    PipelineSettings,
    Settings,
)
from invoice_pipeline.resilience.retry import RetryConfig

LLM_ENDPOINT = "https://llm.example.com"
LLM_DEPLOYMENT = "gpt-4o-invoices"


@pytest.fixture
def llm_settings() -> LLMSettings:
    return LLMSettings(
        LLM_ENDPOINT_URL=LLM_ENDPOINT,
        LLM_API_KEY=SecretStr("test-key"),
        LLM_DEPLOYMENT=LLM_DEPLOYMENT,
    )


@pytest.fixture
def ingest_settings() -> IngestSettings:
    return IngestSettings(
        MAX_DOCUMENT_BYTES=64 * 1024,
        ALLOWED_HOSTS="docs.example.com,storage.example.org",
        UPSTREAM_RETRY_DELAY_SECONDS=0,
        FETCH_TIMEOUT_SECONDS=5,
    )


@pytest.fixture
def pipeline_settings() -> PipelineSettings:
    return PipelineSettings(
        CLASSIFICATION_TIMEOUT_SECONDS=2,
        EXTRACTION_TIMEOUT_SECONDS=2,
        LLM_MAX_RETRIES=2,
        MAX_OCR_TEXT_BYTES=4096,
    )


@pytest.fixture
def settings(llm_settings, ingest_settings, pipeline_settings) -> Settings:
    return Settings(llm=llm_settings, ingest=ingest_settings, pipeline=pipeline_settings)


@pytest.fixture
def no_wait_retry() -> RetryConfig:
    """Retry budget of 2 with zero backoff so tests never sleep."""
    return RetryConfig(max_retries=2, schedule_seconds=(0.0,), jitter_seconds=0.0)


@pytest.fixture
def make_client(llm_settings, no_wait_retry):
    """Build a ModelClient whose HTTP traffic goes to ``handler``."""

    def _make(handler, **kwargs) -> ModelClient:
        kwargs.setdefault("retry", no_wait_retry)
        return ModelClient(
            llm_settings,
            transport=httpx.MockTransport(handler),
            **kwargs,
        )

    return _make
