"""
Centralized application settings using Pydantic.

All environment variables are read once and validated.
Use this instead of scattered os.getenv() calls throughout the codebase.
"""

from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings

from invoice_pipeline.core.config import (
    BACKOFF_JITTER_SECONDS,
    CLASSIFICATION_TIMEOUT_SECONDS,
    EXTRACTION_TIMEOUT_SECONDS,
    FETCH_TIMEOUT_SECONDS,
    LLM_API_VERSION,
    LLM_MAX_RETRIES,
    LLM_PROVIDER,
    MAX_DOCUMENT_BYTES,
    MAX_OCR_TEXT_BYTES,
    MAX_URL_LENGTH,
    UPSTREAM_RETRY_DELAY_SECONDS,
)

_MODEL_CONFIG = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class LLMSettings(BaseSettings):
    """LLM service configuration (Azure OpenAI style deployment)."""

    LLM_ENDPOINT_URL: str = ""
    LLM_API_KEY: SecretStr = SecretStr("")
    LLM_DEPLOYMENT: str = ""
    LLM_API_VERSION: str = LLM_API_VERSION
    LLM_PROVIDER: str = LLM_PROVIDER

    model_config = _MODEL_CONFIG

    @property
    def is_configured(self) -> bool:
        return bool(
            self.LLM_ENDPOINT_URL.strip()
            and self.LLM_DEPLOYMENT.strip()
            and self.LLM_API_KEY.get_secret_value().strip()
        )

    def missing_keys(self) -> list[str]:
        missing = []
        if not self.LLM_ENDPOINT_URL.strip():
            missing.append("LLM_ENDPOINT_URL")
        if not self.LLM_API_KEY.get_secret_value().strip():
            missing.append("LLM_API_KEY")
        if not self.LLM_DEPLOYMENT.strip():
            missing.append("LLM_DEPLOYMENT")
        return missing


class IngestSettings(BaseSettings):
    """Document fetch limits."""

    MAX_DOCUMENT_BYTES: int = Field(default=MAX_DOCUMENT_BYTES, gt=0)
    MAX_URL_LENGTH: int = Field(default=MAX_URL_LENGTH, gt=0)
    ALLOWED_HOSTS: str = ""
    FETCH_TIMEOUT_SECONDS: float = Field(default=FETCH_TIMEOUT_SECONDS, gt=0)
    UPSTREAM_RETRY_DELAY_SECONDS: float = Field(
        default=UPSTREAM_RETRY_DELAY_SECONDS, ge=0
    )

    model_config = _MODEL_CONFIG

    @property
    def allowed_hosts(self) -> tuple[str, ...]:
        """Comma separated ALLOWED_HOSTS as a normalized tuple (empty = no allow-list)."""
        return tuple(
            host.strip().lower().lstrip(".")
            for host in self.ALLOWED_HOSTS.split(",")
            if host.strip()
        )


class PipelineSettings(BaseSettings):
    """Extraction pipeline behaviour."""

    CLASSIFICATION_TIMEOUT_SECONDS: float = Field(
        default=CLASSIFICATION_TIMEOUT_SECONDS, gt=0
    )
    EXTRACTION_TIMEOUT_SECONDS: float = Field(default=EXTRACTION_TIMEOUT_SECONDS, gt=0)
    LLM_MAX_RETRIES: int = Field(default=LLM_MAX_RETRIES, ge=0)
    BACKOFF_JITTER_SECONDS: float = Field(default=BACKOFF_JITTER_SECONDS, ge=0)
    MAX_OCR_TEXT_BYTES: int = Field(default=MAX_OCR_TEXT_BYTES, gt=0)

    # Overrides for the confidence aggregation tables (JSON in the environment)
    CONFIDENCE_WEIGHTS: dict[str, float] = Field(default_factory=dict)
    REQUIRED_FIELDS: dict[str, list[str]] = Field(default_factory=dict)

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    model_config = _MODEL_CONFIG

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, level: str) -> str:
        normalized = level.strip().upper()
        if normalized not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}")
        return normalized

    @field_validator("CONFIDENCE_WEIGHTS")
    @classmethod
    def validate_weights(cls, weights: dict[str, float]) -> dict[str, float]:
        for name, weight in weights.items():
            if weight < 0:
                raise ValueError(f"Weight for '{name}' must be non-negative")
        return weights


class Settings:
    """Bundle of all settings groups, built once per process."""

    def __init__(
        self,
        llm: LLMSettings | None = None,
        ingest: IngestSettings | None = None,
        pipeline: PipelineSettings | None = None,
    ) -> None:
        self.llm = llm or LLMSettings()
        self.ingest = ingest or IngestSettings()
        self.pipeline = pipeline or PipelineSettings()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
