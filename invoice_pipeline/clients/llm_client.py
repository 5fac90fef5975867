"""
Chat-completions client with timeouts, categorized errors, retries and
JSON repair.

One ``call`` is one logical model call: up to ``max_retries + 1`` HTTP
attempts, each bounded by its own timeout. Failures come back as a
``ModelCallFailure`` value, never as an exception; only caller
cancellation propagates.
"""

import asyncio
import json
import logging
import time
from http import HTTPStatus
from typing import Any, Optional, Sequence

import httpx
from pydantic import BaseModel, ValidationError

from invoice_pipeline.core.config import (
    DEFAULT_LLM_TIMEOUT_SECONDS,
    DEFAULT_TEMPERATURE,
    ERROR_BODY_MAX_CHARS,
)
from invoice_pipeline.core.logging_utils import host_of, preview_text
from invoice_pipeline.core.settings import LLMSettings, Settings, get_settings
from invoice_pipeline.errors.codes import ModelErrorCategory
from invoice_pipeline.models.dto import (
    ModelCallFailure,
    ModelCallOutcome,
    ModelCallSuccess,
    ModelUsage,
)
from invoice_pipeline.resilience.cancellation import CancelledByCaller, run_cancellable
from invoice_pipeline.resilience.retry import RetryConfig, sleep_or_cancel
from invoice_pipeline.utils.parsers import (
    CompletionParseError,
    parse_chat_completion,
    parse_json_strict,
    repair_json_text,
)

logger = logging.getLogger(__name__)

Message = dict[str, str]

SCHEMA_INSTRUCTION = (
    "Respond with a single JSON object and nothing else. "
    "It must conform to this JSON schema:\n{schema}"
)


def categorize_status(status_code: int) -> ModelErrorCategory:
    """Map a non-2xx HTTP status to a model error category."""
    if status_code == HTTPStatus.BAD_REQUEST:
        return ModelErrorCategory.VALIDATION
    if status_code in (HTTPStatus.UNAUTHORIZED, HTTPStatus.FORBIDDEN):
        return ModelErrorCategory.AUTH
    if status_code == HTTPStatus.TOO_MANY_REQUESTS:
        return ModelErrorCategory.QUOTA
    return ModelErrorCategory.SERVER


class _Attempt:
    """Result of a single HTTP attempt (internal)."""

    __slots__ = ("data", "usage", "repaired", "category", "status_code", "message")

    def __init__(
        self,
        *,
        data: Any = None,
        usage: Optional[ModelUsage] = None,
        repaired: bool = False,
        category: Optional[ModelErrorCategory] = None,
        status_code: Optional[int] = None,
        message: str = "",
    ) -> None:
        self.data = data
        self.usage = usage or ModelUsage()
        self.repaired = repaired
        self.category = category
        self.status_code = status_code
        self.message = message

    @property
    def ok(self) -> bool:
        return self.category is None


class ModelClient:
    """Async client for an Azure OpenAI style chat-completions deployment.

    The instance holds configuration only; every ``call`` opens its own
    HTTP client, so concurrent calls never share mutable state.

    Args:
        settings: Endpoint, deployment and credentials
        retry: Backoff schedule and default retry budget
        default_timeout_seconds: Per-attempt timeout when the caller gives none
        temperature: Sampling temperature sent with every request
        max_tokens: Optional completion token cap
        transport: Injected httpx transport (tests use ``httpx.MockTransport``)
    """

    def __init__(
        self,
        settings: LLMSettings,
        *,
        retry: Optional[RetryConfig] = None,
        default_timeout_seconds: float = DEFAULT_LLM_TIMEOUT_SECONDS,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._retry = retry or RetryConfig()
        self._default_timeout = default_timeout_seconds
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._transport = transport

    @property
    def provider(self) -> str:
        return self._settings.LLM_PROVIDER

    @property
    def model(self) -> str:
        return self._settings.LLM_DEPLOYMENT

    @property
    def endpoint(self) -> str:
        base = self._settings.LLM_ENDPOINT_URL.strip().rstrip("/")
        if base.endswith("/chat/completions"):
            return base
        return f"{base}/openai/deployments/{self._settings.LLM_DEPLOYMENT}/chat/completions"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            params={"api-version": self._settings.LLM_API_VERSION},
            headers={
                "api-key": self._settings.LLM_API_KEY.get_secret_value(),
                "Content-Type": "application/json",
            },
            timeout=None,
            transport=self._transport,
        )

    def build_payload(
        self,
        messages: Sequence[Message],
        schema: Optional[type[BaseModel]] = None,
    ) -> dict[str, Any]:
        prepared = [dict(message) for message in messages]
        payload: dict[str, Any] = {"temperature": self._temperature}
        if self._max_tokens is not None:
            payload["max_tokens"] = self._max_tokens

        if schema is not None:
            instruction = SCHEMA_INSTRUCTION.format(
                schema=json.dumps(schema.model_json_schema(), ensure_ascii=False)
            )
            if prepared and prepared[0].get("role") == "system":
                prepared[0]["content"] = f"{prepared[0]['content']}\n\n{instruction}"
            else:
                prepared.insert(0, {"role": "system", "content": instruction})
            payload["response_format"] = {"type": "json_object"}

        payload["messages"] = prepared
        return payload

    async def call(
        self,
        messages: Sequence[Message],
        schema: Optional[type[BaseModel]] = None,
        *,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ModelCallOutcome:
        """Run one logical model call.

        Without a schema, ``data`` is the raw text content. With a schema,
        ``data`` is a validated instance of it.

        Raises:
            CancelledByCaller: ``cancel_event`` fired during an attempt or backoff.
        """
        started = time.perf_counter()

        if not self._settings.is_configured:
            missing = ", ".join(self._settings.missing_keys())
            logger.error(
                "LLM client is not configured",
                extra={"provider": self.provider, "outcome": "VALIDATION"},
            )
            return ModelCallFailure(
                category=ModelErrorCategory.VALIDATION,
                message=f"Missing LLM configuration: {missing}",
                duration_ms=_elapsed_ms(started),
                attempts=0,
            )

        timeout = timeout_seconds if timeout_seconds is not None else self._default_timeout
        budget = self._retry.max_retries if max_retries is None else max_retries
        payload = self.build_payload(messages, schema)

        attempt_no = 0
        async with self._client() as http:
            while True:
                attempt_no += 1
                attempt_started = time.perf_counter()
                result = await self._attempt(http, payload, schema, timeout, cancel_event)
                self._log_attempt(attempt_no, result, _elapsed_ms(attempt_started))

                if result.ok:
                    return ModelCallSuccess(
                        data=result.data,
                        usage=result.usage,
                        duration_ms=_elapsed_ms(started),
                        attempts=attempt_no,
                        repaired=result.repaired,
                    )

                retry_index = attempt_no - 1
                retryable = result.category.retryable and self._retry.should_retry(
                    retry_index, budget
                )
                if not retryable:
                    return ModelCallFailure(
                        category=result.category,
                        status_code=result.status_code,
                        message=result.message,
                        duration_ms=_elapsed_ms(started),
                        attempts=attempt_no,
                    )

                delay = self._retry.delay_for(retry_index)
                logger.warning(
                    "Retrying LLM call",
                    extra={
                        "provider": self.provider,
                        "model": self.model,
                        "retry_attempt": attempt_no,
                        "category": result.category.value,
                        "delay_ms": int(delay * 1000),
                    },
                )
                if not await sleep_or_cancel(delay, cancel_event):
                    raise CancelledByCaller("Cancelled during retry backoff")

    async def _attempt(
        self,
        http: httpx.AsyncClient,
        payload: dict[str, Any],
        schema: Optional[type[BaseModel]],
        timeout: float,
        cancel_event: Optional[asyncio.Event],
    ) -> _Attempt:
        try:
            response = await run_cancellable(
                asyncio.wait_for(http.post(self.endpoint, json=payload), timeout),
                cancel_event,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return _Attempt(
                category=ModelErrorCategory.TIMEOUT,
                message=f"LLM call exceeded {timeout:.1f}s",
            )
        except httpx.HTTPError as e:
            return _Attempt(
                category=ModelErrorCategory.SERVER,
                message=f"LLM transport error: {type(e).__name__}",
            )

        if not response.is_success:
            return _Attempt(
                category=categorize_status(response.status_code),
                status_code=response.status_code,
                message=(
                    f"LLM HTTP {response.status_code}: "
                    f"{preview_text(response.text, ERROR_BODY_MAX_CHARS)}"
                ),
            )

        try:
            content, usage = parse_chat_completion(response.json())
        except (ValueError, CompletionParseError) as e:
            return _Attempt(
                category=ModelErrorCategory.SERVER,
                status_code=response.status_code,
                message=f"Malformed LLM response envelope: {e}",
            )

        model_usage = ModelUsage(**usage)
        if schema is None:
            return _Attempt(data=content, usage=model_usage)
        return self._validate(content, schema, model_usage, response.status_code)

    def _validate(
        self,
        content: str,
        schema: type[BaseModel],
        usage: ModelUsage,
        status_code: int,
    ) -> _Attempt:
        validated = _try_validate(parse_json_strict(content), schema)
        if validated is not None:
            return _Attempt(data=validated, usage=usage)

        # One repair pass over the same response; no new model call
        validated = _try_validate(repair_json_text(content), schema)
        if validated is not None:
            logger.info(
                "Repaired malformed LLM JSON",
                extra={"provider": self.provider, "model": self.model},
            )
            return _Attempt(data=validated, usage=usage, repaired=True)

        logger.warning(
            "LLM output failed schema validation after repair",
            extra={
                "provider": self.provider,
                "model": self.model,
                "preview": preview_text(content),
            },
        )
        return _Attempt(
            category=ModelErrorCategory.SCHEMA_VALIDATION,
            status_code=status_code,
            usage=usage,
            message=f"LLM output does not match {schema.__name__}",
        )

    def _log_attempt(self, attempt_no: int, result: _Attempt, duration_ms: int) -> None:
        extra = {
            "provider": self.provider,
            "model": self.model,
            "host": host_of(self._settings.LLM_ENDPOINT_URL),
            "attempt": attempt_no,
            "outcome": "ok" if result.ok else result.category.value,
            "duration_ms": duration_ms,
            "tokens": result.usage.total_tokens,
        }
        if result.status_code is not None:
            extra["status_code"] = result.status_code
        if result.ok:
            logger.info("LLM attempt", extra=extra)
        else:
            logger.warning("LLM attempt failed: %s", result.message, extra=extra)


def create_model_client_from_settings(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ModelClient:
    """Create a ModelClient from the LLM and retry settings."""
    settings = settings or get_settings()
    return ModelClient(
        settings.llm,
        retry=RetryConfig.from_settings(settings.pipeline),
        transport=transport,
    )


def _try_validate(candidate: Any, schema: type[BaseModel]) -> Optional[BaseModel]:
    if not isinstance(candidate, dict):
        return None
    try:
        return schema.model_validate(candidate)
    except ValidationError:
        return None


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
