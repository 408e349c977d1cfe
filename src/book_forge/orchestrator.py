"""Request orchestrator: one entry point for every provider call.

Resolves a model, dispatches to the backend registered for its provider,
classifies failures, retries the retryable ones and records usage.
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx
import openai
from pydantic import BaseModel, ValidationError

from .catalog import AIProfile, ModelCatalog, ModelDescriptor, TaskProfile
from .config import Settings, get_config
from .credentials import CredentialStore
from .ledger import UsageLedger, compute_cost
from .models import (
    AIError,
    MalformedResponse,
    ResolutionFailure,
    TransportError,
    UnifiedResponse,
    UsageRecord,
)
from .providers.base import ImageBackend, ProviderBackend, RawCompletion
from .resolver import ModelResolver
from .utils.retry import create_async_retrying, log_retry_success
from .utils.text import strip_markdown_code_blocks

logger = logging.getLogger(__name__)

CallbackFactory = Callable[[str | None], list[Any]]

# Status codes quoted in exception text, matched as whole numbers
RATE_LIMIT_STATUS = re.compile(r"\b429\b")
SERVER_ERROR_STATUS = re.compile(r"\b50[0234]\b")


@dataclass
class RequestOptions:
    """Per-call options for RequestOrchestrator.execute."""

    model_id: str | None = None
    preference: AIProfile | None = None
    system_instruction: str | None = None
    is_json: bool = False
    schema: type[BaseModel] | None = None
    agent: str | None = None
    book_id: str | None = None
    chapter_id: str | None = None
    max_output_tokens: int | None = None
    temperature: float | None = None


def _retry_after_seconds(response: httpx.Response | None) -> float | None:
    if response is None:
        return None
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def classify_error(provider: str, error: BaseException) -> AIError:
    """Map a backend exception onto the AIError taxonomy."""
    if isinstance(error, AIError):
        return error

    message = str(error) or type(error).__name__

    if isinstance(error, openai.RateLimitError):
        return TransportError(provider, message, is_retryable=True,
                              retry_after=_retry_after_seconds(error.response))
    if isinstance(error, (openai.InternalServerError, openai.APIConnectionError)):
        # APITimeoutError is a subclass of APIConnectionError
        return TransportError(provider, message, is_retryable=True)
    if isinstance(error, openai.APIStatusError):
        retryable = error.status_code == 429 or error.status_code >= 500
        return TransportError(provider, message, is_retryable=retryable,
                              retry_after=_retry_after_seconds(error.response) if retryable else None)

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        retryable = status == 429 or status >= 500
        return TransportError(provider, message, is_retryable=retryable,
                              retry_after=_retry_after_seconds(error.response) if status == 429 else None)
    if isinstance(error, (httpx.TransportError, asyncio.TimeoutError)):
        return TransportError(provider, message, is_retryable=True)

    lowered = message.lower()
    if RATE_LIMIT_STATUS.search(message) or "rate limit" in lowered:
        return TransportError(provider, message, is_retryable=True)
    if SERVER_ERROR_STATUS.search(message):
        return TransportError(provider, message, is_retryable=True)

    return TransportError(provider, message, is_retryable=False)


def parse_json_content(provider: str, text: str, schema: type[BaseModel] | None = None) -> Any:
    """Strip code fences, parse the JSON document and validate it against ``schema``.

    Every failure raises MalformedResponse.
    """
    cleaned = strip_markdown_code_blocks(text or "")
    if not cleaned:
        raise MalformedResponse(provider, "Empty response where JSON was expected", raw=text)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedResponse(provider, f"Invalid JSON response: {e}", raw=text) from e

    if schema is None:
        return data

    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(
            provider, f"Response does not match {schema.__name__}: {e}", raw=text
        ) from e


class RequestOrchestrator:
    """Routes generation requests across providers.

    Collaborators are injected: catalog, credentials, backends keyed by
    provider id and the usage ledger. ``sleep`` and ``base_delay`` control
    retry backoff.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        credentials: CredentialStore,
        ledger: UsageLedger,
        backends: dict[str, ProviderBackend],
        image_backends: dict[str, ImageBackend] | None = None,
        resolver: ModelResolver | None = None,
        config: Settings | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        callback_factory: CallbackFactory | None = None,
    ):
        self.config = config or get_config()
        self.catalog = catalog
        self.credentials = credentials
        self.ledger = ledger
        self.backends = dict(backends)
        self.image_backends = dict(image_backends or {})
        self.resolver = resolver or ModelResolver(catalog, credentials)
        self.max_attempts = max_attempts if max_attempts is not None else self.config.llm_max_retries
        self.base_delay = base_delay if base_delay is not None else self.config.llm_retry_base_delay
        self.sleep = sleep
        self.callback_factory = callback_factory

    def refresh_credentials(self) -> None:
        """Re-read provider keys, e.g. after the user edits the key file."""
        self.credentials.refresh()
        logger.info(f"Credentials refreshed: {self.credentials.providers()}")

    async def execute(
        self,
        task: TaskProfile,
        prompt: str,
        options: RequestOptions | None = None,
    ) -> UnifiedResponse:
        options = options or RequestOptions()
        model = self.resolver.resolve(task, options.model_id, options.preference)

        backend = self.backends.get(model.provider)
        if backend is None:
            raise ResolutionFailure(
                model.provider, f"No backend registered for provider {model.provider}"
            )
        api_key = self.credentials.get(model.provider)
        if not api_key:
            raise ResolutionFailure(
                model.provider, f"No API key configured for provider {model.provider}"
            )

        callbacks = self.callback_factory(options.book_id) if self.callback_factory else None
        temperature = (
            options.temperature if options.temperature is not None else self.config.default_temperature
        )

        retrying = create_async_retrying(self.max_attempts, self.base_delay, self.sleep)
        async for attempt in retrying:
            with attempt:
                started = time.perf_counter()
                try:
                    raw: RawCompletion = await backend.generate(
                        model,
                        prompt,
                        api_key=api_key,
                        system_instruction=options.system_instruction,
                        is_json=options.is_json,
                        max_output_tokens=options.max_output_tokens,
                        temperature=temperature,
                        callbacks=callbacks,
                    )
                except Exception as e:
                    ai_error = classify_error(model.provider, e)
                    logger.warning(
                        f"{options.agent or task.value}: {model.id} failed "
                        f"(attempt {attempt.retry_state.attempt_number}/{self.max_attempts}): {ai_error.message}"
                    )
                    raise ai_error from e
                duration_ms = (time.perf_counter() - started) * 1000
                log_retry_success(
                    f"{options.agent or task.value} via {model.id}",
                    attempt.retry_state.attempt_number,
                    self.max_attempts,
                )

        usage = self._record(model, raw.prompt_tokens, raw.completion_tokens, options, duration_ms)

        if options.is_json:
            content = parse_json_content(model.provider, raw.text, options.schema)
        else:
            content = raw.text

        return UnifiedResponse(content=content, usage=usage)

    async def generate_image(
        self,
        prompt: str,
        model_id: str = "flux-1.1-pro",
        book_id: str | None = None,
        agent: str | None = None,
        image_size: str = "landscape_16_9",
    ) -> str:
        """Generate an image and return its URL; usage is billed per image."""
        model = self.catalog.get(model_id)
        if model is None or not model.supports("image") or model.provider not in self.image_backends:
            raise ResolutionFailure(
                model.provider if model else "unknown", f"Invalid image model: {model_id}"
            )

        backend = self.image_backends[model.provider]
        api_key = self.credentials.get(model.provider)
        if not api_key:
            raise ResolutionFailure(
                model.provider, f"No API key configured for provider {model.provider}"
            )

        retrying = create_async_retrying(self.max_attempts, self.base_delay, self.sleep)
        async for attempt in retrying:
            with attempt:
                started = time.perf_counter()
                try:
                    url = await backend.generate_image(
                        model, prompt, api_key=api_key, image_size=image_size
                    )
                except Exception as e:
                    raise classify_error(model.provider, e) from e
                duration_ms = (time.perf_counter() - started) * 1000

        self._record(model, 0, 0, RequestOptions(agent=agent, book_id=book_id), duration_ms)
        return url

    def _record(
        self,
        model: ModelDescriptor,
        prompt_tokens: int,
        completion_tokens: int,
        options: RequestOptions,
        duration_ms: float,
    ) -> UsageRecord:
        usage = UsageRecord(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            cost=compute_cost(
                model, prompt_tokens, completion_tokens, self.catalog.image_price(model.id)
            ),
            model_id=model.id,
            provider=model.provider,
            book_id=options.book_id,
            chapter_id=options.chapter_id,
            agent=options.agent,
            duration_ms=duration_ms,
        )
        self.ledger.record(usage)
        return usage
