"""Chat completion backends built on LangChain's ChatOpenAI client.

Every text provider exposes an OpenAI-compatible endpoint, so one client
class covers them all with a per-provider base URL and model name mapping.
"""

import logging
from typing import Any

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from ..catalog import ModelDescriptor
from ..config import settings
from .base import ProviderBackend, RawCompletion

logger = logging.getLogger(__name__)

JSON_INSTRUCTION = (
    "IMPORTANT: Return ONLY raw JSON without markdown code blocks. "
    "Do NOT wrap your response in ```json ... ```"
)

# Providers that accept response_format={"type": "json_object"}
JSON_MODE_PROVIDERS = {"openai", "deepseek", "google"}


class ChatProviderBackend(ProviderBackend):
    """OpenAI-compatible chat completion transport for one provider."""

    def __init__(
        self,
        provider: str,
        base_url: str | None,
        model_names: dict[str, str] | None = None,
        timeout: int | None = None,
    ):
        self.provider = provider
        self.base_url = base_url
        self.model_names = model_names or {}
        self.timeout = timeout if timeout is not None else settings.llm_timeout

    def api_model_name(self, model: ModelDescriptor) -> str:
        return self.model_names.get(model.id, model.id)

    def create_llm(
        self,
        model: ModelDescriptor,
        api_key: str,
        is_json: bool,
        max_output_tokens: int | None,
        temperature: float,
        callbacks: list[Any] | None,
    ) -> ChatOpenAI:
        model_kwargs = {}
        if is_json and self.provider in JSON_MODE_PROVIDERS:
            model_kwargs["response_format"] = {"type": "json_object"}

        return ChatOpenAI(
            model=self.api_model_name(model),
            api_key=api_key,
            base_url=self.base_url,
            temperature=temperature,
            max_tokens=max_output_tokens or model.max_output_tokens or None,
            timeout=self.timeout,
            max_retries=0,  # retries belong to the orchestrator
            callbacks=callbacks or None,
            model_kwargs=model_kwargs,
        )

    async def generate(
        self,
        model: ModelDescriptor,
        prompt: str,
        *,
        api_key: str,
        system_instruction: str | None = None,
        is_json: bool = False,
        max_output_tokens: int | None = None,
        temperature: float = 0.7,
        callbacks: list[Any] | None = None,
    ) -> RawCompletion:
        llm = self.create_llm(
            model, api_key, is_json, max_output_tokens, temperature, callbacks
        )

        system = system_instruction or ""
        if is_json:
            system = f"{system}\n\n{JSON_INSTRUCTION}".strip()

        messages = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))

        logger.debug(f"{self.provider}: invoking {model.id} ({len(prompt)} chars)")
        message = await llm.ainvoke(messages)
        return to_raw_completion(message)


def to_raw_completion(message: AIMessage) -> RawCompletion:
    """Normalize an AIMessage into text and token counts."""
    content = message.content
    if isinstance(content, list):
        # Content blocks: keep the text parts
        content = "".join(
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
        )

    prompt_tokens = 0
    completion_tokens = 0
    usage = getattr(message, "usage_metadata", None)
    if usage:
        prompt_tokens = usage.get("input_tokens", 0)
        completion_tokens = usage.get("output_tokens", 0)
    else:
        token_usage = (message.response_metadata or {}).get("token_usage") or {}
        prompt_tokens = token_usage.get("prompt_tokens", 0)
        completion_tokens = token_usage.get("completion_tokens", 0)

    return RawCompletion(
        text=content or "",
        prompt_tokens=prompt_tokens or 0,
        completion_tokens=completion_tokens or 0,
    )


def create_chat_backends() -> dict[str, ProviderBackend]:
    """Default text backends keyed by provider id."""
    return {
        "openai": ChatProviderBackend("openai", "https://api.openai.com/v1"),
        "deepseek": ChatProviderBackend(
            "deepseek",
            "https://api.deepseek.com",
            model_names={"deepseek-v3": "deepseek-chat", "deepseek-r1": "deepseek-reasoner"},
        ),
        "google": ChatProviderBackend(
            "google", "https://generativelanguage.googleapis.com/v1beta/openai/"
        ),
        "anthropic": ChatProviderBackend(
            "anthropic",
            "https://api.anthropic.com/v1/",
            model_names={
                "claude-4.5-sonnet": "claude-sonnet-4-5",
                "claude-4.5-haiku": "claude-haiku-4-5",
            },
        ),
        "meta": ChatProviderBackend(
            "meta",
            "https://api.llama.com/compat/v1/",
            model_names={"llama-4-scout": "Llama-4-Scout-17B-16E-Instruct-FP8"},
        ),
    }
