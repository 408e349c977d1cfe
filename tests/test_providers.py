"""Tests for the chat and image provider backends."""

import httpx
import pytest
from langchain_core.messages import AIMessage

from book_forge.catalog import ModelCatalog
from book_forge.models import MalformedResponse
from book_forge.providers.chat import (
    ChatProviderBackend,
    create_chat_backends,
    to_raw_completion,
)
from book_forge.providers.image import FalImageBackend


def test_usage_metadata_preferred():
    message = AIMessage(
        content="Hello",
        usage_metadata={"input_tokens": 12, "output_tokens": 4, "total_tokens": 16},
    )

    raw = to_raw_completion(message)

    assert raw.text == "Hello"
    assert raw.prompt_tokens == 12
    assert raw.completion_tokens == 4


def test_token_usage_fallback_and_content_blocks():
    message = AIMessage(
        content=[{"type": "text", "text": "Part one. "}, {"type": "text", "text": "Part two."}],
        response_metadata={"token_usage": {"prompt_tokens": 30, "completion_tokens": 9}},
    )

    raw = to_raw_completion(message)

    assert raw.text == "Part one. Part two."
    assert raw.prompt_tokens == 30
    assert raw.completion_tokens == 9


def test_api_model_name_mapping():
    backends = create_chat_backends()
    catalog = ModelCatalog.default()

    assert backends["deepseek"].api_model_name(catalog.get("deepseek-r1")) == "deepseek-reasoner"
    assert backends["openai"].api_model_name(catalog.get("gpt-4o")) == "gpt-4o"


def test_json_mode_only_for_supporting_providers():
    catalog = ModelCatalog.default()
    openai_backend = ChatProviderBackend("openai", "https://api.openai.com/v1", timeout=5)
    anthropic_backend = ChatProviderBackend("anthropic", "https://api.anthropic.com/v1/", timeout=5)

    llm = openai_backend.create_llm(catalog.get("gpt-4o"), "sk-test", True, 512, 0.2, None)
    assert llm.model_kwargs["response_format"] == {"type": "json_object"}
    assert llm.max_retries == 0

    llm = anthropic_backend.create_llm(
        catalog.get("claude-4.5-sonnet"), "sk-test", True, None, 0.2, None
    )
    assert "response_format" not in llm.model_kwargs


@pytest.mark.asyncio
async def test_fal_image_backend_returns_first_url(monkeypatch):
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["path"] = request.url.path
        return httpx.Response(200, json={"images": [{"url": "https://fal.media/cover.png"}]})

    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr("book_forge.providers.image.httpx.AsyncClient", client_factory)

    backend = FalImageBackend(timeout=5)
    url = await backend.generate_image(ModelCatalog.default().get("flux-1.1-pro"), "A lighthouse", api_key="fal")

    assert url == "https://fal.media/cover.png"
    assert seen["auth"] == "Key fal"
    assert seen["path"].endswith("/flux-1.1-pro")


@pytest.mark.asyncio
async def test_fal_image_backend_without_images(monkeypatch):
    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"images": []})),
            **kwargs,
        )

    monkeypatch.setattr("book_forge.providers.image.httpx.AsyncClient", client_factory)

    with pytest.raises(MalformedResponse, match="No image URL") as exc_info:
        await FalImageBackend(timeout=5).generate_image(
            ModelCatalog.default().get("flux-1.1-pro"), "A lighthouse", api_key="fal"
        )

    assert exc_info.value.is_retryable is False
    assert exc_info.value.provider == "fal-ai"
