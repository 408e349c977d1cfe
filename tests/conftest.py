"""Shared fixtures: scripted provider backends and a wired orchestrator."""

import json
from typing import Any

import pytest

from book_forge.catalog import ModelCatalog, ModelDescriptor
from book_forge.config import Settings
from book_forge.credentials import CredentialStore
from book_forge.ledger import UsageLedger
from book_forge.models import Book, BookMetadata, Chapter
from book_forge.observability import AgentLogStream
from book_forge.orchestrator import RequestOrchestrator
from book_forge.originality.search import SearchHit
from book_forge.providers.base import ProviderBackend, RawCompletion
from book_forge.storage import BookStore, UsageStore

TEXT_PROVIDERS = ("openai", "anthropic", "google", "deepseek", "meta")

# Marker text of each system prompt, checked in order
ROLE_MARKERS = (
    ("System Analyst", "diagnose"),
    ("Consistency Checker", "audit"),
    ("Extract structured Lore", "lore"),
    ("Semantic Search Engine", "retrieve"),
    ("Production Director", "outline"),
    ("expert Revision Specialist", "revise"),
    ("Paraphrase the paragraph", "rewrite"),
    ("Write FULL prose", "write"),
)


def role_of(system_instruction: str | None) -> str:
    for marker, role in ROLE_MARKERS:
        if system_instruction and marker in system_instruction:
            return role
    return "default"


class FakeBackend(ProviderBackend):
    """Backend answering from per-role queues.

    Each queue is consumed in order and its last item repeats. Exceptions in
    a queue are raised, dicts and lists are sent as JSON text.
    """

    def __init__(
        self,
        responses: dict[str, list[Any]] | None = None,
        prompt_tokens: int = 1000,
        completion_tokens: int = 500,
    ):
        self.provider = "fake"
        self.responses = {role: list(items) for role, items in (responses or {}).items()}
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.calls: list[dict[str, Any]] = []

    def script(self, role: str, *items: Any) -> None:
        self.responses[role] = list(items)

    def calls_for(self, role: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["role"] == role]

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
        role = role_of(system_instruction)
        self.calls.append({
            "role": role,
            "model": model.id,
            "provider": model.provider,
            "api_key": api_key,
            "prompt": prompt,
            "system": system_instruction,
            "is_json": is_json,
            "max_output_tokens": max_output_tokens,
        })

        queue = self.responses.get(role) or self.responses.get("default")
        if not queue:
            raise AssertionError(f"No scripted response for role '{role}'")
        item = queue.pop(0) if len(queue) > 1 else queue[0]

        if isinstance(item, BaseException):
            raise item
        if not isinstance(item, str):
            item = json.dumps(item)
        return RawCompletion(
            text=item,
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens,
        )


class FakeSearch:
    """Text search returning canned hits per phrase."""

    def __init__(self, hits: dict[str, list[SearchHit]] | None = None, error: Exception | None = None):
        self.hits = hits or {}
        self.error = error
        self.queries: list[str] = []

    async def search(self, phrase: str) -> list[SearchHit]:
        self.queries.append(phrase)
        if self.error is not None:
            raise self.error
        return self.hits.get(phrase, [])


async def no_sleep(seconds: float) -> None:
    return None


def make_settings(tmp_path, **overrides) -> Settings:
    """Settings isolated from the environment and any .env file."""
    values = {
        "gemini_api_key": "test-gemini",
        "openai_api_key": "test-openai",
        "anthropic_api_key": "test-anthropic",
        "deepseek_api_key": "test-deepseek",
        "meta_api_key": None,
        "fal_ai_key": None,
        "replicate_api_token": None,
        "google_books_api_key": None,
        "api_keys_file": None,
        "data_dir": tmp_path,
        "catalog_path": None,
        "llm_max_retries": 3,
        "llm_retry_base_delay": 0.0,
        "attempt_delay_seconds": 0.0,
        "langfuse_enabled": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def config(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def catalog():
    return ModelCatalog.default()


@pytest.fixture
def credentials(config):
    return CredentialStore(config)


@pytest.fixture
def ledger(tmp_path):
    return UsageLedger(UsageStore(tmp_path / "usage.json"))


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def orchestrator(catalog, credentials, ledger, backend, config):
    return RequestOrchestrator(
        catalog,
        credentials,
        ledger,
        backends={provider: backend for provider in TEXT_PROVIDERS},
        config=config,
        base_delay=0,
        sleep=no_sleep,
    )


@pytest.fixture
def log_stream():
    return AgentLogStream(capacity=100)


@pytest.fixture
def store(tmp_path):
    return BookStore(tmp_path)


@pytest.fixture
def sample_book():
    """Two outlined chapters, nothing written yet."""
    return Book(
        metadata=BookMetadata(
            title="The Salt Road",
            description="A caravan guard uncovers a smuggling ring.",
            tone="Adventurous",
            target_length="short",
        ),
        chapters=[
            Chapter(title="The Caravan", description="Mira joins the caravan at dawn."),
            Chapter(title="The Pass", description="Bandits ambush the caravan in the pass."),
        ],
    )
