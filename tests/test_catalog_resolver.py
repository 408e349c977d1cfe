"""Tests for the model catalog, credentials and model resolution."""

import json

import pytest

from book_forge.catalog import AIProfile, ModelAssignment, ModelCatalog, TaskProfile, load_catalog
from book_forge.credentials import CredentialStore
from book_forge.resolver import ModelResolver

from conftest import make_settings

NO_KEYS = {
    "gemini_api_key": None,
    "openai_api_key": None,
    "anthropic_api_key": None,
    "deepseek_api_key": None,
}


def test_default_catalog_entries():
    catalog = ModelCatalog.default()

    sonnet = catalog.get("claude-4.5-sonnet")
    assert sonnet.provider == "anthropic"
    assert sonnet.input_cost_per_million_tokens == 3.00
    assert sonnet.output_cost_per_million_tokens == 15.00
    assert catalog.get("flux-1.1-pro").supports("image")
    assert catalog.image_price("flux-1.1-pro") == 0.04
    assert catalog.get("does-not-exist") is None


def test_catalog_is_immutable():
    catalog = ModelCatalog.default()

    with pytest.raises(TypeError):
        catalog.models["new-model"] = catalog.get("gpt-4o")
    with pytest.raises(TypeError):
        catalog.default_assignments[TaskProfile.WRITING] = "gpt-4o"


def test_profile_mapping_falls_back_to_task_default():
    catalog = ModelCatalog.default()

    assert catalog.model_for_profile(AIProfile.TURBO, TaskProfile.AUDIT) == "gemini-2.0-flash-lite"
    assert catalog.model_for_profile(AIProfile.TURBO, TaskProfile.LEGAL) == "gpt-4o"


def test_catalog_yaml_override(tmp_path):
    path = tmp_path / "catalog.yaml"
    path.write_text(
        "models:\n"
        "  - id: local-llama\n"
        "    provider: meta\n"
        "    input_cost_per_million_tokens: 0.1\n"
        "    output_cost_per_million_tokens: 0.2\n"
        "    capabilities: [text]\n"
        "default_assignments:\n"
        "  WRITING: local-llama\n",
        encoding="utf-8",
    )

    catalog = load_catalog(path)

    assert catalog.get("local-llama").output_cost_per_million_tokens == 0.2
    assert catalog.default_for(TaskProfile.WRITING).id == "local-llama"
    # Built-in models survive the override
    assert catalog.get("gpt-4o") is not None


def test_load_catalog_without_file_uses_builtins(tmp_path):
    catalog = load_catalog(tmp_path / "missing.yaml")
    assert catalog.default_for(TaskProfile.OUTLINE).id == "deepseek-r1"


def test_credentials_key_file_overlay(tmp_path):
    keys_file = tmp_path / "keys.json"
    keys_file.write_text(json.dumps({"meta": "meta-key", "openai": ""}), encoding="utf-8")
    config = make_settings(tmp_path, api_keys_file=keys_file)

    store = CredentialStore(config)

    assert store.get("meta") == "meta-key"
    # Blank values remove keys from settings
    assert not store.has("openai")
    assert store.has("anthropic")


def test_credentials_set_persists_and_refreshes(tmp_path):
    keys_file = tmp_path / "keys.json"
    config = make_settings(tmp_path, api_keys_file=keys_file, **NO_KEYS)
    store = CredentialStore(config)
    assert store.providers() == []

    store.set("deepseek", "ds-key")

    assert json.loads(keys_file.read_text(encoding="utf-8")) == {"deepseek": "ds-key"}
    fresh = CredentialStore(config)
    assert fresh.providers() == ["deepseek"]


class TestModelResolver:
    """Model resolution rules."""

    def test_task_assignment(self, catalog, credentials):
        resolver = ModelResolver(catalog, credentials)

        assert resolver.resolve(TaskProfile.WRITING).id == "claude-4.5-sonnet"
        assert resolver.resolve(TaskProfile.OUTLINE).id == "deepseek-r1"
        assert resolver.resolve(TaskProfile.AUDIT).id == "deepseek-r1"

    def test_preference_overrides_assignment(self, catalog, credentials):
        resolver = ModelResolver(catalog, credentials)

        model = resolver.resolve(TaskProfile.AUDIT, preference=AIProfile.TURBO)

        assert model.id == "gemini-2.0-flash-lite"

    def test_custom_assignment(self, catalog, credentials):
        assignment = ModelAssignment(writing=AIProfile.BALANCED)
        resolver = ModelResolver(catalog, credentials, assignment)

        assert resolver.resolve(TaskProfile.WRITING).id == "gpt-4o"

    def test_explicit_model_wins(self, catalog, credentials):
        resolver = ModelResolver(catalog, credentials)

        assert resolver.resolve(TaskProfile.WRITING, "gpt-5-mini").id == "gpt-5-mini"

    def test_unknown_explicit_model_uses_task_default(self, catalog, credentials):
        resolver = ModelResolver(catalog, credentials)

        assert resolver.resolve(TaskProfile.WRITING, "gpt-99").id == "claude-4.5-sonnet"

    def test_missing_credential_falls_back_to_credentialed_provider(self, tmp_path, catalog):
        config = make_settings(tmp_path, **{**NO_KEYS, "deepseek_api_key": "ds-key"})
        resolver = ModelResolver(catalog, CredentialStore(config))

        model = resolver.resolve(TaskProfile.WRITING)

        assert model.provider == "deepseek"
        assert model.id == "deepseek-v3"

    def test_fallback_follows_provider_order(self, tmp_path, catalog):
        config = make_settings(
            tmp_path, **{**NO_KEYS, "openai_api_key": "sk", "gemini_api_key": "g"}
        )
        resolver = ModelResolver(catalog, CredentialStore(config))

        assert resolver.resolve(TaskProfile.WRITING).provider == "google"

    def test_no_credentials_keeps_original_choice(self, tmp_path, catalog):
        config = make_settings(tmp_path, **NO_KEYS)
        resolver = ModelResolver(catalog, CredentialStore(config))

        assert resolver.resolve(TaskProfile.WRITING).id == "claude-4.5-sonnet"
