"""Static model catalog with cost and capability metadata."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Literal, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field

from .models import Provider

logger = logging.getLogger(__name__)

Capability = Literal["text", "json", "image", "audio", "reasoning"]
Tier = Literal["economy", "standard", "premium"]


class TaskProfile(str, Enum):
    """Purpose of an orchestrated call."""

    OUTLINE = "OUTLINE"
    WRITING = "WRITING"
    AUDIT = "AUDIT"
    IMAGE = "IMAGE"
    LEGAL = "LEGAL"


class AIProfile(str, Enum):
    """Named quality/speed tradeoff used to pick a default model per task."""

    REASONING = "Reasoning"
    CREATIVE = "Creative"
    BALANCED = "Balanced"
    TURBO = "Turbo"


class ModelAssignment(BaseModel):
    """Profile selected for each task family."""

    outline: AIProfile = AIProfile.REASONING
    writing: AIProfile = AIProfile.CREATIVE
    auditing: AIProfile = AIProfile.REASONING

    def profile_for(self, task: TaskProfile) -> AIProfile:
        if task == TaskProfile.OUTLINE:
            return self.outline
        if task == TaskProfile.WRITING:
            return self.writing
        return self.auditing


class ModelDescriptor(BaseModel):
    """Immutable catalog entry."""

    model_config = ConfigDict(frozen=True)

    id: str
    provider: Provider
    tier: Tier = "standard"
    input_cost_per_million_tokens: float = 0.0
    output_cost_per_million_tokens: float = 0.0
    context_window: int = 0
    max_output_tokens: int = 0
    capabilities: frozenset[Capability] = Field(default_factory=frozenset)

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities


BUILTIN_MODELS = [
    # OpenAI
    ModelDescriptor(id="gpt-5.2", provider="openai", tier="standard",
                    input_cost_per_million_tokens=1.75, output_cost_per_million_tokens=14.00,
                    context_window=128000, max_output_tokens=16384,
                    capabilities=frozenset({"text", "json"})),
    ModelDescriptor(id="gpt-5-mini", provider="openai", tier="economy",
                    input_cost_per_million_tokens=0.25, output_cost_per_million_tokens=2.00,
                    context_window=128000, max_output_tokens=16384,
                    capabilities=frozenset({"text", "json"})),
    ModelDescriptor(id="gpt-4o", provider="openai", tier="standard",
                    input_cost_per_million_tokens=2.50, output_cost_per_million_tokens=10.00,
                    context_window=128000, max_output_tokens=4096,
                    capabilities=frozenset({"text", "json"})),
    # Anthropic
    ModelDescriptor(id="claude-4.5-sonnet", provider="anthropic", tier="premium",
                    input_cost_per_million_tokens=3.00, output_cost_per_million_tokens=15.00,
                    context_window=200000, max_output_tokens=8192,
                    capabilities=frozenset({"text", "json"})),
    ModelDescriptor(id="claude-4.5-haiku", provider="anthropic", tier="economy",
                    input_cost_per_million_tokens=1.00, output_cost_per_million_tokens=5.00,
                    context_window=200000, max_output_tokens=4096,
                    capabilities=frozenset({"text", "json"})),
    # Google
    ModelDescriptor(id="gemini-2.5-flash", provider="google", tier="economy",
                    input_cost_per_million_tokens=0.15, output_cost_per_million_tokens=0.60,
                    context_window=1000000, max_output_tokens=8192,
                    capabilities=frozenset({"text", "json", "image", "audio"})),
    ModelDescriptor(id="gemini-2.0-flash-lite", provider="google", tier="economy",
                    input_cost_per_million_tokens=0.075, output_cost_per_million_tokens=0.30,
                    context_window=1000000, max_output_tokens=8192,
                    capabilities=frozenset({"text", "json"})),
    # DeepSeek
    ModelDescriptor(id="deepseek-v3", provider="deepseek", tier="economy",
                    input_cost_per_million_tokens=0.27, output_cost_per_million_tokens=1.10,
                    context_window=64000, max_output_tokens=8192,
                    capabilities=frozenset({"text", "json"})),
    ModelDescriptor(id="deepseek-r1", provider="deepseek", tier="standard",
                    input_cost_per_million_tokens=0.55, output_cost_per_million_tokens=2.19,
                    context_window=128000, max_output_tokens=16384,
                    capabilities=frozenset({"text", "reasoning"})),
    # Meta
    ModelDescriptor(id="llama-4-scout", provider="meta", tier="standard",
                    input_cost_per_million_tokens=0.20, output_cost_per_million_tokens=0.40,
                    context_window=10000000, max_output_tokens=16384,
                    capabilities=frozenset({"text"})),
    # Image models are priced per image, not per token
    ModelDescriptor(id="flux-1.1-pro", provider="fal-ai", tier="premium",
                    capabilities=frozenset({"image"})),
]

IMAGE_MODEL_PRICING = {
    "flux-1.1-pro": 0.04,
    "dalle-3": 0.04,
    "flux-schnell": 0.003,
}

DEFAULT_ASSIGNMENTS = {
    TaskProfile.OUTLINE: "deepseek-r1",
    TaskProfile.WRITING: "claude-4.5-sonnet",
    TaskProfile.AUDIT: "gemini-2.5-flash",
    TaskProfile.IMAGE: "flux-1.1-pro",
    TaskProfile.LEGAL: "gpt-4o",
}

PROFILE_MAP = {
    AIProfile.REASONING: {
        TaskProfile.OUTLINE: "deepseek-r1",
        TaskProfile.WRITING: "claude-4.5-sonnet",
        TaskProfile.AUDIT: "deepseek-r1",
    },
    AIProfile.CREATIVE: {
        TaskProfile.OUTLINE: "gpt-5.2",
        TaskProfile.WRITING: "claude-4.5-sonnet",
        TaskProfile.AUDIT: "gpt-5.2",
    },
    AIProfile.BALANCED: {
        TaskProfile.OUTLINE: "gpt-4o",
        TaskProfile.WRITING: "gpt-4o",
        TaskProfile.AUDIT: "gpt-4o",
    },
    AIProfile.TURBO: {
        TaskProfile.OUTLINE: "gemini-2.5-flash",
        TaskProfile.WRITING: "gemini-2.5-flash",
        TaskProfile.AUDIT: "gemini-2.0-flash-lite",
    },
}

# Providers scanned, in order, when the resolved provider has no credential
PROVIDER_FALLBACK_ORDER = ("google", "deepseek", "openai", "anthropic")


@dataclass(frozen=True)
class ModelCatalog:
    """Immutable registry of models, default assignments and profile mappings.

    Instances are built once and injected into the resolver and orchestrator.
    """

    models: Mapping[str, ModelDescriptor]
    default_assignments: Mapping[TaskProfile, str] = field(
        default_factory=lambda: dict(DEFAULT_ASSIGNMENTS)
    )
    profile_map: Mapping[AIProfile, Mapping[TaskProfile, str]] = field(
        default_factory=lambda: {k: dict(v) for k, v in PROFILE_MAP.items()}
    )
    image_pricing: Mapping[str, float] = field(
        default_factory=lambda: dict(IMAGE_MODEL_PRICING)
    )
    fallback_order: tuple[str, ...] = PROVIDER_FALLBACK_ORDER

    def __post_init__(self):
        object.__setattr__(self, "models", MappingProxyType(dict(self.models)))
        object.__setattr__(
            self, "default_assignments", MappingProxyType(dict(self.default_assignments))
        )
        object.__setattr__(
            self,
            "profile_map",
            MappingProxyType(
                {k: MappingProxyType(dict(v)) for k, v in self.profile_map.items()}
            ),
        )
        object.__setattr__(self, "image_pricing", MappingProxyType(dict(self.image_pricing)))
        object.__setattr__(self, "fallback_order", tuple(self.fallback_order))

    @classmethod
    def default(cls) -> "ModelCatalog":
        """Catalog with the built-in models."""
        return cls(models={m.id: m for m in BUILTIN_MODELS})

    @classmethod
    def from_yaml(cls, path: Path) -> "ModelCatalog":
        """Load a catalog override from YAML.

        The file holds a ``models`` list and optional ``default_assignments``,
        ``profiles``, ``image_pricing`` and ``fallback_order`` sections. Missing
        sections keep the built-in values.
        """
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        base = cls.default()
        models = dict(base.models)
        for raw in data.get("models", []):
            descriptor = ModelDescriptor(**raw)
            models[descriptor.id] = descriptor

        assignments = dict(base.default_assignments)
        for task, model_id in (data.get("default_assignments") or {}).items():
            assignments[TaskProfile(task)] = model_id

        profiles = {k: dict(v) for k, v in base.profile_map.items()}
        for profile, mapping in (data.get("profiles") or {}).items():
            profiles[AIProfile(profile)] = {
                TaskProfile(task): model_id for task, model_id in mapping.items()
            }

        image_pricing = dict(base.image_pricing)
        image_pricing.update(data.get("image_pricing") or {})

        fallback_order = tuple(data.get("fallback_order") or base.fallback_order)

        logger.info(f"Loaded model catalog from {path}: {len(models)} models")
        return cls(
            models=models,
            default_assignments=assignments,
            profile_map=profiles,
            image_pricing=image_pricing,
            fallback_order=fallback_order,
        )

    def get(self, model_id: str) -> ModelDescriptor | None:
        return self.models.get(model_id)

    def default_for(self, task: TaskProfile) -> ModelDescriptor:
        return self.models[self.default_assignments[task]]

    def model_for_profile(self, profile: AIProfile, task: TaskProfile) -> str:
        """Model id for a profile and task, or the task default."""
        mapping = self.profile_map.get(profile, {})
        return mapping.get(task) or self.default_assignments[task]

    def models_for_provider(self, provider: str) -> list[ModelDescriptor]:
        return [m for m in self.models.values() if m.provider == provider]

    def image_price(self, model_id: str) -> float:
        return self.image_pricing.get(model_id, 0.0)


def load_catalog(path: Path | None = None) -> ModelCatalog:
    """Build the catalog from an optional YAML override."""
    if path is not None and Path(path).exists():
        return ModelCatalog.from_yaml(path)
    return ModelCatalog.default()
