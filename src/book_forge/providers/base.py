"""Provider backend interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ..catalog import ModelDescriptor


@dataclass
class RawCompletion:
    """Normalized text output of one provider call."""

    text: str
    prompt_tokens: int = 0
    completion_tokens: int = 0


class ProviderBackend(ABC):
    """One concrete provider transport.

    Backends raise whatever their client raises; the orchestrator classifies
    failures into AIError.
    """

    provider: str

    @abstractmethod
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
        """Run one completion."""


class ImageBackend(ABC):
    """Provider that turns a prompt into an image URL."""

    provider: str

    @abstractmethod
    async def generate_image(
        self,
        model: ModelDescriptor,
        prompt: str,
        *,
        api_key: str,
        image_size: str = "landscape_16_9",
    ) -> str:
        """Return the URL of the generated image."""
