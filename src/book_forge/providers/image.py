"""fal.ai image generation backend."""

import logging

import httpx

from ..catalog import ModelDescriptor
from ..config import settings
from ..models import MalformedResponse
from .base import ImageBackend

logger = logging.getLogger(__name__)

FAL_BASE_URL = "https://fal.run/fal-ai"


class FalImageBackend(ImageBackend):
    """Synchronous-mode fal.ai text-to-image calls."""

    provider = "fal-ai"

    def __init__(self, base_url: str = FAL_BASE_URL, timeout: int | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.llm_timeout

    async def generate_image(
        self,
        model: ModelDescriptor,
        prompt: str,
        *,
        api_key: str,
        image_size: str = "landscape_16_9",
    ) -> str:
        payload = {
            "prompt": prompt,
            "image_size": image_size,
            "num_inference_steps": 28,
            "guidance_scale": 3.5,
            "sync_mode": True,
        }
        headers = {"Authorization": f"Key {api_key}", "Content-Type": "application/json"}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(f"{self.base_url}/{model.id}", json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()

        images = data.get("images") or []
        if not images or not images[0].get("url"):
            raise MalformedResponse(self.provider, "No image URL in fal.ai response", raw=response.text)

        logger.info(f"Generated image with {model.id}")
        return images[0]["url"]
