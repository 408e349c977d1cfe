"""Per-provider API key lookup."""

import json
import logging
from pathlib import Path

from .config import Settings, get_config

logger = logging.getLogger(__name__)

# Settings field holding the key of each provider
PROVIDER_KEY_FIELDS = {
    "google": "gemini_api_key",
    "openai": "openai_api_key",
    "anthropic": "anthropic_api_key",
    "deepseek": "deepseek_api_key",
    "meta": "meta_api_key",
    "fal-ai": "fal_ai_key",
    "replicate": "replicate_api_token",
}


class CredentialStore:
    """Provider keys read from settings and overlaid with an optional JSON key file.

    The key file maps provider ids to keys, e.g. ``{"openai": "sk-..."}``.
    Blank values count as missing.
    """

    def __init__(self, config: Settings | None = None, keys_file: Path | None = None):
        self.config = config or get_config()
        self.keys_file = keys_file if keys_file is not None else self.config.api_keys_file
        self._keys: dict[str, str] = {}
        self.refresh()

    def refresh(self) -> None:
        """Re-read keys from settings and the key file."""
        keys = {}
        for provider, field_name in PROVIDER_KEY_FIELDS.items():
            value = getattr(self.config, field_name, None)
            if value:
                keys[provider] = value

        if self.keys_file and Path(self.keys_file).exists():
            try:
                with open(self.keys_file, "r", encoding="utf-8") as f:
                    overlay = json.load(f)
            except json.JSONDecodeError as e:
                logger.error(f"Ignoring unreadable key file {self.keys_file}: {e}")
                overlay = {}
            for provider, value in overlay.items():
                if value:
                    keys[provider] = value
                else:
                    keys.pop(provider, None)

        self._keys = keys
        logger.debug(f"Credentials loaded for providers: {sorted(keys)}")

    def get(self, provider: str) -> str | None:
        return self._keys.get(provider)

    def has(self, provider: str) -> bool:
        return bool(self._keys.get(provider))

    def set(self, provider: str, key: str | None) -> None:
        """Set or clear a key for this process and the key file, if configured."""
        if key:
            self._keys[provider] = key
        else:
            self._keys.pop(provider, None)

        if self.keys_file:
            path = Path(self.keys_file)
            stored = {}
            if path.exists():
                with open(path, "r", encoding="utf-8") as f:
                    stored = json.load(f)
            stored[provider] = key or ""
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(stored, f, indent=2)

    def providers(self) -> list[str]:
        """Providers with a usable key."""
        return sorted(self._keys)
