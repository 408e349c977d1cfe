"""Configuration management using Pydantic settings."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Production loop philosophy:
    - max_chapter_attempts bounds the write -> audit -> repair loop per chapter
    - llm_max_retries bounds transport retries inside a single provider call
    - attempt_delay_seconds gates the next attempt after a transport failure

    Provider keys are optional. A missing key does not fail at startup; the
    resolver falls back to a credentialed provider instead.
    """

    model_config = {
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    # Provider API keys
    gemini_api_key: str | None = None
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    deepseek_api_key: str | None = None
    meta_api_key: str | None = None
    fal_ai_key: str | None = None
    replicate_api_token: str | None = None
    google_books_api_key: str | None = None

    # Optional JSON file overlaying the keys above ({"openai": "sk-..."})
    api_keys_file: Path | None = None

    # Storage
    data_dir: Path = Path("data")
    catalog_path: Path | None = None  # YAML override for the model catalog

    # Development settings
    debug: bool = False
    log_level: str = "INFO"

    # Orchestrator retry settings
    llm_max_retries: int = 3  # total attempts per call
    llm_retry_base_delay: float = 1.0  # seconds, doubled per attempt
    llm_timeout: int = 60
    default_temperature: float = 0.7

    # Model assignment profiles: Reasoning, Creative, Balanced, Turbo
    outline_profile: str = "Reasoning"
    writing_profile: str = "Creative"
    auditing_profile: str = "Reasoning"

    # Production loop
    max_chapter_attempts: int = 5
    attempt_delay_seconds: float = 2.0
    agent_log_capacity: int = 100
    audit_excerpt_chars: int = 10000

    # Originality scanner defaults
    scan_internal: bool = True
    scan_external: bool = True
    scan_ai_detection: bool = False
    external_phrases_per_chapter: int = 3

    # Langfuse observability settings
    langfuse_enabled: bool = True
    langfuse_public_key: str | None = None
    langfuse_secret_key: str | None = None
    langfuse_host: str = "https://cloud.langfuse.com"


def get_project_paths(data_dir: Path | None = None) -> dict[str, Path]:
    """Get standardized storage paths."""
    base_dir = Path(data_dir) if data_dir is not None else settings.data_dir

    return {
        "base": base_dir,
        "books": base_dir / "books",
        "traces": base_dir / "traces",
        "usage": base_dir / "usage.json",
        "active": base_dir / "active_book.json",
    }


def ensure_directories(data_dir: Path | None = None) -> None:
    """Create all necessary storage directories."""
    paths = get_project_paths(data_dir)
    for key in ("base", "books", "traces"):
        paths[key].mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()


def get_config() -> Settings:
    """Get the global configuration instance."""
    return settings
