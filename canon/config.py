"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pipeline settings loaded from environment."""

    # ==========================================================================
    # Environment
    # ==========================================================================

    environment: str = "development"
    log_level: str = "INFO"

    # ==========================================================================
    # Content tree
    # ==========================================================================

    content_root: str = "src/content"
    content_collections: str = "books,projects,lab,life"
    content_extensions: str = ".md,.mdx"

    # Small fixed set; the first entry is the default original language
    supported_languages: str = "en,de"

    # ==========================================================================
    # Durable state (flat files, committed to git)
    # ==========================================================================

    registry_path: str = "data/content-registry.json"
    token_ledger_path: str = "data/token-usage.json"
    conflicts_path: str = "data/conflicts.json"
    progress_path: str = ".translation-progress.jsonl"
    cache_dir: str = ".translation-cache"
    override_path: str = "translation.override.yml"
    pause_file: str = "TRANSLATION_PAUSE"

    lock_registry: bool = True
    git_commit: bool = True

    # ==========================================================================
    # AI / LLM
    # ==========================================================================

    # "openai" talks to the OpenAI SDK directly, anything else goes through DSPy
    llm_provider: str = "openai"

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    google_api_key: str = ""
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"

    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-haiku-20241022"

    llm_temperature: float = 0.2
    llm_max_tokens: int = 8000
    request_timeout: float = 120.0
    request_delay: float = 1.0
    max_retries: int = 3

    # ==========================================================================
    # Quality gates
    # ==========================================================================

    hallucination_min_score: int = 60
    hallucination_max_issues: int = 2
    quality_threshold: int = 70
    daily_token_cap: int = 2_000_000

    # ==========================================================================
    # Conflict reporting
    # ==========================================================================

    # "local" keeps reports in conflicts_path, "github" opens issues
    conflict_sink: str = "local"
    github_token: str = ""
    github_repository: str = ""
    github_api_url: str = "https://api.github.com"

    # ==========================================================================
    # Optional Services
    # ==========================================================================

    sentry_dsn: str = ""

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def collections_list(self) -> list[str]:
        return [c.strip() for c in self.content_collections.split(",") if c.strip()]

    @property
    def extensions_list(self) -> list[str]:
        return [e.strip() for e in self.content_extensions.split(",") if e.strip()]

    @property
    def languages_list(self) -> list[str]:
        return [lang.strip().lower() for lang in self.supported_languages.split(",") if lang.strip()]

    @property
    def default_language(self) -> str:
        languages = self.languages_list
        return languages[0] if languages else "en"

    @property
    def content_root_path(self) -> Path:
        return Path(self.content_root)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
