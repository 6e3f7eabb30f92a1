"""
LLM client configuration using DSPy.

Supports Gemini, OpenAI, and Anthropic through litellm model prefixes.
"""

from __future__ import annotations

from functools import lru_cache

import dspy

from canon.config import Settings


@lru_cache
def get_lm(
    provider: str,
    model: str,
    api_key: str,
    temperature: float = 0.2,
    max_tokens: int = 8000,
    num_retries: int = 3,
) -> dspy.LM:
    """
    Get configured language model.

    Args:
        provider: 'gemini', 'openai', or 'anthropic'
        model: Model name without provider prefix
        api_key: Key for that provider

    Returns:
        Configured DSPy LM instance.
    """
    if provider not in ("gemini", "openai", "anthropic"):
        raise ValueError(f"Unknown provider: {provider}")
    if not api_key:
        raise ValueError(f"No API key configured for {provider}")

    # litellm routes on the prefix
    return dspy.LM(
        model=f"{provider}/{model}",
        api_key=api_key,
        temperature=temperature,
        max_tokens=max_tokens,
        num_retries=num_retries,
        cache=False,
    )


def lm_from_settings(settings: Settings) -> dspy.LM:
    """Build the LM named by LLM_PROVIDER and its model/key settings."""
    provider = settings.llm_provider

    if provider == "gemini":
        # Accept both GOOGLE_API_KEY and GEMINI_API_KEY
        model = settings.gemini_model
        api_key = settings.google_api_key or settings.gemini_api_key
    elif provider == "openai":
        model, api_key = settings.openai_model, settings.openai_api_key
    elif provider == "anthropic":
        model, api_key = settings.anthropic_model, settings.anthropic_api_key
    else:
        raise ValueError(f"Unknown provider: {provider}")

    return get_lm(
        provider,
        model,
        api_key,
        settings.llm_temperature,
        settings.llm_max_tokens,
        settings.max_retries,
    )
