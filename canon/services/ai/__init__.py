"""
AI services.

The OpenAI SDK is used directly for OpenAI models; Gemini and Anthropic go
through DSPy's litellm-backed LM. Both sit behind AIProvider.
"""

from canon.services.ai.client import get_lm, lm_from_settings
from canon.services.ai.provider import (
    AIProvider,
    ProviderResult,
    OpenAIProvider,
    DSPyProvider,
    create_provider,
)

__all__ = [
    "get_lm",
    "lm_from_settings",
    "AIProvider",
    "ProviderResult",
    "OpenAIProvider",
    "DSPyProvider",
    "create_provider",
]
