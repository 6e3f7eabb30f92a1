"""
AI provider boundary.

The generator only knows `complete(system_prompt, user_content)`, which
returns the raw model text and token usage. Parsing the JSON happens on
the result, after the usage has been recorded, so a malformed answer is
still paid for in the ledger.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import cached_property
from typing import Any

import dspy
import openai
from openai import OpenAI
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from canon.config import Settings
from canon.core.errors import MalformedAIResponse, ProviderError
from canon.services.ai.client import lm_from_settings

logger = logging.getLogger(__name__)


_FENCE = re.compile(r"\A\s*```(?:json)?\s*\n(.*?)\n\s*```\s*\Z", re.DOTALL)


def parse_json_object(raw: str) -> dict[str, Any]:
    """
    Parse model output as a single JSON object.

    A surrounding ```json fence is tolerated.

    Raises:
        MalformedAIResponse: empty, not JSON, or not an object
    """
    if not raw or not raw.strip():
        raise MalformedAIResponse("Empty AI response", raw=raw)

    fenced = _FENCE.match(raw)
    text = fenced.group(1) if fenced else raw

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedAIResponse(f"AI response is not valid JSON: {e}", raw=raw) from e

    if not isinstance(data, dict):
        raise MalformedAIResponse("AI response is not a JSON object", raw=raw)
    return data


@dataclass
class ProviderResult:
    """Raw model answer plus usage for one call."""

    raw: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @cached_property
    def data(self) -> dict[str, Any]:
        """The answer as a JSON object. Raises MalformedAIResponse."""
        return parse_json_object(self.raw)


class AIProvider(ABC):
    """One synchronous chat completion per call."""

    model: str

    @abstractmethod
    def complete(self, system_prompt: str, user_content: str) -> ProviderResult:
        """
        Run one completion.

        Raises:
            ProviderError: network, timeout, quota, or exhausted retries
        """
        pass


# =============================================================================
# OpenAI
# =============================================================================


# Worth another attempt; anything else fails the call immediately
TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIProvider(AIProvider):
    """Chat completions through the OpenAI SDK in JSON object mode."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        max_tokens: int = 8000,
        timeout: float = 120.0,
        max_retries: int = 3,
        client: OpenAI | None = None,
        wait=None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.max_retries = max_retries
        self.wait = wait or wait_exponential(multiplier=1, min=4, max=10)
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> OpenAI:
        """Lazy-load OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise ProviderError("OPENAI_API_KEY not set")
            # Retries are ours, not the SDK's
            self._client = OpenAI(api_key=self._api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def complete(self, system_prompt: str, user_content: str) -> ProviderResult:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=self.wait,
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    response = self.client.chat.completions.create(
                        model=self.model,
                        temperature=self.temperature,
                        max_tokens=self.max_tokens,
                        response_format={"type": "json_object"},
                        messages=[
                            {"role": "system", "content": system_prompt},
                            {"role": "user", "content": user_content},
                        ],
                    )
        except openai.OpenAIError as e:
            raise ProviderError(f"OpenAI request failed: {e}", context={"model": self.model}) from e

        content = response.choices[0].message.content if response.choices else ""
        usage = response.usage
        logger.debug(f"OpenAI response: {len(content or '')} characters")

        return ProviderResult(
            raw=content or "",
            model=response.model or self.model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )


# =============================================================================
# DSPy (Gemini, OpenAI, Anthropic via litellm)
# =============================================================================


class DSPyProvider(AIProvider):
    """Raw chat calls on a dspy.LM; retries are left to litellm."""

    def __init__(self, lm: dspy.LM):
        self.lm = lm
        self.model = lm.model

    def complete(self, system_prompt: str, user_content: str) -> ProviderResult:
        try:
            outputs = self.lm(
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ]
            )
        except Exception as e:
            raise ProviderError(f"{self.model} request failed: {e}", context={"model": self.model}) from e

        output = outputs[0] if outputs else ""
        if isinstance(output, dict):
            output = output.get("text") or ""

        usage = (self.lm.history[-1].get("usage") if self.lm.history else None) or {}
        return ProviderResult(
            raw=output,
            model=self.model,
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
        )


def create_provider(settings: Settings) -> AIProvider:
    """Provider named by LLM_PROVIDER."""
    if settings.llm_provider == "openai":
        return OpenAIProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
        )
    try:
        return DSPyProvider(lm_from_settings(settings))
    except ValueError as e:
        raise ProviderError(str(e)) from e
