from __future__ import annotations

import logging
from typing import Optional, Protocol

from src.radorder.config import settings
from src.radorder.errors import ValidationServiceUnavailable

logger = logging.getLogger("validation")


class ValidationLLMBackend(Protocol):
    """Protocol for LLM providers used by the dictation validator."""

    name: str

    def complete(self, system_prompt: str, user_message: str) -> str:  # pragma: no cover - interface
        """Return the raw response text for one system prompt and user message."""
        raise NotImplementedError


class OpenAIValidationBackend:
    """Validation backend using the OpenAI Responses API.

    Provider and network errors surface as ``ValidationServiceUnavailable``.
    """

    name = "openai"
    DEFAULT_MODEL = "gpt-4o"

    def __init__(self, api_key: str, model: Optional[str] = None) -> None:  # pragma: no cover - external service
        self._api_key = api_key
        self._model = model or settings.llm_model or self.DEFAULT_MODEL

    def complete(self, system_prompt: str, user_message: str) -> str:  # pragma: no cover - external service
        try:
            import openai
        except ImportError as exc:
            raise RuntimeError(
                "OpenAIValidationBackend requires the 'openai' package. Install it with 'pip install openai'"
            ) from exc

        client = openai.OpenAI(api_key=self._api_key, timeout=settings.llm_timeout_seconds)
        try:
            response = client.responses.create(
                model=self._model,
                instructions=system_prompt,
                input=[{"role": "user", "content": user_message}],
                max_output_tokens=settings.llm_max_tokens,
                temperature=settings.llm_temperature,
            )
        except openai.OpenAIError as exc:
            logger.warning("OpenAI request failed: %s", type(exc).__name__)
            raise ValidationServiceUnavailable("Failed to process dictation with AI service") from exc

        parts = []
        for output in response.output:
            for item in getattr(output, "content", None) or []:
                if getattr(item, "type", "") == "output_text" and getattr(item, "text", None):
                    parts.append(item.text)
        return "".join(parts)


class AnthropicValidationBackend:
    """Validation backend using the Anthropic Messages API."""

    name = "anthropic"
    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(self, api_key: str, model: Optional[str] = None) -> None:  # pragma: no cover - external service
        self._api_key = api_key
        self._model = model or settings.llm_model or self.DEFAULT_MODEL

    def complete(self, system_prompt: str, user_message: str) -> str:  # pragma: no cover - external service
        try:
            import anthropic
        except ImportError as exc:
            raise RuntimeError(
                "AnthropicValidationBackend requires the 'anthropic' package. Install it with 'pip install anthropic'"
            ) from exc

        client = anthropic.Anthropic(api_key=self._api_key, timeout=settings.llm_timeout_seconds)
        try:
            response = client.messages.create(
                model=self._model,
                max_tokens=settings.llm_max_tokens,
                temperature=settings.llm_temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_message}],
            )
        except anthropic.AnthropicError as exc:
            logger.warning("Anthropic request failed: %s", type(exc).__name__)
            raise ValidationServiceUnavailable("Failed to process dictation with AI service") from exc

        # Only text blocks carry the answer.
        return "".join(block.text for block in response.content if getattr(block, "type", "") == "text")


def get_validation_backend_from_env() -> Optional[ValidationLLMBackend]:
    """Select a validation backend based on LLM_PROVIDER.

    Supports:
    - "openai" (default) – OpenAIValidationBackend
    - "anthropic" – AnthropicValidationBackend

    Returns None when the selected provider has no API key configured; the
    caller then uses the rule-based fallback result.
    """

    api_key = settings.llm_api_key
    if not api_key:
        return None

    provider = settings.llm_provider.lower()
    if provider == "anthropic":
        return AnthropicValidationBackend(api_key)
    return OpenAIValidationBackend(api_key)
