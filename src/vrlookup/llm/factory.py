"""Factory for creating recognition providers from settings."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from vrlookup.llm.base import LLMProvider

if TYPE_CHECKING:
    from vrlookup.settings.config import Settings

logger = logging.getLogger(__name__)


def create_llm_provider(provider: str | None = None, *, settings: Settings | None = None) -> LLMProvider:
    """Create a provider from settings or an explicit provider name.

    The returned provider is wrapped with ``RetryingLLMProvider`` for
    resilience against transient errors.

    Args:
        provider: Override provider name (``gemini`` or ``ollama``).
            If None, reads from ``settings.llm.provider``.
        settings: Settings to build from. Defaults to ``get_settings()``.

    Raises:
        ValueError: If the provider name is not recognized.
        RecognitionError: If the provider cannot be configured (missing key).
    """
    from vrlookup.llm.retry import RetryingLLMProvider
    from vrlookup.settings import get_settings

    settings = settings or get_settings()
    llm = settings.llm
    provider_name = (provider or llm.provider).lower().strip()

    base: LLMProvider

    if provider_name == "gemini":
        from vrlookup.llm.gemini_provider import GeminiProvider

        base = GeminiProvider(
            model=llm.model,
            backend=llm.gemini_backend,
            api_key=llm.api_key,
            project=llm.gcp_project,
            location=llm.gcp_location,
            temperature=llm.temperature,
            max_tokens=llm.max_tokens,
            timeout_sec=llm.timeout_sec,
        )

    elif provider_name == "ollama":
        from vrlookup.llm.ollama_provider import OllamaProvider

        base = OllamaProvider(
            base_url=llm.ollama_base_url,
            model=llm.model,
            temperature=llm.temperature,
            max_tokens=llm.max_tokens,
            timeout_sec=llm.timeout_sec,
        )

    else:
        raise ValueError(f"Unknown LLM provider: {provider_name!r}. Supported: gemini, ollama")

    logger.info("Created recognition provider: provider=%s model=%s", provider_name, llm.model)
    return RetryingLLMProvider(base, max_retries=llm.max_retries, base_delay=1.0)
