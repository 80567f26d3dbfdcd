"""Abstract multimodal model interface used for captcha recognition."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field


@dataclass
class LLMResult:
    """Unified result from any provider call."""

    content: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: float = 0.0
    model: str = ""
    raw_response: dict = field(default_factory=dict)


class LLMProvider(abc.ABC):
    """Abstract interface for multimodal (text + image) model calls."""

    @abc.abstractmethod
    def chat_with_images(
        self,
        messages: list[dict],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResult:
        """Send a multimodal chat request with inline images.

        Messages may contain structured content parts::

            [
                {"role": "system", "content": "..."},
                {"role": "user", "content": [
                    {"type": "text", "text": "Read this captcha"},
                    {"type": "image", "media_type": "image/png", "data": "<base64>"},
                ]},
            ]

        Returns:
            An ``LLMResult`` with the generated text and token metrics.
        """

    @abc.abstractmethod
    def check_connectivity(self) -> bool:
        """Return True if the provider is reachable and the model is available."""

    def close(self) -> None:
        """Clean up resources. Override if needed."""
