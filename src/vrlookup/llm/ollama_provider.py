"""Ollama provider for captcha recognition with a local vision model.

Images are sent base64-encoded via Ollama's native ``images`` message
field.  Only vision-capable models (``gemma3``, ``llava``, ``qwen2-vl`` ...)
can read a captcha, so a text-only model is rejected up front.
"""

from __future__ import annotations

import logging
import time

import httpx

from vrlookup.exceptions import RecognitionError
from vrlookup.llm.base import LLMProvider, LLMResult

logger = logging.getLogger(__name__)

# Models known to support vision (prefix match).
_VISION_MODEL_PREFIXES: tuple[str, ...] = (
    "gemma3",
    "llava",
    "llava-llama3",
    "llava-phi3",
    "bakllava",
    "qwen2-vl",
    "qwen2.5vl",
    "qwen3-vl",
    "moondream",
    "minicpm-v",
)


class OllamaProvider(LLMProvider):
    """Provider backed by a local Ollama server.

    Args:
        base_url: Ollama server URL (e.g. ``http://localhost:11434``).
        model: Vision model name (e.g. ``gemma3``).
        temperature: Default sampling temperature.
        max_tokens: Default max generation tokens.
        timeout_sec: Upper bound on a single HTTP request.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "gemma3",
        temperature: float = 0.0,
        max_tokens: int = 64,
        timeout_sec: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = httpx.Client(timeout=timeout_sec)

    @property
    def supports_vision(self) -> bool:
        """Return ``True`` if the configured model is known to support images."""
        model_lower = self.model.lower()
        return any(model_lower.startswith(prefix) for prefix in _VISION_MODEL_PREFIXES)

    def chat_with_images(
        self,
        messages: list[dict],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResult:
        """Send a multimodal chat request to the local Ollama server.

        Raises:
            RecognitionError: If the configured model cannot read images.
        """
        if not self.supports_vision:
            raise RecognitionError(f"Ollama model {self.model!r} is not vision-capable")

        temp = temperature if temperature is not None else self.temperature
        tokens = max_tokens if max_tokens is not None else self.max_tokens

        payload: dict = {
            "model": self.model,
            "messages": self._convert_messages_for_ollama(messages),
            "stream": False,
            "options": {
                "temperature": temp,
                "num_predict": tokens,
            },
        }

        start = time.monotonic()
        try:
            resp = self._client.post(f"{self.base_url}/api/chat", json=payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("Ollama HTTP error: %s %s", e.response.status_code, e.response.text[:500])
            raise
        except httpx.ConnectError:
            logger.error("Cannot connect to Ollama at %s, is it running?", self.base_url)
            raise

        latency_ms = (time.monotonic() - start) * 1000

        return LLMResult(
            content=body.get("message", {}).get("content", ""),
            input_tokens=body.get("prompt_eval_count", 0),
            output_tokens=body.get("eval_count", 0),
            latency_ms=latency_ms,
            model=self.model,
            raw_response=body,
        )

    def check_connectivity(self) -> bool:
        """Return ``True`` if Ollama is reachable and the configured model is pulled."""
        try:
            resp = self._client.get(f"{self.base_url}/api/tags")
            if resp.status_code != 200:
                return False
            models = [m.get("name", "") for m in resp.json().get("models", [])]
            return any(m.startswith(self.model.split(":")[0]) for m in models)
        except httpx.HTTPError:
            return False

    @staticmethod
    def _convert_messages_for_ollama(messages: list[dict]) -> list[dict]:
        """Convert structured content parts to Ollama's ``images`` format."""
        result: list[dict] = []
        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content")

            if isinstance(content, str):
                result.append({"role": role, "content": content})
                continue

            text_parts: list[str] = []
            images: list[str] = []
            for part in content:
                if part.get("type") == "text":
                    text_parts.append(part["text"])
                elif part.get("type") == "image":
                    images.append(part["data"])

            entry: dict = {"role": role, "content": "\n".join(text_parts)}
            if images:
                entry["images"] = images
            result.append(entry)

        return result

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()
