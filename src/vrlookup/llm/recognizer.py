"""Image-to-text recognition on top of a multimodal ``LLMProvider``."""

from __future__ import annotations

import base64
import logging
import threading
from typing import Callable, Protocol

from vrlookup.exceptions import RecognitionError
from vrlookup.llm.base import LLMProvider

logger = logging.getLogger(__name__)


class TextRecognizer(Protocol):
    """Anything that can turn an image into text."""

    def recognize(self, image_bytes: bytes, mime_type: str, prompt: str) -> str: ...


class LLMRecognizer:
    """``TextRecognizer`` backed by an ``LLMProvider``.

    The provider is built on first use so that a missing credential
    surfaces as a ``RecognitionError`` during a captcha try instead of
    failing process startup.

    Args:
        provider_factory: Zero-argument callable returning a provider.
    """

    def __init__(self, provider_factory: Callable[[], LLMProvider]) -> None:
        self._provider_factory = provider_factory
        self._provider: LLMProvider | None = None
        self._lock = threading.Lock()

    def _get_provider(self) -> LLMProvider:
        with self._lock:
            if self._provider is None:
                self._provider = self._provider_factory()
            return self._provider

    def recognize(self, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        """Send *image_bytes* with *prompt* and return the raw model text.

        Raises:
            RecognitionError: On any provider failure or an empty answer.
        """
        if not image_bytes:
            raise RecognitionError("Empty captcha image")

        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {
                        "type": "image",
                        "media_type": mime_type,
                        "data": base64.b64encode(image_bytes).decode("ascii"),
                    },
                ],
            }
        ]

        try:
            result = self._get_provider().chat_with_images(messages)
        except RecognitionError:
            raise
        except Exception as exc:
            raise RecognitionError(f"Recognition request failed: {type(exc).__name__}: {exc}") from exc

        text = (result.content or "").strip()
        if not text:
            raise RecognitionError("Recognition returned an empty response")
        logger.debug("Recognized %r in %.0fms (model=%s)", text, result.latency_ms, result.model)
        return text

    def close(self) -> None:
        with self._lock:
            if self._provider is not None:
                self._provider.close()
                self._provider = None
