"""Retrying provider wrapper.

Wraps any ``LLMProvider`` with exponential-backoff retry so that a
rate-limit or a dropped connection does not cost a whole captcha try.
Non-transient errors (bad credentials, blocked prompt) pass straight
through.
"""

from __future__ import annotations

import logging
import time

from vrlookup.llm.base import LLMProvider, LLMResult

logger = logging.getLogger(__name__)

# Exceptions that are safe to retry: transient network / rate-limit issues.
_RETRYABLE_EXCEPTION_NAMES = frozenset({
    "ConnectionError",
    "TimeoutError",
    "ReadTimeout",
    "ConnectTimeout",
    "RemoteProtocolError",
    "ServerError",
    "ServiceUnavailable",
    "TooManyRequests",
    "InternalServerError",
})


def _is_retryable(exc: Exception) -> bool:
    """Return True if *exc* looks like a transient error worth retrying."""
    if type(exc).__name__ in _RETRYABLE_EXCEPTION_NAMES:
        return True
    # google-genai APIError exposes ``code``; httpx exposes ``response.status_code``
    status_code = (
        getattr(exc, "status_code", None)
        or getattr(exc, "code", None)
        or getattr(getattr(exc, "response", None), "status_code", None)
    )
    return status_code in (429, 500, 502, 503, 504)


class RetryingLLMProvider(LLMProvider):
    """Transparent retry wrapper around any ``LLMProvider``.

    Args:
        delegate: The actual provider to delegate calls to.
        max_retries: Number of retry attempts (0 = pass through).
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Cap on the backoff delay.
    """

    def __init__(
        self,
        delegate: LLMProvider,
        *,
        max_retries: int = 2,
        base_delay: float = 1.0,
        max_delay: float = 8.0,
    ) -> None:
        self._delegate = delegate
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay

    @property
    def delegate(self) -> LLMProvider:
        return self._delegate

    def _call_with_retry(self, func, *args, **kwargs) -> LLMResult:  # type: ignore[no-untyped-def]
        """Invoke *func* with exponential-backoff retry on transient errors."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                if attempt > self._max_retries or not _is_retryable(exc):
                    raise
                delay = min(self._base_delay * (2 ** (attempt - 1)), self._max_delay)
                logger.warning(
                    "Model call failed (attempt %d/%d): %s, retrying in %.1fs",
                    attempt,
                    self._max_retries + 1,
                    type(exc).__name__,
                    delay,
                )
                time.sleep(delay)

    def chat_with_images(
        self,
        messages: list[dict],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResult:
        """Send a multimodal chat request with retry on transient errors."""
        return self._call_with_retry(
            self._delegate.chat_with_images,
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    def check_connectivity(self) -> bool:
        """Delegate connectivity check (no retry)."""
        return self._delegate.check_connectivity()

    def close(self) -> None:
        """Delegate cleanup."""
        self._delegate.close()
