"""Bounded page navigation with automatic wait-strategy fallback.

The portal keeps long-polling requests open, so ``networkidle`` is not
always reached.  ``goto`` / ``reload`` try ``networkidle`` first and fall
back to ``load`` and ``domcontentloaded``.  Every failure is converted to
``NavigationError`` so the workflow can classify it as retryable.
"""

from __future__ import annotations

import logging
from typing import Callable, Literal

from playwright.sync_api import Error as PlaywrightError, Page, Response, TimeoutError as PlaywrightTimeout

from vrlookup.exceptions import NavigationError

logger = logging.getLogger(__name__)

# Errors where a weaker wait strategy cannot help.
_FATAL_NET_ERRORS: tuple[str, ...] = (
    "ERR_NAME_NOT_RESOLVED",
    "ERR_CONNECTION_REFUSED",
    "ERR_CONNECTION_RESET",
    "ERR_CONNECTION_CLOSED",
    "ERR_INTERNET_DISCONNECTED",
    "ERR_ADDRESS_UNREACHABLE",
)

WaitUntil = Literal["commit", "domcontentloaded", "load", "networkidle"]

_FALLBACK_STRATEGY: list[WaitUntil] = ["networkidle", "load", "domcontentloaded"]


def goto_with_fallback(
    page: Page,
    url: str,
    *,
    timeout_ms: int = 30_000,
    wait_until: WaitUntil = "networkidle",
) -> Response | None:
    """Navigate to *url*, relaxing the wait strategy on timeout.

    Raises:
        NavigationError: If every strategy fails or a fatal network error occurs.
    """
    return _run_with_fallback(
        lambda strategy: page.goto(url, wait_until=strategy, timeout=timeout_ms),
        target=url,
        wait_until=wait_until,
    )


def reload_with_fallback(
    page: Page,
    *,
    timeout_ms: int = 15_000,
    wait_until: WaitUntil = "networkidle",
) -> Response | None:
    """Reload the current page, relaxing the wait strategy on timeout.

    Raises:
        NavigationError: If every strategy fails or a fatal network error occurs.
    """
    return _run_with_fallback(
        lambda strategy: page.reload(wait_until=strategy, timeout=timeout_ms),
        target=page.url,
        wait_until=wait_until,
    )


def _run_with_fallback(
    action: Callable[[WaitUntil], Response | None],
    *,
    target: str,
    wait_until: WaitUntil,
) -> Response | None:
    last_error: Exception | None = None
    for strategy in build_fallback_chain(wait_until):
        try:
            logger.debug("navigate %s (wait_until=%s)", target, strategy)
            return action(strategy)
        except PlaywrightTimeout as exc:
            logger.warning("Navigation to %s timed out with wait_until=%s", target, strategy)
            last_error = exc
        except PlaywrightError as exc:
            message = str(exc)
            fatal = next((code for code in _FATAL_NET_ERRORS if code in message), None)
            reason = fatal.replace("ERR_", "").replace("_", " ").lower() if fatal else message.splitlines()[0]
            raise NavigationError(target, reason) from exc

    raise NavigationError(target, "timed out") from last_error


def build_fallback_chain(preferred: WaitUntil) -> list[WaitUntil]:
    """Return the fallback chain starting from *preferred*."""
    if preferred in _FALLBACK_STRATEGY:
        idx = _FALLBACK_STRATEGY.index(preferred)
        return _FALLBACK_STRATEGY[idx:]
    return [preferred, *_FALLBACK_STRATEGY]
