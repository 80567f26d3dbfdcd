"""Form interaction layer for the lookup portal.

``LookupPage`` is the capability the workflow, the captcha resolver and
the result extractor depend on.  Accessors that read the page return
``None`` when the element is absent instead of raising, so callers handle
the "element missing" case explicitly.  ``TargetForm`` is the Playwright
implementation; element identifiers come from ``target`` settings.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from playwright.sync_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from vrlookup.browser.navigation import goto_with_fallback, reload_with_fallback
from vrlookup.exceptions import FormInteractionError

if TYPE_CHECKING:
    from playwright.sync_api import Page

    from vrlookup.settings.config import TargetSettings

logger = logging.getLogger(__name__)

_SUBMIT_FORM_JS = """(selector) => {
    const form = document.querySelector(selector);
    if (!form) return false;
    form.submit();
    return true;
}"""


class LookupPage(Protocol):
    """Operations the lookup workflow needs from the portal page."""

    def open(self) -> None:
        """Navigate to the lookup form."""

    def reload(self) -> None:
        """Reload the page to get a fresh captcha."""

    def capture_captcha(self, path: Path) -> bytes | None:
        """Save the captcha element to *path*; ``None`` if it never became visible."""

    def enter_captcha(self, text: str) -> None: ...

    def fill_plate(self, value: str) -> None: ...

    def fill_sticker(self, value: str) -> None: ...

    def submit(self) -> bool:
        """Submit the form; ``False`` when the fallback submit had to be used."""

    def error_message(self) -> str | None: ...

    def text_of(self, selector: str) -> str | None: ...

    def screenshot(self, path: Path) -> None: ...

    def clear_cookies(self) -> None: ...


class TargetForm:
    """Playwright-backed ``LookupPage``.

    Args:
        page: Playwright page of the current session.
        target: Element identifiers and URL of the portal.
        element_timeout_ms: Bound on every element wait.
        navigation_timeout_ms: Bound on the initial navigation.
        reload_timeout_ms: Bound on captcha reloads.
        submit_timeout_ms: Bound on waiting for the post-submit navigation.
    """

    def __init__(
        self,
        page: Page,
        target: TargetSettings,
        *,
        element_timeout_ms: int = 5_000,
        navigation_timeout_ms: int = 30_000,
        reload_timeout_ms: int = 15_000,
        submit_timeout_ms: int = 10_000,
    ) -> None:
        self.page = page
        self.target = target
        self.element_timeout_ms = element_timeout_ms
        self.navigation_timeout_ms = navigation_timeout_ms
        self.reload_timeout_ms = reload_timeout_ms
        self.submit_timeout_ms = submit_timeout_ms

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def open(self) -> None:
        goto_with_fallback(self.page, self.target.url, timeout_ms=self.navigation_timeout_ms)

    def reload(self) -> None:
        reload_with_fallback(self.page, timeout_ms=self.reload_timeout_ms)

    # ------------------------------------------------------------------
    # Captcha
    # ------------------------------------------------------------------

    def capture_captcha(self, path: Path) -> bytes | None:
        locator = self.page.locator(self.target.captcha_image).first
        try:
            locator.wait_for(state="visible", timeout=self.element_timeout_ms)
        except PlaywrightTimeout:
            logger.debug("Captcha image %s not visible", self.target.captcha_image)
            return None
        try:
            return locator.screenshot(path=str(path), type="png", timeout=self.element_timeout_ms)
        except PlaywrightError as e:
            raise FormInteractionError(f"Captcha capture failed: {e}") from e

    def enter_captcha(self, text: str) -> None:
        self._type_into(self.target.captcha_input, text)

    # ------------------------------------------------------------------
    # Query fields
    # ------------------------------------------------------------------

    def fill_plate(self, value: str) -> None:
        self._type_into(self.target.plate_input, value)

    def fill_sticker(self, value: str) -> None:
        self._type_into(self.target.sticker_input, value)

    def _type_into(self, selector: str, value: str) -> None:
        locator = self.page.locator(selector).first
        try:
            locator.wait_for(state="visible", timeout=self.element_timeout_ms)
            locator.click(timeout=self.element_timeout_ms)
            locator.fill(value, timeout=self.element_timeout_ms)
        except PlaywrightTimeout as e:
            raise FormInteractionError(f"Element {selector} not available within {self.element_timeout_ms}ms") from e
        except PlaywrightError as e:
            raise FormInteractionError(f"Cannot type into {selector}: {e}") from e

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self) -> bool:
        """Click the submit button; fall back to ``form.submit()`` by script."""
        try:
            with self.page.expect_navigation(timeout=self.submit_timeout_ms):
                self.page.locator(self.target.submit_button).first.click(timeout=self.element_timeout_ms)
            return True
        except PlaywrightError as e:
            logger.warning("Submit via %s failed (%s), falling back to form.submit()", self.target.submit_button, e)

        try:
            submitted = self.page.evaluate(_SUBMIT_FORM_JS, self.target.form)
        except PlaywrightError as e:
            # The fallback may itself trigger navigation and tear down the
            # execution context; the settle delay covers that case.
            logger.debug("Fallback submit raised %s", e)
            return False
        if not submitted:
            raise FormInteractionError(f"Form {self.target.form} not found")
        try:
            self.page.wait_for_load_state("load", timeout=self.submit_timeout_ms)
        except PlaywrightTimeout:
            logger.debug("No load event after fallback submit")
        return False

    # ------------------------------------------------------------------
    # Reading the result page
    # ------------------------------------------------------------------

    def error_message(self) -> str | None:
        return self.text_of(self.target.error_message)

    def text_of(self, selector: str) -> str | None:
        """Trimmed text of the first element matching *selector*, or ``None``."""
        try:
            locator = self.page.locator(selector)
            if locator.count() == 0:
                return None
            text = locator.first.inner_text(timeout=self.element_timeout_ms)
        except PlaywrightError as e:
            logger.debug("Reading %s failed: %s", selector, e)
            return None
        text = (text or "").strip()
        return text or None

    # ------------------------------------------------------------------
    # Session hygiene
    # ------------------------------------------------------------------

    def screenshot(self, path: Path) -> None:
        self.page.screenshot(path=str(path), full_page=True)

    def clear_cookies(self) -> None:
        self.page.context.clear_cookies()
