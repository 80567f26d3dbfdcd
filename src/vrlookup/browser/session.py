"""One isolated Playwright browser per lookup attempt.

A ``BrowserSession`` owns a Playwright driver, a Chromium process, a fresh
context and one page.  Sessions are never reused: the workflow opens one
per attempt and closes it in a ``finally`` block, so cookies and captcha
state cannot leak into a retry.

Usage::

    session = open_browser_session(settings)
    try:
        session.form.open()
        ...
    finally:
        session.close()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from vrlookup.browser.form import TargetForm
from vrlookup.exceptions import ResourceError

if TYPE_CHECKING:
    from playwright.sync_api import Browser, BrowserContext, Page, Playwright

    from vrlookup.settings.config import Settings

logger = logging.getLogger(__name__)

# Chromium flags for container deployments (no /dev/shm, no GPU).
_CONTAINER_ARGS: list[str] = [
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-zygote",
]


@dataclass
class BrowserProfile:
    """Playwright launch + context arguments for a single session."""

    launch_args: dict[str, Any] = field(default_factory=dict)
    context_args: dict[str, Any] = field(default_factory=dict)


def build_browser_profile(settings: Settings) -> BrowserProfile:
    """Translate ``browser`` settings into Playwright keyword arguments."""
    browser = settings.browser
    profile = BrowserProfile()

    args = list(_CONTAINER_ARGS)
    if not browser.sandbox:
        args += ["--no-sandbox", "--disable-setuid-sandbox"]
    profile.launch_args = {
        "headless": browser.headless,
        "chromium_sandbox": browser.sandbox,
        "args": args,
    }
    if browser.proxy:
        profile.launch_args["proxy"] = {"server": browser.proxy.strip()}

    ctx = profile.context_args
    ctx["viewport"] = {"width": browser.viewport_width, "height": browser.viewport_height}
    ctx["locale"] = browser.locale
    if browser.user_agent:
        ctx["user_agent"] = browser.user_agent
    # The portal is served over plain http and its certificates are unreliable.
    ctx["ignore_https_errors"] = True
    return profile


class BrowserSession:
    """A live Playwright page plus everything needed to tear it down."""

    def __init__(
        self,
        playwright: Playwright,
        browser: Browser,
        context: BrowserContext,
        page: Page,
        form: TargetForm,
    ) -> None:
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self.page = page
        self.form = form
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close context, browser and driver.  Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for name, closer in (
            ("context", self._context.close),
            ("browser", self._browser.close),
            ("playwright", self._playwright.stop),
        ):
            try:
                closer()
            except Exception as e:
                logger.warning("Failed to close %s: %s", name, e)
        logger.debug("Browser session closed")


def open_browser_session(settings: Settings) -> BrowserSession:
    """Launch Chromium with a fresh context and return a ready session.

    Raises:
        ResourceError: If the browser cannot be started.
    """
    from playwright.sync_api import sync_playwright

    profile = build_browser_profile(settings)
    playwright = sync_playwright().start()
    browser = None
    try:
        browser = playwright.chromium.launch(**profile.launch_args)
        context = browser.new_context(**profile.context_args)
        context.set_default_timeout(settings.browser.element_timeout_ms)
        context.set_default_navigation_timeout(settings.browser.navigation_timeout_ms)
        page = context.new_page()
    except Exception as e:
        logger.error("Browser launch failed: %s", e)
        if browser is not None:
            try:
                browser.close()
            except Exception:
                logger.debug("Ignoring close error after failed launch", exc_info=True)
        playwright.stop()
        raise ResourceError(f"Browser launch failed: {e}") from e

    form = TargetForm(
        page,
        settings.target,
        element_timeout_ms=settings.browser.element_timeout_ms,
        navigation_timeout_ms=settings.browser.navigation_timeout_ms,
        reload_timeout_ms=settings.captcha.reload_timeout_ms,
        submit_timeout_ms=settings.lookup.submit_navigation_timeout_ms,
    )
    return BrowserSession(playwright, browser, context, page, form)
