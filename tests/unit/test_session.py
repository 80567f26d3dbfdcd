"""Unit tests for vrlookup.browser.session — launch arguments and teardown."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from vrlookup.browser.session import BrowserSession, build_browser_profile, open_browser_session
from vrlookup.exceptions import ResourceError


class TestBuildBrowserProfile:
    """``browser`` settings map to Playwright kwargs."""

    def test_container_defaults(self, test_settings) -> None:
        profile = build_browser_profile(test_settings)

        assert profile.launch_args["headless"] is True
        assert "--no-sandbox" in profile.launch_args["args"]
        assert "--disable-dev-shm-usage" in profile.launch_args["args"]
        assert "proxy" not in profile.launch_args
        assert profile.context_args["locale"] == "vi-VN"
        assert profile.context_args["viewport"] == {"width": 1366, "height": 900}

    def test_sandbox_and_proxy(self, test_settings) -> None:
        test_settings.browser.sandbox = True
        test_settings.browser.proxy = " socks5://127.0.0.1:1080 "
        test_settings.browser.user_agent = "Mozilla/5.0 test"

        profile = build_browser_profile(test_settings)

        assert "--no-sandbox" not in profile.launch_args["args"]
        assert profile.launch_args["proxy"] == {"server": "socks5://127.0.0.1:1080"}
        assert profile.context_args["user_agent"] == "Mozilla/5.0 test"


class TestBrowserSession:
    """``close`` releases everything once."""

    def _session(self):
        playwright, browser, context = MagicMock(), MagicMock(), MagicMock()
        return BrowserSession(playwright, browser, context, MagicMock(), MagicMock()), playwright, browser, context

    def test_close_releases_all(self) -> None:
        session, playwright, browser, context = self._session()

        session.close()

        context.close.assert_called_once()
        browser.close.assert_called_once()
        playwright.stop.assert_called_once()
        assert session.closed

    def test_close_is_idempotent(self) -> None:
        session, playwright, browser, _ = self._session()

        session.close()
        session.close()

        browser.close.assert_called_once()
        playwright.stop.assert_called_once()

    def test_close_continues_after_error(self) -> None:
        session, playwright, browser, context = self._session()
        context.close.side_effect = RuntimeError("context already closed")

        session.close()

        browser.close.assert_called_once()
        playwright.stop.assert_called_once()


class TestOpenBrowserSession:
    """Launch failures become ``ResourceError`` and nothing leaks."""

    @patch("playwright.sync_api.sync_playwright")
    def test_launch_failure(self, mock_sync_playwright, test_settings) -> None:
        driver = mock_sync_playwright.return_value.start.return_value
        driver.chromium.launch.side_effect = RuntimeError("Executable doesn't exist")

        with pytest.raises(ResourceError, match="Browser launch failed"):
            open_browser_session(test_settings)

        driver.stop.assert_called_once()

    @patch("playwright.sync_api.sync_playwright")
    def test_context_failure_closes_browser(self, mock_sync_playwright, test_settings) -> None:
        driver = mock_sync_playwright.return_value.start.return_value
        browser = driver.chromium.launch.return_value
        browser.new_context.side_effect = RuntimeError("bad proxy")

        with pytest.raises(ResourceError):
            open_browser_session(test_settings)

        browser.close.assert_called_once()
        driver.stop.assert_called_once()

    @patch("playwright.sync_api.sync_playwright")
    def test_success_wires_form(self, mock_sync_playwright, test_settings) -> None:
        driver = mock_sync_playwright.return_value.start.return_value
        context = driver.chromium.launch.return_value.new_context.return_value

        session = open_browser_session(test_settings)

        assert session.page is context.new_page.return_value
        assert session.form.page is session.page
        assert session.form.target.url == test_settings.target.url
        context.set_default_timeout.assert_called_once_with(test_settings.browser.element_timeout_ms)
