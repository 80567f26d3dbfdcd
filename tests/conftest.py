"""vrlookup test configuration — in-memory portal page, recognizer and registry fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------

NOT_FOUND_TEXT = "Không tìm thấy thông tin phương tiện này."

SAMPLE_RECORD = {
    "nhanHieu": "TOYOTA",
    "loaiPhuongTien": "Ô tô con",
    "soKhung": "RL4BT9F36K1234567",
    "soMay": "2NR1234567",
    "ngayKiemDinh": "12/03/2024",
    "hanKiemDinh": "11/09/2025",
    "donViKiemDinh": "2903D",
    "soPhieuThu": "0123456",
}

FAKE_PNG = b"\x89PNG\r\n\x1a\n fake image bytes"


def sample_fields() -> dict[str, str]:
    """Default ``target.result_fields`` mapping (field name -> selector)."""
    from vrlookup.settings.config import TargetSettings

    return TargetSettings().result_fields


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeLookupPage:
    """In-memory ``LookupPage`` recording every call.

    Args:
        record: Field name -> text shown on the result page.
        error: Text of the portal error element after submit.
        captcha_visible: Whether the captcha image can be captured.
        submit_navigates: Return value of ``submit``.
        fail_at: Step name that raises *fail_exc*.
        fail_exc: Exception raised at *fail_at*.
    """

    def __init__(
        self,
        *,
        record: dict[str, str] | None = None,
        error: str | None = None,
        captcha_visible: bool = True,
        submit_navigates: bool = True,
        fail_at: str | None = None,
        fail_exc: Exception | None = None,
    ) -> None:
        fields = sample_fields()
        self.texts = {fields[name]: value for name, value in (record if record is not None else SAMPLE_RECORD).items()}
        self.error = error
        self.captcha_visible = captcha_visible
        self.submit_navigates = submit_navigates
        self.fail_at = fail_at
        self.fail_exc = fail_exc or RuntimeError(f"injected failure at {fail_at}")
        self.calls: list[str] = []
        self.typed: dict[str, str] = {}
        self.captcha_paths: list[Path] = []
        self.reloads = 0

    def _step(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_at == name:
            raise self.fail_exc

    def open(self) -> None:
        self._step("open")

    def reload(self) -> None:
        self._step("reload")
        self.reloads += 1

    def capture_captcha(self, path: Path) -> bytes | None:
        self._step("capture_captcha")
        if not self.captcha_visible:
            return None
        path.write_bytes(FAKE_PNG)
        self.captcha_paths.append(path)
        return FAKE_PNG

    def enter_captcha(self, text: str) -> None:
        self._step("enter_captcha")
        self.typed["captcha"] = text

    def fill_plate(self, value: str) -> None:
        self._step("fill_plate")
        self.typed["plate"] = value

    def fill_sticker(self, value: str) -> None:
        self._step("fill_sticker")
        self.typed["sticker"] = value

    def submit(self) -> bool:
        self._step("submit")
        return self.submit_navigates

    def error_message(self) -> str | None:
        self._step("error_message")
        return self.error

    def text_of(self, selector: str) -> str | None:
        return self.texts.get(selector)

    def screenshot(self, path: Path) -> None:
        self._step("screenshot")
        path.write_bytes(FAKE_PNG)

    def clear_cookies(self) -> None:
        self._step("clear_cookies")


class FakeSession:
    """Session wrapper counting ``close`` calls."""

    def __init__(self, form: FakeLookupPage, *, close_exc: Exception | None = None) -> None:
        self.form = form
        self.close_count = 0
        self._close_exc = close_exc

    def close(self) -> None:
        self.close_count += 1
        if self._close_exc is not None:
            raise self._close_exc


class FakeSessionFactory:
    """Hands out one session per page; the last page is reused when exhausted."""

    def __init__(self, pages: list[FakeLookupPage]) -> None:
        self.pages = list(pages)
        self.sessions: list[FakeSession] = []

    def __call__(self) -> FakeSession:
        index = min(len(self.sessions), len(self.pages) - 1)
        session = FakeSession(self.pages[index])
        self.sessions.append(session)
        return session


class FakeRecognizer:
    """Returns queued answers in order; an exception in the queue is raised."""

    def __init__(self, *answers: str | Exception) -> None:
        self.answers = list(answers) or ["AB12C"]
        self.calls: list[tuple[bytes, str, str]] = []

    def recognize(self, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        self.calls.append((image_bytes, mime_type, prompt))
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Clear the settings LRU cache between tests."""
    from vrlookup.settings.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def test_settings(tmp_path: Path):
    """Settings with screenshots under *tmp_path* and no real delays."""
    from vrlookup.settings.config import Settings

    return Settings(
        artifacts={"output_dir": str(tmp_path / "screenshots"), "ttl_sec": 60},
        lookup={"retry_delay_sec": 0, "settle_delay_sec": 0},
    )


# ---------------------------------------------------------------------------
# Fakes as fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_page_cls() -> type[FakeLookupPage]:
    return FakeLookupPage


@pytest.fixture()
def session_factory_cls() -> type[FakeSessionFactory]:
    return FakeSessionFactory


@pytest.fixture()
def fake_recognizer_cls() -> type[FakeRecognizer]:
    return FakeRecognizer


@pytest.fixture()
def sample_record() -> dict[str, str]:
    return dict(SAMPLE_RECORD)


@pytest.fixture()
def not_found_text() -> str:
    return NOT_FOUND_TEXT


@pytest.fixture()
def artifacts(tmp_path: Path):
    """A started ``ArtifactRegistry`` writing into *tmp_path*; stopped after the test."""
    from vrlookup.evidence.artifacts import ArtifactRegistry

    registry = ArtifactRegistry(tmp_path / "screenshots", ttl_sec=60)
    registry.start()
    yield registry
    registry.stop()


@pytest.fixture()
def make_workflow(tmp_path: Path, artifacts) -> Callable[..., tuple]:
    """Build a ``LookupWorkflow`` over fake pages.

    Returns a callable ``(pages, recognizer=None, **kwargs) -> (workflow, factory, sleeps)``
    where *sleeps* records every delay the workflow asked for.
    """
    from vrlookup.browser.captcha import CaptchaResolver
    from vrlookup.browser.extractor import ResultExtractor
    from vrlookup.lookup.workflow import LookupWorkflow

    def _build(pages: list[FakeLookupPage], recognizer: FakeRecognizer | None = None, **kwargs):
        factory = FakeSessionFactory(pages)
        session_factory = kwargs.pop("session_factory", factory)
        sleeps: list[float] = []
        resolver = CaptchaResolver(recognizer or FakeRecognizer(), work_dir=tmp_path / "captcha", max_tries=3)
        options = {
            "max_attempts": 3,
            "retry_delay_sec": 2.0,
            "settle_delay_sec": 3.0,
            "not_found_messages": [NOT_FOUND_TEXT],
        }
        options.update(kwargs)
        workflow = LookupWorkflow(
            session_factory=session_factory,
            captcha_resolver=resolver,
            extractor=ResultExtractor(sample_fields()),
            artifacts=artifacts,
            sleep=sleeps.append,
            **options,
        )
        return workflow, factory, sleeps

    return _build


# ---------------------------------------------------------------------------
# Mock LLM
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_llm_provider():
    """Return a ``MagicMock`` conforming to the ``LLMProvider`` interface."""
    from vrlookup.llm.base import LLMProvider, LLMResult

    mock = MagicMock(spec=LLMProvider)
    mock.check_connectivity.return_value = True
    mock.chat_with_images.return_value = LLMResult(
        content="AB12C",
        input_tokens=300,
        output_tokens=4,
        model="mock",
    )
    mock.close.return_value = None
    return mock


# ---------------------------------------------------------------------------
# Markers
# ---------------------------------------------------------------------------


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: HTTP app tests")
    config.addinivalue_line("markers", "slow: tests waiting on real timers")
