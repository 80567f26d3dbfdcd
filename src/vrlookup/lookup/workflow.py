"""Resilient submission workflow for the vehicle lookup portal.

One *attempt* drives a brand-new browser session through
navigate -> captcha -> fill -> submit -> classify -> extract and always
closes the session before returning.  ``run`` wraps attempts in a bounded
retry loop: retryable failures get a fresh session after a fixed delay,
a confirmed "not found" answer ends the lookup immediately.
"""

from __future__ import annotations

import logging
import time
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, Protocol

from vrlookup.browser.captcha import CaptchaResolver
from vrlookup.browser.extractor import ResultExtractor
from vrlookup.browser.form import LookupPage
from vrlookup.evidence.artifacts import ArtifactRegistry
from vrlookup.exceptions import (
    NoResultDataError,
    RetryableLookupError,
    ServerRejectedError,
    VehicleNotFoundError,
)
from vrlookup.models.lookup import (
    AttemptOutcome,
    AttemptRecord,
    LookupRequest,
    LookupResult,
    LookupStatus,
    RetryableFailure,
    RetryBudget,
    Success,
    TerminalFailure,
)
from vrlookup.models.states import LookupState, can_transition

if TYPE_CHECKING:
    from vrlookup.llm.recognizer import TextRecognizer
    from vrlookup.settings.config import Settings

logger = logging.getLogger(__name__)


class LookupSession(Protocol):
    """A browser session exposing the lookup page; closed after each attempt."""

    form: LookupPage

    def close(self) -> None: ...


SessionFactory = Callable[[], LookupSession]


def normalize_message(text: str) -> str:
    """Collapse whitespace and case-fold portal wording for comparison."""
    return " ".join(text.split()).casefold()


class _StateTracker:
    """Tracks the state of one attempt and the furthest step it completed."""

    def __init__(self, attempt: int) -> None:
        self.attempt = attempt
        self.state = LookupState.INIT
        self.reached = LookupState.INIT

    def advance(self, target: LookupState) -> None:
        if not can_transition(self.state, target):
            raise RuntimeError(f"Illegal transition {self.state.value} -> {target.value}")
        logger.debug("Attempt %d: %s -> %s", self.attempt, self.state.value, target.value)
        self.state = target
        if target not in (LookupState.RETRY, LookupState.FAILED):
            self.reached = target


class LookupWorkflow:
    """Bounded-retry state machine around single lookup attempts.

    Args:
        session_factory: Returns a fresh, isolated session per call.
        captcha_resolver: Fills the captcha field.
        extractor: Reads result fields from the result page.
        artifacts: Screenshot registry (must be started).
        not_found_messages: Portal wording that means "no such vehicle".
        max_attempts: Outer attempt budget.
        retry_delay_sec: Pause between attempts.
        settle_delay_sec: Pause after a submit whose navigation was not observed.
        sleep: Injectable sleep (tests pass a no-op).
    """

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        captcha_resolver: CaptchaResolver,
        extractor: ResultExtractor,
        artifacts: ArtifactRegistry,
        not_found_messages: Iterable[str],
        max_attempts: int = 3,
        retry_delay_sec: float = 2.0,
        settle_delay_sec: float = 3.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.session_factory = session_factory
        self.captcha_resolver = captcha_resolver
        self.extractor = extractor
        self.artifacts = artifacts
        self.not_found_messages = {normalize_message(m) for m in not_found_messages if m.strip()}
        self.max_attempts = max_attempts
        self.retry_delay_sec = retry_delay_sec
        self.settle_delay_sec = settle_delay_sec
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        artifacts: ArtifactRegistry,
        recognizer: TextRecognizer | None = None,
        session_factory: SessionFactory | None = None,
    ) -> "LookupWorkflow":
        """Wire the workflow from configuration."""
        if recognizer is None:
            from vrlookup.llm.factory import create_llm_provider
            from vrlookup.llm.recognizer import LLMRecognizer

            recognizer = LLMRecognizer(partial(create_llm_provider, settings=settings))
        if session_factory is None:
            from vrlookup.browser.session import open_browser_session

            session_factory = partial(open_browser_session, settings)

        resolver = CaptchaResolver(
            recognizer,
            work_dir=Path(settings.artifacts.output_dir) / "captcha",
            max_tries=settings.captcha.max_tries,
            prompt=settings.captcha.prompt,
            mime_type=settings.captcha.mime_type,
        )
        return cls(
            session_factory=session_factory,
            captcha_resolver=resolver,
            extractor=ResultExtractor(settings.target.result_fields),
            artifacts=artifacts,
            not_found_messages=settings.target.not_found_messages,
            max_attempts=settings.lookup.max_attempts,
            retry_delay_sec=settings.lookup.retry_delay_sec,
            settle_delay_sec=settings.lookup.settle_delay_sec,
        )

    # ------------------------------------------------------------------
    # Outer loop
    # ------------------------------------------------------------------

    def run(self, request: LookupRequest) -> LookupResult:
        """Run attempts until success, a terminal answer, or budget exhaustion."""
        started = time.monotonic()
        budget = RetryBudget(max_attempts=self.max_attempts)
        history: list[AttemptRecord] = []

        while True:
            attempt = budget.consume()
            logger.info(
                "Lookup %s attempt %d/%d (plate=%s)",
                request.request_id,
                attempt,
                budget.max_attempts,
                request.license_plate,
            )
            attempt_started = time.monotonic()
            outcome = self.run_attempt(request, attempt)
            history.append(
                AttemptRecord(
                    attempt=attempt,
                    state=outcome.state,
                    reached=outcome.reached,
                    kind=outcome.kind,
                    reason=getattr(outcome, "reason", ""),
                    elapsed_ms=(time.monotonic() - attempt_started) * 1000,
                )
            )

            result = LookupResult(
                request_id=request.request_id,
                status=LookupStatus.FAILED,
                attempts=budget.attempts_made,
                history=history,
            )

            if isinstance(outcome, Success):
                result.status = LookupStatus.SUCCESS
                result.data = outcome.record
                result.artifact = outcome.artifact
            elif isinstance(outcome, TerminalFailure):
                result.status = LookupStatus.NOT_FOUND
                result.error = outcome.reason
            elif budget.exhausted:
                result.error = outcome.reason
            else:
                logger.warning(
                    "Attempt %d failed after %s: %s (retrying in %.1fs)",
                    attempt,
                    outcome.reached.value,
                    outcome.reason,
                    self.retry_delay_sec,
                )
                self._sleep(self.retry_delay_sec)
                continue

            result.elapsed_ms = (time.monotonic() - started) * 1000
            logger.info(
                "Lookup %s finished: status=%s attempts=%d elapsed=%.0fms%s",
                request.request_id,
                result.status.value,
                result.attempts,
                result.elapsed_ms,
                f" error={result.error!r}" if result.error else "",
            )
            return result

    # ------------------------------------------------------------------
    # One attempt
    # ------------------------------------------------------------------

    def run_attempt(self, request: LookupRequest, attempt_index: int) -> AttemptOutcome:
        """Drive one isolated session through the whole form.

        Never raises: every failure is classified into an ``AttemptOutcome``.
        The session is closed exactly once on every path.
        """
        tracker = _StateTracker(attempt_index)
        try:
            session = self.session_factory()
        except Exception as exc:
            logger.error("Attempt %d: cannot open browser session: %s", attempt_index, exc)
            tracker.advance(LookupState.RETRY)
            return RetryableFailure(f"Browser session unavailable: {exc}", reached=tracker.reached)

        try:
            return self._drive(session.form, request, attempt_index, tracker)
        except VehicleNotFoundError as exc:
            logger.info("Attempt %d: portal reports vehicle not found", attempt_index)
            tracker.advance(LookupState.FAILED)
            return TerminalFailure(exc.message, reached=tracker.reached)
        except RetryableLookupError as exc:
            tracker.advance(LookupState.RETRY)
            return RetryableFailure(str(exc), reached=tracker.reached)
        except Exception as exc:
            logger.exception("Attempt %d: unexpected error at %s", attempt_index, tracker.state.value)
            tracker.advance(LookupState.RETRY)
            return RetryableFailure(f"Unexpected error: {type(exc).__name__}: {exc}", reached=tracker.reached)
        finally:
            try:
                session.close()
            except Exception:
                logger.exception("Attempt %d: session close failed", attempt_index)

    def _drive(
        self,
        page: LookupPage,
        request: LookupRequest,
        attempt_index: int,
        tracker: _StateTracker,
    ) -> Success:
        page.open()
        tracker.advance(LookupState.NAVIGATED)

        self.captcha_resolver.resolve(page, tag=f"{request.request_id}_{attempt_index}")
        tracker.advance(LookupState.CAPTCHA_SOLVED)

        page.fill_plate(request.license_plate)
        page.fill_sticker(request.sticker_number)
        tracker.advance(LookupState.FORM_FILLED)

        if not page.submit():
            self._sleep(self.settle_delay_sec)
        tracker.advance(LookupState.SUBMITTED)

        message = page.error_message()
        tracker.advance(LookupState.CLASSIFIED)
        self.classify(message)

        artifact = self.artifacts.capture(page, request.request_id, attempt_index)
        record = self.extractor.extract(page)
        if not record:
            raise NoResultDataError("No result data on the page")
        tracker.advance(LookupState.EXTRACTED)

        self._clear_cookies(page, attempt_index)
        return Success(record=record, artifact=artifact)

    def classify(self, message: str | None) -> None:
        """Interpret the portal's error element.

        Raises:
            VehicleNotFoundError: The message is a configured "not found" wording.
            ServerRejectedError: Any other non-empty message (wrong captcha, overload ...).
        """
        if not message or not message.strip():
            return
        if normalize_message(message) in self.not_found_messages:
            raise VehicleNotFoundError(message.strip())
        # Unknown wording is treated as transient; log it so a rephrased
        # "not found" message on the portal side gets noticed.
        logger.warning("Portal error message not recognised as 'not found': %r", message.strip())
        raise ServerRejectedError(message.strip())

    @staticmethod
    def _clear_cookies(page: LookupPage, attempt_index: int) -> None:
        try:
            page.clear_cookies()
        except Exception as e:
            logger.warning("Attempt %d: failed to clear cookies: %s", attempt_index, e)
