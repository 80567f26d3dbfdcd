"""Lookup-specific exception hierarchy.

Failures raised inside one attempt are subclasses of ``RetryableLookupError``
(the workflow starts a fresh attempt) or ``VehicleNotFoundError`` (a correct
negative answer that must not be retried).
"""

from __future__ import annotations


class VRLookupError(Exception):
    """Base exception for all lookup errors."""


class LookupValidationError(VRLookupError):
    """Raised when a request is missing a required field."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required field(s): {', '.join(missing)}")


# ---------------------------------------------------------------------------
# Transient, in-attempt failures
# ---------------------------------------------------------------------------


class RetryableLookupError(VRLookupError):
    """A transient fault that warrants a fresh attempt with a new session."""


class NavigationError(RetryableLookupError):
    """Raised when the target page cannot be loaded.

    Attributes:
        url: The URL that failed to load.
        reason: Short human-readable failure reason.
    """

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Navigation to {url} failed: {reason}")


class CaptchaResolutionError(RetryableLookupError):
    """Raised when every captcha try is exhausted.

    Attributes:
        tries: Number of tries made.
        last_error: The cause of the final failed try.
    """

    def __init__(self, tries: int, last_error: Exception | None = None) -> None:
        self.tries = tries
        self.last_error = last_error
        cause = f": {last_error}" if last_error else ""
        super().__init__(f"Captcha not resolved after {tries} tries{cause}")


class FormInteractionError(RetryableLookupError):
    """Raised when a form element is missing or cannot be interacted with."""


class ServerRejectedError(RetryableLookupError):
    """Raised when the portal answers with an error message other than "not found"."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Portal returned an error: {message}")


class NoResultDataError(RetryableLookupError):
    """Raised when the result page yielded no extractable fields."""


class ResourceError(RetryableLookupError):
    """Browser session or artifact I/O failure."""


class RecognitionError(VRLookupError):
    """Raised when the text-recognition provider fails or returns nothing usable."""


# ---------------------------------------------------------------------------
# Final outcomes
# ---------------------------------------------------------------------------


class VehicleNotFoundError(VRLookupError):
    """The portal confirmed that no vehicle matches the query."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class LookupFailedError(VRLookupError):
    """Raised when a lookup ends without a result.

    Attributes:
        reason: The final failure reason, surfaced verbatim.
        attempts: Number of attempts made.
        terminal: True when the failure was a confirmed negative answer.
    """

    def __init__(self, reason: str, *, attempts: int, terminal: bool = False) -> None:
        self.reason = reason
        self.attempts = attempts
        self.terminal = terminal
        super().__init__(reason)


class ConcurrentLimitError(VRLookupError):
    """Raised when the server has reached the maximum number of concurrent lookups."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Concurrent lookup limit ({limit}) reached. Try again later.")
