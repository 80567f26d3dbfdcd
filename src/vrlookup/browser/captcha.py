"""Image captcha resolution through an external recognition model.

For each try the resolver:

1. waits for the captcha image and captures the element to a temp file
   (element capture keeps the image bound to the session's cookies),
2. asks the recognizer for the characters with a narrow instruction,
3. keeps only ``[A-Za-z0-9]`` of the answer, since model output is
   untrusted and sometimes chatty,
4. types the cleaned text into the captcha input.

The temp image is deleted after every try.  A failed try reloads the page,
because the portal invalidates a captcha once it has been displayed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from vrlookup.browser.form import LookupPage
from vrlookup.exceptions import CaptchaResolutionError, FormInteractionError, RecognitionError
from vrlookup.llm.recognizer import TextRecognizer

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = (
    "Read the characters in this captcha image. "
    "Return only those characters, with no explanation."
)

_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")


def clean_captcha_text(raw: str) -> str:
    """Strip everything except ASCII letters and digits.

    >>> clean_captcha_text("A B-9?")
    'AB9'
    """
    return _NON_ALPHANUMERIC.sub("", raw or "")


@dataclass
class CaptchaSolution:
    """Text typed into the captcha field and the try that produced it."""

    text: str
    tries: int


class CaptchaResolver:
    """Resolve the portal captcha with a bounded number of tries.

    Args:
        recognizer: Image-to-text capability.
        work_dir: Directory for the per-try temp images.
        max_tries: Tries before giving up (the page is reloaded between tries).
        prompt: Instruction sent along with the image.
        mime_type: MIME type of the captured image.
    """

    def __init__(
        self,
        recognizer: TextRecognizer,
        *,
        work_dir: Path,
        max_tries: int = 3,
        prompt: str = DEFAULT_PROMPT,
        mime_type: str = "image/png",
    ) -> None:
        if max_tries < 1:
            raise ValueError("max_tries must be >= 1")
        self.recognizer = recognizer
        self.work_dir = Path(work_dir)
        self.max_tries = max_tries
        self.prompt = prompt
        self.mime_type = mime_type

    def resolve(self, page: LookupPage, tag: str) -> CaptchaSolution:
        """Fill the captcha field on *page*.

        Args:
            page: The lookup page of the current session.
            tag: Unique per request and attempt; names the temp images.

        Raises:
            CaptchaResolutionError: When all tries fail; carries the last cause.
        """
        self.work_dir.mkdir(parents=True, exist_ok=True)
        last_error: Exception | None = None

        for attempt in range(1, self.max_tries + 1):
            image_path = self.work_dir / f"captcha_{tag}_{attempt}.png"
            try:
                text = self._try_once(page, image_path)
                logger.info("Captcha resolved on try %d/%d", attempt, self.max_tries)
                return CaptchaSolution(text=text, tries=attempt)
            except Exception as exc:
                last_error = exc
                logger.warning("Captcha try %d/%d failed: %s", attempt, self.max_tries, exc)
            finally:
                _discard(image_path)

            if attempt < self.max_tries:
                try:
                    page.reload()
                except Exception as exc:
                    last_error = exc
                    logger.warning("Reload for a new captcha failed: %s", exc)

        raise CaptchaResolutionError(self.max_tries, last_error)

    def _try_once(self, page: LookupPage, image_path: Path) -> str:
        image = page.capture_captcha(image_path)
        if not image:
            raise FormInteractionError("Captcha image not visible")

        raw = self.recognizer.recognize(image, self.mime_type, self.prompt)
        text = clean_captcha_text(raw)
        if not text:
            raise RecognitionError(f"No usable characters in model answer {raw!r}")
        if text != raw.strip():
            logger.debug("Captcha answer cleaned: %r -> %r", raw, text)

        page.enter_captcha(text)
        return text


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Failed to delete captcha image %s: %s", path, e)
