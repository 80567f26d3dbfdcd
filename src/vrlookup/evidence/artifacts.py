"""Screenshot artifacts with a bounded lifetime.

Each successful lookup produces a full-page screenshot that the API reads
(for base64 packaging) and serves through a static route.  The registry
schedules an unconditional deletion ``ttl_sec`` after capture on a daemon
timer, independent of the request/response cycle.

The delay only has to outlast a same-process read.  Nothing stops a
pathologically slow reader from racing the deletion; that risk is
accepted rather than papered over with reference counting.

The registry is process-wide and must be started explicitly
(``start()``) before captures and stopped (``stop()``) on shutdown.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from vrlookup.browser.form import LookupPage
from vrlookup.exceptions import ResourceError

logger = logging.getLogger(__name__)


@dataclass
class ScreenshotArtifact:
    """A screenshot file owned by the registry until its scheduled deletion."""

    path: Path
    url_path: str = ""
    mime_type: str = "image/png"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def filename(self) -> str:
        return self.path.name

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "path": str(self.path),
            "url": self.url_path,
            "mimeType": self.mime_type,
            "createdAt": self.created_at.isoformat(),
        }


class ArtifactRegistry:
    """Create screenshot files and delete them after a fixed delay.

    Args:
        output_dir: Directory the screenshots are written to.
        ttl_sec: Delay between capture and deletion.
        url_prefix: Static route prefix the files are served under.
    """

    def __init__(self, output_dir: Path | str, *, ttl_sec: float = 120.0, url_prefix: str = "/screenshots") -> None:
        self.output_dir = Path(output_dir)
        self.ttl_sec = ttl_sec
        self.url_prefix = url_prefix.rstrip("/")
        self._timers: dict[Path, threading.Timer] = {}
        self._lock = threading.Lock()
        self._sequence = itertools.count(1)
        self._running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Create the output directory and accept captures."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._running = True
        logger.info("Artifact registry started: dir=%s ttl=%.0fs", self.output_dir, self.ttl_sec)

    def stop(self, *, delete_pending: bool = True) -> None:
        """Cancel outstanding timers, deleting their files unless told otherwise."""
        self._running = False
        with self._lock:
            pending = list(self._timers.items())
            self._timers.clear()
        for path, timer in pending:
            timer.cancel()
            if delete_pending:
                self.delete(path)
        logger.info("Artifact registry stopped (%d pending deletions %s)", len(pending),
                    "flushed" if delete_pending else "abandoned")

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def new_path(self, request_id: str, attempt_index: int) -> Path:
        """Unique screenshot path for one attempt of one request."""
        stamp = int(time.time() * 1000)
        return self.output_dir / f"result_{request_id}_{attempt_index}_{stamp}_{next(self._sequence)}.png"

    def capture(self, page: LookupPage, request_id: str, attempt_index: int) -> ScreenshotArtifact:
        """Take a full-page screenshot of *page* and schedule its deletion.

        Raises:
            ResourceError: If the registry is not running or the file cannot be written.
        """
        if not self._running:
            raise ResourceError("Artifact registry is not running")

        path = self.new_path(request_id, attempt_index)
        try:
            page.screenshot(path)
        except Exception as e:
            raise ResourceError(f"Screenshot failed: {e}") from e
        if not path.exists():
            raise ResourceError(f"Screenshot was not written to {path}")

        logger.info("Saved screenshot %s", path)
        self.schedule_deletion(path)
        return ScreenshotArtifact(path=path, url_path=f"{self.url_prefix}/{path.name}")

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def schedule_deletion(self, path: Path, delay_sec: float | None = None) -> None:
        """Delete *path* after *delay_sec* (default ``ttl_sec``) on a daemon timer."""
        delay = self.ttl_sec if delay_sec is None else delay_sec
        timer = threading.Timer(delay, self._expire, args=(path,))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(path, None)
            self._timers[path] = timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def pending(self) -> list[Path]:
        with self._lock:
            return list(self._timers)

    def _expire(self, path: Path) -> None:
        with self._lock:
            owned = self._timers.pop(path, None) is not None
        if owned:
            self.delete(path)

    def delete(self, path: Path) -> bool:
        """Remove *path*; a missing file is not an error.  Never raises."""
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error("Failed to delete %s: %s", path, e)
            return False
        logger.info("Deleted screenshot %s", path)
        return True
