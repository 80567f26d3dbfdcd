"""Vehicle registration lookup — captcha-solving browser automation behind a small HTTP API."""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__ = version("vrlookup")
except Exception:
    __version__ = "0.0.0"
