"""Read the result fields of the lookup page into a flat record."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from vrlookup.browser.form import LookupPage

logger = logging.getLogger(__name__)


class ResultExtractor:
    """Extract named result fields from the rendered result page.

    A field is included only when its element exists and has non-empty
    trimmed text.  Values are passed through as opaque strings.

    Args:
        fields: Mapping of output field name to element selector.
    """

    def __init__(self, fields: Mapping[str, str]) -> None:
        self.fields = dict(fields)

    def extract(self, page: LookupPage) -> dict[str, str] | None:
        """Return the populated fields, or ``None`` if none were found."""
        record: dict[str, str] = {}
        for name, selector in self.fields.items():
            value = page.text_of(selector)
            if value is None:
                continue
            value = value.strip()
            if value:
                record[name] = value

        if not record:
            logger.info("No result fields found on page (%d expected)", len(self.fields))
            return None

        missing = sorted(set(self.fields) - set(record))
        if missing:
            logger.debug("Partial result, missing fields: %s", ", ".join(missing))
        return record
