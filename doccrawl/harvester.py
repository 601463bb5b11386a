"""Harvest page records from intercepted API responses."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set

from .config import DEFAULT_API_PATTERN
from .document import PageRecord
from .extractor import extract_fragments, join_fragments
from .storage import RecordStore

LOGGER = logging.getLogger(__name__)


class PageHarvester:
    """Turns matching network responses of a page into stored PageRecords.

    ``attach`` subscribes to a page's responses before it navigates; every
    matching response is handled in its own task. ``drain`` waits for those
    tasks so a page is only considered processed once its records are stored.
    """

    def __init__(
        self, store: RecordStore, *, api_pattern: str = DEFAULT_API_PATTERN
    ) -> None:
        self.store = store
        self.api_pattern = api_pattern
        self.records_saved = 0
        self._pending: Dict[Any, Set[asyncio.Task]] = {}

    def matches(self, url: str) -> bool:
        return self.api_pattern in url

    def build_record(self, payload: Any, page_url: Optional[str]) -> Optional[PageRecord]:
        """Build a record from an API payload, or None if it has no document.

        An empty object or list still counts as a document and yields a
        record made of defaults.
        """
        data = payload.get("data") if isinstance(payload, dict) else None
        document = data.get("document") if isinstance(data, dict) else None
        if not document and not isinstance(document, (dict, list)):
            LOGGER.warning(
                "Skipping document - missing data.document for URL: %s", page_url
            )
            return None

        text = join_fragments(extract_fragments(document))
        title = document.get("title") if isinstance(document, dict) else None
        return PageRecord.build(title=title, url=page_url, text=text)

    async def handle_response(self, response: Any, page_url: Optional[str]) -> Optional[PageRecord]:
        """Parse one response and store its record.

        Bad bodies and storage failures are logged and yield None.
        """
        response_url = response.url
        if not self.matches(response_url):
            return None

        try:
            payload = await response.json()

            if LOGGER.isEnabledFor(logging.DEBUG):
                LOGGER.debug(
                    "Full API response from %s: %s",
                    response_url,
                    json.dumps(payload, indent=2, ensure_ascii=False, default=repr),
                )

            record = self.build_record(payload, page_url)
            if record is None:
                return None

            self.store.push(record)
        except Exception as exc:
            LOGGER.error("Error processing response from %s: %s", response_url, exc)
            return None

        self.records_saved += 1
        LOGGER.info("Saved %s (%d chars)", record.url, len(record.text))
        return record

    def attach(self, page: Any, page_url: str) -> None:
        """Subscribe to ``page``'s responses; call before navigating."""
        tasks = self._pending.setdefault(page, set())

        def _on_response(response: Any) -> None:
            if not self.matches(response.url):
                return
            current_url = getattr(page, "url", "") or ""
            if not current_url or current_url.startswith("about:"):
                current_url = page_url
            task = asyncio.ensure_future(self.handle_response(response, current_url))
            tasks.add(task)

        page.on("response", _on_response)

    async def drain(self, page: Any) -> None:
        """Wait until every response task of ``page`` has finished."""
        tasks = self._pending.get(page)
        while tasks:
            batch = list(tasks)
            tasks.difference_update(batch)
            results = await asyncio.gather(*batch, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    LOGGER.error("Response handler failed: %r", result)
        self._pending.pop(page, None)
