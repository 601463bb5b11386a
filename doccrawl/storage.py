"""Intermediate per-record storage.

Every harvested page is written to its own JSON file inside a dataset
directory (``storage/datasets/default`` by default). Files are numbered
``000000001.json``, ``000000002.json``, ... in the order records are pushed,
which keeps the layout compatible with crawlee datasets. The batch writer
discovers them again with a glob once the crawl is over.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

from .document import PageRecord

LOGGER = logging.getLogger(__name__)

DEFAULT_STORAGE_DIR = Path("storage") / "datasets" / "default"
RECORD_GLOB = "*.json"


class RecordStore:
    """Writes one JSON file per record into a dataset directory."""

    def __init__(self, directory: Union[str, Path] = DEFAULT_STORAGE_DIR) -> None:
        self.directory = Path(directory)
        self._counter = self._last_index()

    def purge(self) -> int:
        """Delete previously stored records and reset numbering."""
        removed = 0
        if self.directory.is_dir():
            for path in self.list_files():
                path.unlink()
                removed += 1
        self._counter = 0
        if removed:
            LOGGER.info("Purged %d stored record(s) from %s", removed, self.directory)
        return removed

    def push(self, record: Union[PageRecord, Dict[str, Any]]) -> Path:
        """Persist one record and return the file it was written to."""
        data = record.to_dict() if isinstance(record, PageRecord) else dict(record)
        self.directory.mkdir(parents=True, exist_ok=True)
        # Numbering happens before any await point so concurrent pages never
        # share a file name.
        self._counter += 1
        path = self.directory / f"{self._counter:09d}.json"
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        LOGGER.debug("Stored record %s -> %s", data.get("url"), path)
        return path

    def list_files(self) -> List[Path]:
        """Return stored record files in name order."""
        return sorted(self.directory.glob(RECORD_GLOB))

    def _last_index(self) -> int:
        last = 0
        for path in self.list_files():
            if path.stem.isdigit():
                last = max(last, int(path.stem))
        return last

    def __len__(self) -> int:
        return len(self.list_files())
