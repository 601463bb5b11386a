"""Combine stored page records into size- and token-bounded output files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .config import CrawlConfig, OutputConfig
from .storage import RecordStore
from .tokens import within_token_limit

LOGGER = logging.getLogger(__name__)

TokenCounter = Callable[[str, int], Optional[int]]
WriterConfig = Union[CrawlConfig, OutputConfig]


def _output_config(config: WriterConfig) -> OutputConfig:
    return config.output if isinstance(config, CrawlConfig) else config


class BatchWriter:
    """Accumulates records and flushes them to ``<stem>-<n>.json`` files.

    A batch is flushed when adding a record pushes either the running token
    estimate past ``max_tokens`` (flush happens *before* the record is added)
    or the running byte size past the byte ceiling (flush happens *after*).
    When the token ceiling triggers, the estimate restarts at half of the
    triggering record's count. A byte-triggered flush leaves the token
    estimate untouched.
    """

    def __init__(
        self,
        config: WriterConfig,
        *,
        token_counter: TokenCounter = within_token_limit,
    ) -> None:
        self.config = _output_config(config)
        self.max_bytes = self.config.max_bytes
        self.max_tokens = self.config.max_tokens
        self._token_counter = token_counter

        self.current_results: List[Dict[str, Any]] = []
        self.current_size = 0
        self.estimated_tokens = 0
        self.file_counter = 1
        self.written: List[Path] = []

    def next_file_name(self) -> Path:
        return Path(f"{self.config.output_stem}-{self.file_counter}.json")

    def write_batch_to_file(self) -> Path:
        path = self.next_file_name()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(self.current_results, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        LOGGER.info("Wrote %d items to %s", len(self.current_results), path)
        self.written.append(path)
        self.current_results = []
        self.current_size = 0
        self.file_counter += 1
        return path

    def add_content_or_split(self, data: Dict[str, Any]) -> None:
        content = json.dumps(data, separators=(",", ":"), ensure_ascii=False)

        if self.max_tokens is None:
            self.current_results.append(data)
        else:
            token_count = self._token_counter(content, self.max_tokens)
            if token_count is None:
                # Larger than a whole file on its own; kept without accounting.
                LOGGER.warning(
                    "Record %s exceeds max_tokens=%d by itself",
                    data.get("url"),
                    self.max_tokens,
                )
                self.current_results.append(data)
            elif self.estimated_tokens + token_count > self.max_tokens:
                if self.current_results:
                    self.write_batch_to_file()
                self.estimated_tokens = token_count // 2
                self.current_results.append(data)
            else:
                self.current_results.append(data)
                self.estimated_tokens += token_count

        self.current_size += len(content.encode("utf-8"))
        if self.max_bytes is not None and self.current_size > self.max_bytes:
            self.write_batch_to_file()

    def finish(self) -> Optional[Path]:
        """Flush the remaining batch and return the last file written."""
        if self.current_results:
            self.write_batch_to_file()
        return self.written[-1] if self.written else None


def write_batches(
    config: WriterConfig,
    *,
    store: Optional[RecordStore] = None,
    token_counter: TokenCounter = within_token_limit,
) -> Optional[Path]:
    """Combine every stored record into the configured output files.

    Args:
        config: The run or output configuration (output name and limits).
        store: Where the records were stored; defaults to
            ``config.storage_dir``.
        token_counter: Callable ``(text, limit) -> count | None``.

    Returns:
        Path of the last file written, or None when there was nothing to
        write.

    Raises:
        OSError: If a record cannot be read or an output file written.
        json.JSONDecodeError: If a stored record is not valid JSON.
    """
    record_store = store or RecordStore(config.storage_dir)
    files = record_store.list_files()
    LOGGER.info("Found %d files to combine...", len(files))

    writer = BatchWriter(config, token_counter=token_counter)
    for path in files:
        data = json.loads(path.read_text(encoding="utf-8"))
        writer.add_content_or_split(data)

    return writer.finish()
