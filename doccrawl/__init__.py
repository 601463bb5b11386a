"""Crawl a site, harvest its document API responses, write LLM-sized JSON.

Every crawled page is opened in a headless browser. Responses from the
site's internal document API (URLs containing ``documents.info`` by default)
are flattened into plain text fragments and stored as one record per page.
Once the crawl is done, the records are combined into ``<name>-1.json``,
``<name>-2.json``, ... bounded by file size and by token count.

Example usage:

    from doccrawl import CrawlConfig, DocCrawler

    config = CrawlConfig(
        url="https://docs.example.com",
        match="https://docs.example.com/**",
        max_pages_to_crawl=100,
        output_file_name="docs.json",
        max_tokens=2_000_000,
    )
    crawler = DocCrawler(config)
    await crawler.crawl_async()
    last_file = crawler.write()

    # Or in one call, synchronously
    from doccrawl import crawl, write
    crawl(config)
    write(config)

    # Re-combine stored records with other limits
    from doccrawl import OutputConfig
    write(OutputConfig(output_file_name="docs.json", max_file_size=5))

Set ``NO_CRAWL=true`` in the environment to skip the crawl and only
re-combine records stored by a previous run.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .config import (
    ConfigError,
    Cookie,
    CrawlConfig,
    OutputConfig,
    config_from_mapping,
    load_config,
)
from .document import PageRecord
from .extractor import extract_fragments, join_fragments
from .harvester import PageHarvester
from .site import CrawlRunResult, crawl_site_async
from .storage import RecordStore
from .writer import BatchWriter, write_batches

LOGGER = logging.getLogger(__name__)

__version__ = "0.1.0"

__all__ = [
    # Config
    "ConfigError",
    "Cookie",
    "CrawlConfig",
    "OutputConfig",
    "config_from_mapping",
    "load_config",
    # Records
    "PageRecord",
    "RecordStore",
    # Extraction
    "extract_fragments",
    "join_fragments",
    "PageHarvester",
    # Crawl
    "CrawlRunResult",
    "crawl_site_async",
    "crawl_async",
    "crawl",
    "crawl_disabled",
    # Output
    "BatchWriter",
    "write_batches",
    "write",
    # Facade
    "DocCrawler",
]

ConfigInput = Union[CrawlConfig, Dict[str, Any]]


def _ensure_config(config: ConfigInput) -> CrawlConfig:
    if isinstance(config, CrawlConfig):
        return config
    return config_from_mapping(config)


def crawl_disabled() -> bool:
    """True when ``NO_CRAWL=true`` asks for a write-only run."""
    return os.getenv("NO_CRAWL", "").strip().lower() == "true"


async def crawl_async(config: ConfigInput) -> Optional[CrawlRunResult]:
    """
    Validate ``config`` and crawl the site, storing one record per page.

    Returns:
        The CrawlRunResult, or None when crawling is disabled via NO_CRAWL.

    Raises:
        ConfigError: If the configuration is invalid.
    """
    resolved = _ensure_config(config)
    if crawl_disabled():
        LOGGER.info("NO_CRAWL is set; skipping crawl of %s", resolved.url)
        return None
    return await crawl_site_async(resolved)


def crawl(config: ConfigInput) -> Optional[CrawlRunResult]:
    """Synchronous wrapper for crawl_async."""
    return asyncio.run(crawl_async(config))


def write(config: Union[ConfigInput, OutputConfig]) -> Optional[Path]:
    """Combine stored records into output files; return the last file.

    An OutputConfig is enough for a write-only run; no crawl options are
    needed.
    """
    if isinstance(config, OutputConfig):
        return write_batches(config)
    return write_batches(_ensure_config(config))


class DocCrawler:
    """A config bound to its crawl and write steps."""

    def __init__(self, config: ConfigInput) -> None:
        self.config = _ensure_config(config)

    async def crawl_async(self) -> Optional[CrawlRunResult]:
        return await crawl_async(self.config)

    def crawl(self) -> Optional[CrawlRunResult]:
        return crawl(self.config)

    def write(self) -> Optional[Path]:
        # The file name depends on how many batches were written.
        return write(self.config)
