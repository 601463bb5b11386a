"""Site crawler: drives crawl4ai's BFS deep crawl over a seed URL or sitemap.

Traversal is crawl4ai's: a ``BFSDeepCrawlStrategy`` whose ``FilterChain``
holds the include/exclude globs. ``HarvestCrawlStrategy`` narrows it to a
hard page budget shared by every seed of the run, counting failed visits
too, and never schedules a URL twice.

Two strategy hooks wire the harvester in:

- ``before_goto`` injects cookies for the request URL, blocks excluded
  resource types and subscribes the harvester to the page's responses, all
  before navigation starts.
- ``before_return_html`` drains the harvester so every matching API response
  has been stored before the page is handed back and closed.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Union

from crawl4ai import AsyncWebCrawler, BrowserConfig, CrawlerRunConfig
from crawl4ai.async_configs import CacheMode
from crawl4ai.deep_crawling.bfs_strategy import BFSDeepCrawlStrategy, FilterChain
from crawl4ai.models import CrawlResultContainer
from crawl4ai.utils import normalize_url_for_deep_crawl

from .config import ConfigError, CrawlConfig, config_from_mapping
from .filters import GlobFilter
from .harvester import PageHarvester
from .sitemap import download_sitemap_urls, is_sitemap_url
from .storage import RecordStore

LOGGER = logging.getLogger(__name__)


@dataclass
class CrawlRunResult:
    """Result of a crawl run."""

    pages_visited: int = 0
    records_saved: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)


def resource_route_pattern(extensions: Iterable[str]) -> str:
    """Playwright route glob matching any of the given file extensions."""
    return "**/*.{" + ",".join(extensions) + "}"


def normalize_url(url: str) -> str:
    return normalize_url_for_deep_crawl(url, url)


class HarvestCrawlStrategy(BFSDeepCrawlStrategy):
    """BFS without a depth limit and with a run-wide page budget.

    ``scheduled`` holds every URL handed to the crawler in this run; its size
    never exceeds ``max_pages``.
    """

    def __init__(self, *, max_pages: int, filter_chain: FilterChain) -> None:
        super().__init__(
            max_depth=math.inf,
            filter_chain=filter_chain,
            max_pages=max_pages,
            logger=LOGGER,
        )
        self.scheduled: Set[str] = set()

    def reserve(self, urls: Iterable[str]) -> List[str]:
        """Schedule seed URLs within the budget; return the ones accepted."""
        accepted = []
        for url in urls:
            normalized = normalize_url(url)
            if normalized in self.scheduled:
                continue
            if len(self.scheduled) >= self.max_pages:
                LOGGER.info("Page limit of %d reached; skipping seed %s", self.max_pages, url)
                continue
            self.scheduled.add(normalized)
            accepted.append(url)
        return accepted

    async def can_process_url(self, url: str, depth: int) -> bool:
        if depth != 0 and url in self.scheduled:
            return False
        return await super().can_process_url(url, depth)

    async def link_discovery(
        self,
        result: Any,
        source_url: str,
        current_depth: int,
        visited: Set[str],
        next_level: List[Any],
        depths: Dict[str, int],
    ) -> None:
        room = self.max_pages - len(self.scheduled)
        if room <= 0:
            return
        start = len(next_level)
        await super().link_discovery(
            result, source_url, current_depth, visited, next_level, depths
        )
        del next_level[start + room :]
        for url, _parent in next_level[start:]:
            self.scheduled.add(url)
        LOGGER.debug("Queued %d new link(s) from %s", len(next_level) - start, source_url)


def build_crawl_run_config(
    config: CrawlConfig, strategy: Optional[BFSDeepCrawlStrategy] = None
) -> CrawlerRunConfig:
    """Run configuration for API-harvesting page visits."""
    # Batch mode: the deep crawl returns one list holding every page result.
    return CrawlerRunConfig(
        verbose=False,
        wait_until="networkidle",
        cache_mode=CacheMode.BYPASS,
        semaphore_count=config.concurrency,
        deep_crawl_strategy=strategy,
        stream=False,
    )


def build_strategy(config: CrawlConfig) -> HarvestCrawlStrategy:
    return HarvestCrawlStrategy(
        max_pages=config.max_pages_to_crawl,
        filter_chain=FilterChain([GlobFilter(config.match, config.exclude)]),
    )


class _CrawlRun:
    """Hook state of one crawl run."""

    def __init__(self, config: CrawlConfig, harvester: PageHarvester) -> None:
        self.config = config
        self.harvester = harvester
        self.pages: Dict[str, Any] = {}
        self.page_counter = 0

    async def before_goto(self, page: Any, context: Any = None, url: str = "", **kwargs: Any) -> Any:
        self.page_counter += 1
        LOGGER.info(
            "Crawling: Page %d / %d - URL: %s...",
            self.page_counter,
            self.config.max_pages_to_crawl,
            url,
        )

        if self.config.cookies:
            # The page has not navigated yet, so cookies are scoped to the request URL.
            browser_context = context or page.context
            await browser_context.add_cookies(
                [cookie.for_url(url) for cookie in self.config.cookies]
            )

        if self.config.resource_exclusions:
            await page.route(
                resource_route_pattern(self.config.resource_exclusions), _abort_route
            )
            LOGGER.debug("Aborting requests for excluded resources on %s", url)

        self.pages[url] = page
        self.harvester.attach(page, url)
        return page

    async def before_return_html(self, page: Any, html: str = "", **kwargs: Any) -> Any:
        await self.harvester.drain(page)
        for url, tracked in list(self.pages.items()):
            if tracked is page:
                del self.pages[url]
        return page

    async def drain_remaining(self) -> None:
        """Drain pages whose visit ended before ``before_return_html``."""
        while self.pages:
            _url, page = self.pages.popitem()
            await self.harvester.drain(page)


async def _abort_route(route: Any) -> None:
    await route.abort("aborted")


def _iter_results(container: Any) -> Iterator[Any]:
    if container is None:
        return
    if isinstance(container, (list, tuple, CrawlResultContainer)):
        for item in container:
            yield from _iter_results(item)
        return
    yield container


async def crawl_site_async(
    config: Union[CrawlConfig, Dict[str, Any]],
    *,
    store: Optional[RecordStore] = None,
    browser_config: Optional[BrowserConfig] = None,
) -> CrawlRunResult:
    """
    Crawl a website and store one record per harvested API response.

    Args:
        config: CrawlConfig, or a mapping validated into one.
        store: Record storage; defaults to ``config.storage_dir``. It is
            purged before the crawl starts.
        browser_config: Optional crawl4ai BrowserConfig override.

    Returns:
        CrawlRunResult with visit counts, errors and stats.

    Raises:
        ConfigError: If the configuration is invalid.
        httpx.HTTPError: If a sitemap seed cannot be downloaded.
    """
    if not isinstance(config, CrawlConfig):
        config = config_from_mapping(config)

    record_store = store or RecordStore(config.storage_dir)
    record_store.purge()
    harvester = PageHarvester(record_store, api_pattern=config.api_pattern)
    run = _CrawlRun(config, harvester)

    if is_sitemap_url(config.url):
        seeds = await download_sitemap_urls(config.url)
        if not seeds:
            raise ConfigError(f"Sitemap {config.url} does not list any URLs")
    else:
        seeds = [config.url]

    strategy = build_strategy(config)
    seeds = strategy.reserve(seeds)
    run_config = build_crawl_run_config(config, strategy)

    browser_cfg = browser_config or BrowserConfig(
        headless=config.headless,
        use_persistent_context=False,
        verbose=False,
    )

    async with AsyncWebCrawler(config=browser_cfg) as crawler:
        crawler.crawler_strategy.set_hook("before_goto", run.before_goto)
        crawler.crawler_strategy.set_hook("before_return_html", run.before_return_html)

        try:
            if len(seeds) == 1:
                container = await crawler.arun(url=seeds[0], config=run_config)
            else:
                container = await crawler.arun_many(urls=seeds, config=run_config)
        finally:
            await run.drain_remaining()

    errors: List[Dict[str, str]] = []
    pages_visited = 0
    for result in _iter_results(container):
        pages_visited += 1
        if not getattr(result, "success", False):
            url = str(getattr(result, "url", ""))
            error = getattr(result, "error_message", None) or "Unknown"
            LOGGER.warning("Failed to crawl %s: %s", url, error)
            errors.append({"url": url, "error": str(error), "stage": "crawl"})

    result = CrawlRunResult(
        pages_visited=pages_visited,
        records_saved=harvester.records_saved,
        errors=errors,
    )
    result.stats = {
        "pages_visited": result.pages_visited,
        "records_saved": result.records_saved,
        "urls_discovered": len(strategy.scheduled),
        "error_count": len(errors),
    }
    LOGGER.info(
        "Crawl finished: %d page(s) visited, %d record(s) saved, %d error(s)",
        result.pages_visited,
        result.records_saved,
        len(errors),
    )
    return result
