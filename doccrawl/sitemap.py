"""Sitemap seed expansion."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Set, Tuple

import httpx
from lxml import etree

LOGGER = logging.getLogger(__name__)

SITEMAP_URL = re.compile(r"sitemap.*\.xml$")
MAX_SITEMAP_DEPTH = 3


def is_sitemap_url(url: str) -> bool:
    """Return True if ``url`` names a sitemap file rather than a page."""
    return bool(SITEMAP_URL.search(url))


def parse_sitemap(xml_content: bytes) -> Tuple[List[str], List[str]]:
    """Split sitemap XML into (page URLs, nested sitemap URLs).

    Both ``<urlset>`` and ``<sitemapindex>`` documents are understood;
    ``<loc>`` entries of an index are returned as nested sitemaps.
    """
    if not xml_content or not xml_content.strip():
        return [], []
    parser = etree.XMLParser(ns_clean=True, recover=True)
    root = etree.fromstring(xml_content, parser=parser)
    if root is None:
        return [], []

    locs = [loc.text.strip() for loc in root.iter("{*}loc") if loc.text and loc.text.strip()]
    if etree.QName(root).localname == "sitemapindex":
        return [], locs
    return locs, []


async def download_sitemap_urls(
    url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 30.0,
) -> List[str]:
    """Download a sitemap (following sitemap indexes) and list its page URLs.

    Raises:
        httpx.HTTPError: If a sitemap cannot be fetched.
    """
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
    urls: List[str] = []
    seen: Set[str] = set()
    try:
        await _collect(http, url, urls, seen, depth=0)
    finally:
        if owns_client:
            await http.aclose()

    LOGGER.info("Sitemap %s lists %d URL(s)", url, len(urls))
    return urls


async def _collect(
    http: httpx.AsyncClient,
    sitemap_url: str,
    urls: List[str],
    seen: Set[str],
    *,
    depth: int,
) -> None:
    if sitemap_url in seen:
        return
    seen.add(sitemap_url)

    response = await http.get(sitemap_url)
    response.raise_for_status()
    pages, nested = parse_sitemap(response.content)

    for page in pages:
        if page not in seen:
            seen.add(page)
            urls.append(page)

    if nested and depth >= MAX_SITEMAP_DEPTH:
        LOGGER.warning("Ignoring %d nested sitemap(s) below %s", len(nested), sitemap_url)
        return
    for child in nested:
        await _collect(http, child, urls, seen, depth=depth + 1)
