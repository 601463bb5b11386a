"""MCP server exposing doccrawl runs as tools.

Provides tools for:
- Crawling a site and writing its bounded JSON output in one call
- Re-writing the output from records stored by a previous crawl

Supports both STDIO and HTTP transports.

Usage:
    # STDIO (for desktop MCP clients)
    python -m doccrawl.mcp_server

    # HTTP (for remote access)
    python -m doccrawl.mcp_server --transport http --port 8000

    # Or via FastMCP CLI
    fastmcp run doccrawl/mcp_server.py:mcp --transport http --port 8000
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP

from .config import DEFAULT_API_PATTERN, ConfigError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
LOGGER = logging.getLogger(__name__)

load_dotenv()

mcp = FastMCP(
    name="Doc Crawler",
    instructions="""
    A crawler that harvests a site's document API responses and writes them
    to JSON files sized for LLM context windows.

    Tools:
       - crawl_and_write: Crawl a site from a seed URL or sitemap, then write
         <name>-1.json, <name>-2.json, ... bounded by MB and token limits
       - write_output: Re-write the output files from the records of the
         previous crawl, for example with different limits

    Both tools return a JSON summary listing the files written.
    """,
)


def _format_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _output_files(last_file: Optional[Path], stem: str) -> List[str]:
    """All files of the run, ``<stem>-1.json`` up to ``last_file``."""
    if last_file is None:
        return []
    count = int(last_file.stem.rsplit("-", 1)[1])
    return [f"{stem}-{index}.json" for index in range(1, count + 1)]


def _error(message: str) -> str:
    return json.dumps({"status": "failed", "error": message}, indent=2)


def _build_options(**options: Any) -> Dict[str, Any]:
    return {key: value for key, value in options.items() if value is not None}


# =============================================================================
# TOOLS
# =============================================================================


@mcp.tool
async def crawl_and_write(
    url: str,
    match: List[str],
    max_pages_to_crawl: int,
    output_file_name: str,
    exclude: Optional[List[str]] = None,
    max_file_size: Optional[float] = None,
    max_tokens: Optional[int] = None,
    resource_exclusions: Optional[List[str]] = None,
    api_pattern: str = DEFAULT_API_PATTERN,
):
    """
    Crawl a website and write its harvested documents to JSON files.

    Args:
        url: Seed URL, or a sitemap URL whose pages are all crawled
        match: Glob pattern(s) a discovered link must match to be followed
        max_pages_to_crawl: Maximum pages to visit
        output_file_name: Output name; files are written as <stem>-<n>.json
        exclude: Glob pattern(s) of links to skip
        max_file_size: Maximum size of one output file in MB
        max_tokens: Maximum tokens in one output file
        resource_exclusions: File extensions whose requests are aborted
        api_pattern: Substring identifying document API responses

    Returns:
        JSON summary with crawl stats, errors and the files written.

    Examples:
        crawl_and_write(url="https://docs.example.com",
                        match=["https://docs.example.com/**"],
                        max_pages_to_crawl=50,
                        output_file_name="docs.json")

        crawl_and_write(url="https://docs.example.com/sitemap.xml",
                        match=["https://docs.example.com/**"],
                        max_pages_to_crawl=500,
                        output_file_name="docs.json",
                        max_tokens=2000000)
    """
    from . import crawl_async, write
    from .config import config_from_mapping

    try:
        config = config_from_mapping(
            _build_options(
                url=url,
                match=match,
                exclude=exclude,
                max_pages_to_crawl=max_pages_to_crawl,
                output_file_name=output_file_name,
                max_file_size=max_file_size,
                max_tokens=max_tokens,
                resource_exclusions=resource_exclusions,
                api_pattern=api_pattern,
            )
        )
    except ConfigError as exc:
        return _error(f"Invalid configuration: {exc}")

    LOGGER.info("Crawling %s (max %d pages)...", config.url, config.max_pages_to_crawl)
    try:
        result = await crawl_async(config)
        last_file = write(config)
    except Exception as exc:
        LOGGER.error("Crawl of %s failed: %s", config.url, exc)
        return _error(str(exc))

    summary: Dict[str, Any] = {
        "status": "success",
        "crawled_at": _format_timestamp(),
        "files": _output_files(last_file, config.output_stem),
    }
    if result is None:
        summary["crawl"] = "skipped (NO_CRAWL)"
    else:
        summary["stats"] = result.stats
        summary["errors"] = result.errors
    return json.dumps(summary, indent=2, ensure_ascii=False)


@mcp.tool
async def write_output(
    output_file_name: str,
    max_file_size: Optional[float] = None,
    max_tokens: Optional[int] = None,
):
    """
    Write output files from the records stored by the previous crawl.

    Args:
        output_file_name: Output name; files are written as <stem>-<n>.json
        max_file_size: Maximum size of one output file in MB
        max_tokens: Maximum tokens in one output file

    Returns:
        JSON summary listing the files written.
    """
    from . import write
    from .config import OutputConfig

    try:
        config = OutputConfig(
            output_file_name=output_file_name,
            max_file_size=max_file_size,
            max_tokens=max_tokens,
        )
    except ConfigError as exc:
        return _error(f"Invalid configuration: {exc}")

    try:
        last_file = write(config)
    except (OSError, ValueError) as exc:
        LOGGER.error("Writing %s failed: %s", config.output_file_name, exc)
        return _error(str(exc))

    files = _output_files(last_file, config.output_stem)
    return json.dumps(
        {"status": "success" if files else "empty", "files": files},
        indent=2,
    )


def main():
    """CLI entry point for running the MCP server."""
    parser = argparse.ArgumentParser(
        description="Run the doccrawl MCP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # STDIO transport (default)
    python -m doccrawl.mcp_server

    # HTTP transport (for remote access)
    python -m doccrawl.mcp_server --transport http --port 8000
""",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to for HTTP transport (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to for HTTP transport (default: 8000)",
    )

    args = parser.parse_args()

    if args.transport == "http":
        LOGGER.info("Starting MCP server on http://%s:%d/mcp", args.host, args.port)
        mcp.run(transport="http", host=args.host, port=args.port)
    else:
        LOGGER.info("Starting MCP server with STDIO transport")
        mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
