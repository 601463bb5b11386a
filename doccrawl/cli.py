"""Command-line interface: crawl a site, then write the combined output."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Configuration directory for global CLI usage
CONFIG_DIR = Path.home() / ".config" / "doccrawl"
CONFIG_ENV_FILE = CONFIG_DIR / ".env"


def _load_env() -> None:
    """Load .env from the working directory, else from the user config dir."""
    local_env = Path.cwd() / ".env"
    if local_env.is_file():
        load_dotenv(local_env)
        return

    if CONFIG_ENV_FILE.is_file():
        load_dotenv(CONFIG_ENV_FILE)


_load_env()

from . import crawl_async, crawl_disabled, write  # noqa: E402
from .config import (  # noqa: E402
    ConfigError,
    canonical_options,
    config_from_mapping,
    read_config_file,
)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _parse_cookie(raw: str) -> Dict[str, str]:
    name, sep, value = raw.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"cookie must look like NAME=VALUE, got {raw!r}")
    return {"name": name.strip(), "value": value}


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="doccrawl",
        description=(
            "Crawl a site, harvest its document API responses and write them "
            "to size- and token-bounded JSON files."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  # Crawl using a config file
  doccrawl --config doccrawl.json

  # Everything on the command line
  doccrawl --url https://docs.example.com --match 'https://docs.example.com/**' \\
      --max-pages 200 --output-file-name docs.json --max-tokens 2000000

  # Crawl from a sitemap, skipping images and fonts
  doccrawl --url https://docs.example.com/sitemap.xml \\
      --match 'https://docs.example.com/**' --resource-exclusions png jpg woff2

  # Re-write output from the records of the previous crawl
  doccrawl --config doccrawl.json --no-crawl --max-file-size 5
""",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default=os.getenv("DOCCRAWL_CONFIG"),
        help="JSON config file (default: $DOCCRAWL_CONFIG)",
    )
    parser.add_argument("--url", type=str, default=None, help="Seed URL or sitemap URL")
    parser.add_argument(
        "--match",
        nargs="+",
        default=None,
        help="Glob pattern(s) a link must match to be crawled",
    )
    parser.add_argument(
        "--exclude",
        nargs="+",
        default=None,
        help="Glob pattern(s) of links to skip",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        dest="max_pages_to_crawl",
        help="Maximum pages to visit (required unless set in the config file)",
    )
    parser.add_argument(
        "--output-file-name",
        type=str,
        default=None,
        help=(
            "Output file name; batches are written as <stem>-<n>.json "
            "(required unless set in the config file)"
        ),
    )
    parser.add_argument(
        "--max-file-size",
        type=float,
        default=None,
        help="Maximum output file size in MB (default: unbounded)",
    )
    parser.add_argument(
        "--max-tokens",
        type=int,
        default=None,
        help="Maximum tokens per output file (default: unbounded)",
    )
    parser.add_argument(
        "--cookie",
        type=_parse_cookie,
        nargs="+",
        default=None,
        metavar="NAME=VALUE",
        help="Cookie(s) to send with every page request",
    )
    parser.add_argument(
        "--resource-exclusions",
        nargs="+",
        default=None,
        metavar="EXT",
        help="File extensions whose requests are aborted (e.g. png jpg css)",
    )
    parser.add_argument(
        "--api-pattern",
        type=str,
        default=None,
        help="Substring identifying the document API response (default: documents.info)",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Pages visited in parallel (default: 3)",
    )
    parser.add_argument(
        "--headful",
        action="store_true",
        help="Show the browser window",
    )
    parser.add_argument(
        "--no-crawl",
        action="store_true",
        help="Skip crawling and only write output from stored records",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


_OVERRIDES = (
    "url",
    "match",
    "exclude",
    "max_pages_to_crawl",
    "output_file_name",
    "max_file_size",
    "max_tokens",
    "cookie",
    "resource_exclusions",
    "api_pattern",
    "concurrency",
)


def _build_options(args: argparse.Namespace) -> Dict[str, Any]:
    """Merge config file options with command-line overrides."""
    options: Dict[str, Any] = (
        canonical_options(read_config_file(args.config)) if args.config else {}
    )
    for name in _OVERRIDES:
        value = getattr(args, name, None)
        if value is not None:
            options[name] = value
    if getattr(args, "headful", False):
        options["headless"] = False
    return options


async def _run_async(args: argparse.Namespace) -> int:
    config = config_from_mapping(_build_options(args))

    if args.no_crawl or crawl_disabled():
        logging.info("Skipping crawl; writing from stored records")
    else:
        result = await crawl_async(config)
        if result is not None and result.errors:
            for error in result.errors:
                logging.warning("Failed: %s - %s", error["url"], error["error"])

    output = write(config)
    if output is None:
        logging.warning("No records found; nothing written")
        return 1
    logging.info("Last output file: %s", output)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for doccrawl."""
    args = _parse_args(argv)
    _setup_logging(args.verbose)

    try:
        return asyncio.run(_run_async(args))
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return 130
    except (ConfigError, FileNotFoundError) as exc:
        logging.error("Configuration error: %s", exc)
        return 1
    except Exception as exc:
        logging.error("Error: %s", exc)
        if args.verbose:
            logging.exception("Full traceback:")
        return 1


if __name__ == "__main__":
    sys.exit(main())
