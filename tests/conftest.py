"""Shared fixtures for doccrawl tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from doccrawl.config import CrawlConfig
from doccrawl.storage import RecordStore


@pytest.fixture(autouse=True)
def _no_crawl_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # A developer's shell must not turn crawls into write-only runs.
    monkeypatch.delenv("NO_CRAWL", raising=False)
    monkeypatch.delenv("DOCCRAWL_CONFIG", raising=False)


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    return tmp_path / "storage" / "datasets" / "default"


@pytest.fixture
def store(storage_dir: Path) -> RecordStore:
    return RecordStore(storage_dir)


@pytest.fixture
def make_config(tmp_path: Path, storage_dir: Path):
    """Build a CrawlConfig whose files all live under ``tmp_path``."""

    def _make(**overrides: Any) -> CrawlConfig:
        options: Dict[str, Any] = {
            "url": "https://docs.example.com",
            "match": "https://docs.example.com/**",
            "max_pages_to_crawl": 50,
            "output_file_name": str(tmp_path / "out" / "output.json"),
            "storage_dir": storage_dir,
        }
        options.update(overrides)
        return CrawlConfig(**options)

    return _make


def read_output(path: Path) -> List[Dict[str, Any]]:
    return json.loads(path.read_text(encoding="utf-8"))


def output_files(config: CrawlConfig) -> List[Path]:
    """Output files of ``config`` in numeric order."""
    stem = Path(config.output_stem)
    found = list(stem.parent.glob(f"{stem.name}-*.json"))
    return sorted(found, key=lambda path: int(path.stem.rsplit("-", 1)[1]))


def record(index: int, text: Optional[str] = None) -> Dict[str, str]:
    return {
        "title": f"Page {index}",
        "url": f"https://docs.example.com/p{index}",
        "text": text if text is not None else f"Body of page {index}",
    }
