"""Data structures representing harvested pages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

DEFAULT_TITLE = "Untitled"
DEFAULT_URL = "No URL available"
DEFAULT_TEXT = "No content available"


@dataclass(slots=True)
class PageRecord:
    """One harvested page: the persisted unit of crawl output."""

    title: str = DEFAULT_TITLE
    url: str = DEFAULT_URL
    text: str = DEFAULT_TEXT

    @classmethod
    def build(cls, title: Any, url: Any, text: Any) -> PageRecord:
        """Create a record, substituting defaults for absent or empty values."""
        return cls(
            title=str(title) if title else DEFAULT_TITLE,
            url=str(url) if url else DEFAULT_URL,
            text=str(text) if text else DEFAULT_TEXT,
        )

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "url": self.url, "text": self.text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PageRecord:
        return cls.build(data.get("title"), data.get("url"), data.get("text"))
