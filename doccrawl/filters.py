"""URL glob matching for link filtering.

Globs follow minimatch rules applied to the whole URL:

- ``*`` matches any run of characters except ``/``
- ``**`` matches across ``/``; ``**/`` may also match nothing
- ``?`` matches one character except ``/``
- ``{a,b}`` matches either alternative, ``[abc]`` / ``[!abc]`` a character class

``GlobFilter`` plugs the include/exclude globs into a crawl4ai
``FilterChain``.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Pattern, Sequence

from crawl4ai.deep_crawling.filters import URLFilter


def _translate(pattern: str) -> str:
    parts = []
    i, n = 0, len(pattern)
    while i < n:
        char = pattern[i]
        if char == "*":
            if pattern.startswith("**/", i):
                parts.append("(?:.*/)?")
                i += 3
                continue
            if pattern.startswith("**", i):
                parts.append(".*")
                i += 2
                continue
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        elif char == "{":
            close = pattern.find("}", i)
            if close == -1:
                parts.append(re.escape(char))
            else:
                options = pattern[i + 1 : close].split(",")
                parts.append("(?:" + "|".join(_translate(option) for option in options) + ")")
                i = close + 1
                continue
        elif char == "[":
            close = pattern.find("]", i + 1)
            if close == -1:
                parts.append(re.escape(char))
            else:
                body = pattern[i + 1 : close]
                if body.startswith("!"):
                    body = "^" + body[1:]
                parts.append("[" + body.replace("\\", "\\\\") + "]")
                i = close + 1
                continue
        else:
            parts.append(re.escape(char))
        i += 1
    return "".join(parts)


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> Pattern[str]:
    """Compile a URL glob into a regex that must match the whole URL."""
    return re.compile(_translate(pattern), re.DOTALL)


def glob_match(url: str, pattern: str) -> bool:
    return glob_to_regex(pattern).fullmatch(url) is not None


def url_matches(url: str, include: Sequence[str], exclude: Sequence[str] = ()) -> bool:
    """Return True if ``url`` matches an include glob and no exclude glob."""
    if not any(glob_match(url, pattern) for pattern in include):
        return False
    return not any(glob_match(url, pattern) for pattern in exclude)


class GlobFilter(URLFilter):
    """crawl4ai filter accepting URLs that pass ``url_matches``."""

    __slots__ = ("include", "exclude")

    def __init__(self, include: Sequence[str], exclude: Sequence[str] = ()) -> None:
        super().__init__(name="GlobFilter")
        self.include = tuple(include)
        self.exclude = tuple(exclude)

    def apply(self, url: str) -> bool:
        passed = url_matches(url, self.include, self.exclude)
        self._update_stats(passed)
        return passed
