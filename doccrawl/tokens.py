"""Token counting for output budgeting."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

import tiktoken

DEFAULT_ENCODING = "cl100k_base"


@lru_cache(maxsize=4)
def _get_encoder(encoding_name: str = DEFAULT_ENCODING) -> tiktoken.Encoding:
    return tiktoken.get_encoding(encoding_name)


def count_tokens(text: str, encoding_name: str = DEFAULT_ENCODING) -> int:
    """Return the number of tokens ``text`` encodes to."""
    if not text:
        return 0
    return len(_get_encoder(encoding_name).encode(text, disallowed_special=()))


def within_token_limit(
    text: str, limit: int, encoding_name: str = DEFAULT_ENCODING
) -> Optional[int]:
    """Return the token count of ``text`` if it fits in ``limit``, else None."""
    tokens = count_tokens(text, encoding_name)
    if tokens > limit:
        return None
    return tokens
