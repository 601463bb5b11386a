"""Flatten an API response tree into deduplicated text fragments."""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Optional, Set

FRAGMENT_SEPARATOR = "\n\n"
LINK_LABEL = "Link"
IMAGE_PREFIX = "Image"


def extract_fragments(node: Any, seen: Optional[Set[str]] = None) -> List[str]:
    """Walk ``node`` depth-first and collect text, link and image fragments.

    A mapping contributes, in this order, its trimmed ``text``, a
    ``"<label>: <href>"`` line for ``href`` and an ``"Image: <src>"`` line for
    ``src``. Each value is emitted at most once per pass. Children follow
    their parent: list elements in order, mapping values in insertion order.

    Composite nodes whose serialization has already been visited are skipped
    together with their whole subtree. Only byte-identical repeats are
    caught; equal structures with a different key order are walked again.

    Args:
        node: Any JSON value. Scalars and ``None`` yield no fragments.
        seen: Optional set shared across calls; a fresh one is used when
            omitted.

    Returns:
        The fragments in discovery order.
    """
    if seen is None:
        seen = set()

    fragments: List[str] = []
    stack: List[Any] = [node]
    while stack:
        current = stack.pop()
        if not isinstance(current, (dict, list)):
            continue

        key = _node_key(current)
        if key in seen:
            continue
        seen.add(key)

        if isinstance(current, dict):
            fragments.extend(_own_fragments(current, seen))
            children: Iterable[Any] = current.values()
        else:
            children = current

        # Reversed so the first child is popped (and walked) first.
        stack.extend(reversed(list(children)))

    return fragments


def join_fragments(fragments: Iterable[str]) -> str:
    """Join fragments with a blank line between them."""
    return FRAGMENT_SEPARATOR.join(fragments)


def _own_fragments(node: dict, seen: Set[str]) -> List[str]:
    found: List[str] = []

    text = node.get("text")
    if isinstance(text, str):
        trimmed = text.strip()
        if trimmed and trimmed not in seen:
            found.append(trimmed)
            seen.add(trimmed)

    href = node.get("href")
    if isinstance(href, str) and href and href not in seen:
        found.append(f"{_link_label(text)}: {href}")
        seen.add(href)

    src = node.get("src")
    if isinstance(src, str) and src and src not in seen:
        found.append(f"{IMAGE_PREFIX}: {src}")
        seen.add(src)

    return found


def _link_label(text: Any) -> str:
    """Label of a link line: the node's scalar ``text`` as written, else ``Link``."""
    if not text or isinstance(text, (dict, list)):
        return LINK_LABEL
    if isinstance(text, str):
        return text
    # JSON spelling, so true stays "true" and 42 stays "42".
    return json.dumps(text, default=str)


def _node_key(node: Any) -> str:
    try:
        return json.dumps(node, separators=(",", ":"), ensure_ascii=False, default=repr)
    except (ValueError, TypeError, RecursionError):
        # Cyclic or non-JSON containers: fall back to identity so the walk ends.
        return f"<node {id(node):x}>"
