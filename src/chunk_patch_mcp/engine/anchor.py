"""Anchor lookup - find the line a chunk's anchor points at.

Anchors are short human-chosen snippets (a class or method name, usually
written as ``"@@ class UserService"``). The returned index is only a hint:
the window matcher decides where the edit really starts.
"""

from typing import List, Optional

DEFAULT_PREFIX = "@@ "


def strip_decorator(anchor: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Remove the decorator prefix (if present) and surrounding whitespace.

    Args:
        anchor: Anchor as submitted, with or without the prefix
        prefix: Decorator to strip; an empty prefix strips nothing

    Returns:
        The needle searched for in the content
    """
    if prefix and anchor.startswith(prefix):
        anchor = anchor[len(prefix) :]
    return anchor.strip()


def find_anchor_lines(
    anchor: str, lines: List[str], search_from: int = 0, prefix: str = DEFAULT_PREFIX
) -> List[int]:
    """Return every index from ``search_from`` whose trimmed line contains the needle."""
    needle = strip_decorator(anchor, prefix)
    return [
        index
        for index in range(max(search_from, 0), len(lines))
        if needle in lines[index].strip()
    ]


def locate_anchor(
    anchor: str, lines: List[str], search_from: int = 0, prefix: str = DEFAULT_PREFIX
) -> Optional[int]:
    """Find the first line at or after ``search_from`` that contains the anchor.

    Each line is trimmed before the substring test, so the needle may be the
    whole line or any part of it.

    Args:
        anchor: Anchor text, optionally prefixed with ``prefix``
        lines: Current content lines
        search_from: First index to consider (inclusive)
        prefix: Decorator stripped from the anchor

    Returns:
        Index of the first matching line, or None when no line matches

    Example:
        >>> locate_anchor("@@ class User", ["<?php", "class User", "{"])
        1
    """
    needle = strip_decorator(anchor, prefix)
    for index in range(max(search_from, 0), len(lines)):
        if needle in lines[index].strip():
            return index
    return None
