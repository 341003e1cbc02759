"""Line normalization for the patch engine.

Content is split into logical lines regardless of its line-ending convention
(``\\r\\n``, ``\\n``, ``\\r`` or a mix of them) and joined back with ``\\n``.
The original line-ending style is not preserved.
"""

import re
from typing import List

_TERMINATOR = re.compile(r"\r\n|\n|\r")


def split_lines(text: str) -> List[str]:
    """Split text into lines without their terminators.

    A final terminator does not produce a trailing empty line, but interior
    empty lines are kept.

    Args:
        text: Content to split

    Returns:
        List of lines; empty for empty input

    Example:
        >>> split_lines("a\\r\\n\\nb\\n")
        ['a', '', 'b']
    """
    if not text:
        return []

    lines = _TERMINATOR.split(text)
    if lines[-1] == "":
        lines.pop()
    return lines


def join_lines(lines: List[str]) -> str:
    return "\n".join(lines)
