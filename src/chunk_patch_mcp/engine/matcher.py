"""Window matching - align a chunk's change lines with the current content.

Matching and emission are two separate projections of the same change lines:

    * comparison uses the Context/Remove texts, trimmed on both sides;
    * emission takes Context lines from the content (keeping the file's own
      indentation) and Add lines from the chunk, verbatim.

Ties are broken by position: the lowest matching start index wins.
"""

from typing import List, Sequence

from ..errors import WindowMismatchError
from ..models import ChangeLine, ChangeOperation, Edit


def expected_before(change_lines: Sequence[ChangeLine]) -> List[str]:
    return [line.text for line in change_lines if line.is_before]


def expected_after(change_lines: Sequence[ChangeLine]) -> List[str]:
    return [line.text for line in change_lines if line.is_after]


def window_matches(lines: Sequence[str], start: int, before: Sequence[str]) -> bool:
    """Check whether ``lines[start:start + len(before)]`` equals ``before`` after trimming.

    Only leading and trailing whitespace is ignored; internal whitespace must
    match exactly. A window running past the end of ``lines`` never matches.
    """
    if start < 0 or start + len(before) > len(lines):
        return False
    return all(
        lines[start + offset].strip() == expected.strip()
        for offset, expected in enumerate(before)
    )


def find_window(lines: Sequence[str], before: Sequence[str], search_from: int) -> int:
    """Return the first start index >= ``search_from`` whose window matches, or -1."""
    last_start = len(lines) - len(before)
    for start in range(max(search_from, 0), last_start + 1):
        if window_matches(lines, start, before):
            return start
    return -1


def build_replacement(
    change_lines: Sequence[ChangeLine], lines: Sequence[str], start: int
) -> List[str]:
    """Build the lines that replace the matched window starting at ``start``."""
    replacement: List[str] = []
    position = start
    for change in change_lines:
        if change.operation is ChangeOperation.CONTEXT:
            replacement.append(lines[position])
            position += 1
        elif change.operation is ChangeOperation.REMOVE:
            position += 1
        else:
            replacement.append(change.text)
    return replacement


def build_edit(
    change_lines: Sequence[ChangeLine],
    lines: Sequence[str],
    search_from: int,
    anchor: str = "",
) -> Edit:
    """Locate the window for a chunk and build the edit replacing it.

    A chunk without Context or Remove lines is a pure insertion at
    ``search_from``.

    Args:
        change_lines: The chunk's ordered change lines
        lines: Current content lines
        search_from: First candidate start index (inclusive)
        anchor: Anchor text, used only in the error message

    Returns:
        Edit replacing ``lines[start:end]``

    Raises:
        WindowMismatchError: If no window at or after ``search_from`` matches
    """
    before = expected_before(change_lines)

    if not before:
        start = min(max(search_from, 0), len(lines))
        return Edit(
            start=start,
            end=start,
            replacement=[change.text for change in change_lines],
        )

    start = find_window(lines, before, search_from)
    if start < 0:
        needle = next((text.strip() for text in before if text.strip()), before[0])
        raise WindowMismatchError(anchor, needle, max(search_from, 0))

    return Edit(
        start=start,
        end=start + len(before),
        replacement=build_replacement(change_lines, lines, start),
    )
