"""Exceptions raised by the patch engine.

These are internal signals: the engine's helpers raise them, and
:func:`chunk_patch_mcp.engine.processor.process` converts every one of them
into an entry of ``ProcessResult.errors``. Each class carries the string
value of its matching ``ErrorType``.
"""


class PatchEngineError(Exception):
    """Base class for chunk-level failures."""

    error_type = "invalid_request"


class ContextNotFoundError(PatchEngineError):
    """A chunk's anchor does not appear in the remaining content."""

    error_type = "context_not_found"

    def __init__(self, anchor: str, message: str | None = None) -> None:
        self.anchor = anchor
        super().__init__(message or f"context not found: {anchor}")


class WindowMismatchError(ContextNotFoundError):
    """The anchor was found but no window matches the chunk's context lines."""

    error_type = "window_mismatch"

    def __init__(self, anchor: str, needle: str, search_from: int) -> None:
        self.needle = needle
        self.search_from = search_from
        super().__init__(
            anchor,
            f"context not found: {anchor} "
            f"(no lines from line {search_from + 1} onward match '{needle}')",
        )


class AmbiguousEmptyMatchError(PatchEngineError):
    """An insert-only chunk lands inside a region rewritten by an earlier chunk."""

    error_type = "ambiguous_empty_match"

    def __init__(self, anchor: str, position: int) -> None:
        self.anchor = anchor
        self.position = position
        super().__init__(
            f"ambiguous insertion point for {anchor}: line {position + 1} "
            "lies inside a region already changed by an earlier chunk"
        )


class MalformedChangeLineError(PatchEngineError, ValueError):
    """A change line does not start with ' ', '-' or '+'."""

    error_type = "malformed_change_line"

    def __init__(self, raw: str) -> None:
        self.raw = raw
        super().__init__(
            f"malformed change line {raw!r}: expected a ' ', '-' or '+' prefix"
        )
