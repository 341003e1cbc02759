"""Data models for the Chunk Patch MCP Server.

This module defines Pydantic models used throughout the patch engine and the
MCP tool for data validation, serialization, and type safety.
"""

from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .errors import MalformedChangeLineError


class ErrorType(str, Enum):
    """Standard error types for chunk patch operations.

    Engine Errors (4):
        CONTEXT_NOT_FOUND: Anchor text does not appear in the content
        WINDOW_MISMATCH: Anchor found, but no window matches the chunk context
        AMBIGUOUS_EMPTY_MATCH: Insert-only chunk lands inside an edited region
        MALFORMED_CHANGE_LINE: Change line lacks a ' ', '-' or '+' prefix

    Tool Errors (10):
        INVALID_REQUEST: Request is empty or cannot be parsed
        FILE_NOT_FOUND: File doesn't exist
        NOT_A_FILE: Target is a directory or special file
        PERMISSION_DENIED: Cannot write file, or path escapes the root
        ENCODING_ERROR: File is not UTF-8
        IO_ERROR: General I/O error
        SYMLINK_ERROR: Target is a symlink (security policy)
        BINARY_FILE: Target is a binary file (not supported)
        DISK_SPACE_ERROR: Insufficient disk space
        RESOURCE_LIMIT: File too large
    """

    # Engine errors
    CONTEXT_NOT_FOUND = "context_not_found"
    WINDOW_MISMATCH = "window_mismatch"
    AMBIGUOUS_EMPTY_MATCH = "ambiguous_empty_match"
    MALFORMED_CHANGE_LINE = "malformed_change_line"

    # Tool errors
    INVALID_REQUEST = "invalid_request"
    FILE_NOT_FOUND = "file_not_found"
    NOT_A_FILE = "not_a_file"
    PERMISSION_DENIED = "permission_denied"
    ENCODING_ERROR = "encoding_error"
    IO_ERROR = "io_error"
    SYMLINK_ERROR = "symlink_error"
    BINARY_FILE = "binary_file"
    DISK_SPACE_ERROR = "disk_space_error"
    RESOURCE_LIMIT = "resource_limit"


class ChangeOperation(str, Enum):
    """Operation of a single change line, derived from its one-character prefix."""

    CONTEXT = "context"
    REMOVE = "remove"
    ADD = "add"


PREFIXES: Dict[str, ChangeOperation] = {
    " ": ChangeOperation.CONTEXT,
    "-": ChangeOperation.REMOVE,
    "+": ChangeOperation.ADD,
}
OPERATION_PREFIXES: Dict[ChangeOperation, str] = {op: prefix for prefix, op in PREFIXES.items()}


class ChangeLine(BaseModel):
    """One line of a chunk: an unchanged, removed or added line.

    Attributes:
        operation: What happens to the line
        text: Line content without its prefix, internal whitespace verbatim
    """

    model_config = ConfigDict(frozen=True)

    operation: ChangeOperation
    text: str = ""

    @classmethod
    def parse(cls, raw: str) -> "ChangeLine":
        """Build a ChangeLine from its prefixed form (``" x"``, ``"-x"``, ``"+x"``).

        Raises:
            MalformedChangeLineError: If the line does not start with a known prefix
        """
        operation = PREFIXES.get(raw[:1])
        if operation is None:
            raise MalformedChangeLineError(raw)
        return cls(operation=operation, text=raw[1:])

    def render(self) -> str:
        return OPERATION_PREFIXES[self.operation] + self.text

    @property
    def is_before(self) -> bool:
        """True for lines that must already exist at the edit site."""
        return self.operation is not ChangeOperation.ADD

    @property
    def is_after(self) -> bool:
        """True for lines that must exist once the edit is done."""
        return self.operation is not ChangeOperation.REMOVE


class Chunk(BaseModel):
    """One localized edit: an anchor plus its ordered change lines.

    Accepts the wire names used by the MCP tool (``context_marker`` and
    ``changes``) as well as the field names. Raw strings in ``changes`` are
    parsed with :meth:`ChangeLine.parse`.

    Attributes:
        anchor: Locating text, conventionally prefixed with ``"@@ "``
        change_lines: Interleaved context, removed and added lines
    """

    model_config = ConfigDict(populate_by_name=True)

    anchor: str = Field(..., alias="context_marker", description="Anchor text")
    change_lines: List[ChangeLine] = Field(
        default_factory=list, alias="changes", description="Ordered change lines"
    )

    @field_validator("change_lines", mode="before")
    @classmethod
    def _parse_raw_lines(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [ChangeLine.parse(item) if isinstance(item, str) else item for item in value]
        return value

    def expected_before(self) -> List[str]:
        """Texts of the Context and Remove lines, in order."""
        return [line.text for line in self.change_lines if line.is_before]

    def expected_after(self) -> List[str]:
        """Texts of the Context and Add lines, in order."""
        return [line.text for line in self.change_lines if line.is_after]

    @property
    def lines_added(self) -> int:
        return sum(1 for line in self.change_lines if line.operation is ChangeOperation.ADD)

    @property
    def lines_removed(self) -> int:
        return sum(1 for line in self.change_lines if line.operation is ChangeOperation.REMOVE)

    @property
    def has_changes(self) -> bool:
        return self.lines_added > 0 or self.lines_removed > 0


class PatchRequest(BaseModel):
    """A set of chunks to apply, in order, to one target.

    Attributes:
        target_id: Opaque identifier of the patched content (a file path for the tool)
        chunks: Chunks applied strictly in list order; may be empty
    """

    model_config = ConfigDict(populate_by_name=True)

    target_id: str = Field("", alias="path", description="Identifier of the patched content")
    chunks: List[Chunk] = Field(default_factory=list, description="Ordered chunks")


class Edit(BaseModel):
    """Replacement of ``lines[start:end]`` by ``replacement``."""

    start: int = Field(..., ge=0, description="First replaced line (0-based)")
    end: int = Field(..., ge=0, description="Line after the last replaced line")
    replacement: List[str] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def delta(self) -> int:
        return len(self.replacement) - (self.end - self.start)


class AppliedChange(BaseModel):
    """Record of one chunk that was located and applied.

    The line range is 0-based and half-open, expressed in the content as it
    was when the chunk was applied (earlier chunks already spliced in).

    Attributes:
        anchor: The chunk's anchor text, as submitted
        start: First replaced line
        end: Line after the last replaced line
        delta: Signed change in line count
        lines_added: Number of Add lines in the chunk
        lines_removed: Number of Remove lines in the chunk
    """

    anchor: str
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)
    delta: int
    lines_added: int = Field(0, ge=0)
    lines_removed: int = Field(0, ge=0)


class EngineConfig(BaseModel):
    """Tunables of the patch engine.

    Attributes:
        anchor_prefix: Decorator stripped from anchors before use
        anchor_in_window: Let the matched window start before the anchor line
            as long as the window still covers it. Off by default: the window
            search starts at the anchor line.
        warn_on_ambiguous_anchor: Emit a warning when the anchor matches
            more than one line
    """

    anchor_prefix: str = Field("@@ ", description="Decorator stripped from anchors")
    anchor_in_window: bool = Field(False, description="Allow windows that cover the anchor line")
    warn_on_ambiguous_anchor: bool = Field(True, description="Warn on repeated anchors")


class ProcessResult(BaseModel):
    """Outcome of processing one PatchRequest.

    ``modified_content`` equals ``original_content`` whenever ``success`` is
    False; no partial edits are ever returned.
    """

    original_content: str
    modified_content: str
    success: bool
    applied_changes: List[AppliedChange] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    error_type: ErrorType | None = Field(None, description="Kind of the first failure")

    def has_changes(self) -> bool:
        return self.success and self.modified_content != self.original_content

    def summary(self) -> Dict[str, int]:
        """Aggregate line statistics over every applied chunk."""
        return {
            "chunks_applied": len(self.applied_changes),
            "lines_added": sum(c.lines_added for c in self.applied_changes),
            "lines_removed": sum(c.lines_removed for c in self.applied_changes),
            "net_line_delta": sum(c.delta for c in self.applied_changes),
        }

    def detailed_report(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error_type": self.error_type.value if self.error_type else None,
            "applied_changes": [c.model_dump() for c in self.applied_changes],
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "summary": self.summary(),
        }
