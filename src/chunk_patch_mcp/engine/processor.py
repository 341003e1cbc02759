"""Patch orchestration - apply a request's chunks in order, all or nothing.

The content is split once into a working line buffer. Chunks are folded over
that buffer in submission order, so chunk N is located in the content as
already changed by chunks 1..N-1. The first chunk that cannot be located or
matched stops the request, and the original content is returned untouched.

Engine failures never escape as exceptions; they are reported through
``ProcessResult.errors`` and ``ProcessResult.success``.
"""

import logging
from typing import List, Optional, Tuple

from ..errors import AmbiguousEmptyMatchError, ContextNotFoundError, PatchEngineError
from ..models import (
    AppliedChange,
    Chunk,
    EngineConfig,
    ErrorType,
    PatchRequest,
    ProcessResult,
)
from .anchor import find_anchor_lines, strip_decorator
from .lines import join_lines, split_lines
from .matcher import build_edit

logger = logging.getLogger(__name__)

# Half-open line ranges already rewritten by earlier chunks, in buffer coordinates
Regions = List[Tuple[int, int]]


class ChangeChunkProcessor:
    """Applies PatchRequests to text content.

    Instances hold no state between calls and can be shared freely.
    """

    def process_changes(
        self,
        request: PatchRequest,
        config: Optional[EngineConfig] = None,
        content: str = "",
    ) -> ProcessResult:
        """Apply every chunk of ``request`` to ``content``.

        Args:
            request: Chunks to apply, in order
            config: Engine settings (defaults apply when None)
            content: Content to patch

        Returns:
            ProcessResult; on failure ``modified_content == original_content``
        """
        config = config or EngineConfig()
        lines = split_lines(content)
        regions: Regions = []
        applied: List[AppliedChange] = []
        warnings: List[str] = []

        logger.info(
            f"Processing {len(request.chunks)} chunk(s) for {request.target_id or '<content>'}"
        )

        for number, chunk in enumerate(request.chunks, start=1):
            try:
                lines, regions, change = self._apply_chunk(chunk, lines, regions, config, warnings)
            except PatchEngineError as e:
                logger.warning(f"Chunk {number}/{len(request.chunks)} failed: {e}")
                return ProcessResult(
                    original_content=content,
                    modified_content=content,
                    success=False,
                    applied_changes=applied,
                    errors=[str(e)],
                    warnings=warnings,
                    error_type=ErrorType(e.error_type),
                )

            applied.append(change)
            logger.debug(
                f"Chunk {number}/{len(request.chunks)} applied at lines "
                f"{change.start}-{change.end} (delta {change.delta:+d})"
            )

        return ProcessResult(
            original_content=content,
            modified_content=join_lines(lines) if request.chunks else content,
            success=True,
            applied_changes=applied,
            warnings=warnings,
        )

    def _apply_chunk(
        self,
        chunk: Chunk,
        lines: List[str],
        regions: Regions,
        config: EngineConfig,
        warnings: List[str],
    ) -> Tuple[List[str], Regions, AppliedChange]:
        """Locate, match and splice one chunk.

        Returns:
            The new line buffer, the updated edited regions and the change record

        Raises:
            PatchEngineError: If the chunk cannot be located or matched
        """
        matches = find_anchor_lines(chunk.anchor, lines, 0, config.anchor_prefix)
        if not matches:
            raise ContextNotFoundError(chunk.anchor)

        anchor_index = matches[0]
        if len(matches) > 1 and config.warn_on_ambiguous_anchor:
            warnings.append(
                f"Anchor '{strip_decorator(chunk.anchor, config.anchor_prefix)}' matches "
                f"{len(matches)} lines; using the first match at line {anchor_index + 1}"
            )
        if not chunk.has_changes:
            warnings.append(f"Chunk '{chunk.anchor}' contains no added or removed lines")

        window_size = len(chunk.expected_before())
        search_from = anchor_index
        if config.anchor_in_window and window_size:
            search_from = max(0, anchor_index - window_size + 1)

        edit = build_edit(chunk.change_lines, lines, search_from, anchor=chunk.anchor)

        if edit.start == edit.end and _inside_region(edit.start, regions):
            raise AmbiguousEmptyMatchError(chunk.anchor, edit.start)

        new_lines = lines[: edit.start] + edit.replacement + lines[edit.end :]
        change = AppliedChange(
            anchor=chunk.anchor,
            start=edit.start,
            end=edit.end,
            delta=edit.delta,
            lines_added=chunk.lines_added,
            lines_removed=chunk.lines_removed,
        )
        return new_lines, _shift_regions(regions, edit.start, edit.end, edit.delta), change


def _inside_region(position: int, regions: Regions) -> bool:
    return any(start < position < end for start, end in regions)


def _shift_regions(regions: Regions, start: int, end: int, delta: int) -> Regions:
    """Move known regions past a splice of ``[start, end)`` and record the new one."""
    new_start, new_end = start, end + delta
    shifted: Regions = []
    for region_start, region_end in regions:
        if region_end <= start:
            shifted.append((region_start, region_end))
        elif region_start >= end:
            shifted.append((region_start + delta, region_end + delta))
        else:
            new_start = min(new_start, region_start)
            new_end = max(new_end, region_end + delta)
    shifted.append((new_start, new_end))
    return sorted(shifted)


def process(
    request: PatchRequest, config: Optional[EngineConfig] = None, content: str = ""
) -> ProcessResult:
    """Apply ``request`` to ``content``; see :meth:`ChangeChunkProcessor.process_changes`."""
    return ChangeChunkProcessor().process_changes(request, config, content)
