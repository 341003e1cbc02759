"""File apply patch tool - apply change chunks to a file.

This module implements the file-apply-patch tool. It is the storage side of
the patch engine: it resolves and checks the target path, reads the file,
runs the chunks through :mod:`chunk_patch_mcp.engine.processor` and writes the
result back atomically.

CRITICAL: The file is written only when every chunk applies and the content
actually changes. A failed patch never touches the file.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from ..config import MAX_FILE_SIZE
from ..engine.lines import split_lines
from ..engine.processor import ChangeChunkProcessor
from ..errors import MalformedChangeLineError
from ..models import EngineConfig, PatchRequest
from ..utils import atomic_write_text, read_text, resolve_target_path, validate_file_safety

logger = logging.getLogger(__name__)

_processor = ChangeChunkProcessor()


def file_apply_patch(
    path: str,
    chunks: Sequence[Any],
    root_dir: Optional[Path] = None,
    dry_run: bool = False,
    config: Optional[EngineConfig] = None,
    max_file_size: int = MAX_FILE_SIZE,
) -> Dict[str, Any]:
    """Apply anchor-based change chunks to a file.

    WARNING: This WILL modify the file in place (unless dry_run=True).

    Each chunk is a mapping ``{"context_marker": str, "changes": [str, ...]}``
    (or a :class:`~chunk_patch_mcp.models.Chunk`). Every change line starts
    with ``' '`` (context), ``'-'`` (remove) or ``'+'`` (add). Chunks are
    applied in order and all-or-nothing.

    The patched file is written with LF line endings. If the original file
    ended with a line break, the written file ends with ``"\\n"``; otherwise
    it has no final line break. A patch whose only effect would be to change
    line endings is reported as "no changes needed" and not written.

    Args:
        path: File to patch, relative to ``root_dir`` when one is given
        chunks: Ordered change chunks
        root_dir: Project root the path must stay within (optional)
        dry_run: If True, compute the result without writing the file
        config: Engine settings
        max_file_size: Largest file accepted, in bytes

    Returns:
        Dict with the following structure on success:
            {
                "success": True,
                "path": str,
                "applied": bool,  # False for dry runs and no-op patches
                "message": str,
                "applied_changes": [{"anchor", "start", "end", "delta", ...}],
                "warnings": [str],
                "summary": {"chunks_applied", "lines_added", "lines_removed",
                            "net_line_delta"}
            }

        Dict with the following structure on failure:
            {
                "success": False,
                "path": str,
                "applied": False,
                "error": str,
                "error_type": str,
                "details": {...}  # engine report, when the engine ran
            }

    Example:
        >>> result = file_apply_patch(
        ...     "src/UserService.php",
        ...     [{"context_marker": "@@ class UserService",
        ...       "changes": [" {", "-    private $db;", "+    private Db $db;"]}],
        ...     root_dir=Path("/srv/project"),
        ... )
    """
    logger.info(f"Processing file-apply-patch tool for {path} ({len(chunks)} chunk(s))")

    try:
        target = resolve_target_path(path, root_dir)
    except PermissionError as e:
        return _error_result(path, str(e), "permission_denied")
    except OSError as e:
        return _error_result(path, f"Invalid path: {str(e)}", "io_error")

    if not target.exists() and not target.is_symlink():
        return _error_result(path, f"Error: File '{path}' does not exist", "file_not_found")

    if target.is_dir():
        return _error_result(path, f"Error: '{path}' is a directory, not a file", "not_a_file")

    if not chunks:
        return _error_result(path, "Error: No change chunks provided", "invalid_request")

    try:
        request = PatchRequest(target_id=path, chunks=list(chunks))
    except ValidationError as e:
        return _error_result(
            path, f"Error: Invalid change chunks: {_describe(e)}", _validation_error_type(e)
        )

    safety_error = validate_file_safety(
        target, check_write=not dry_run, check_space=not dry_run, max_file_size=max_file_size
    )
    if safety_error:
        return _error_result(path, safety_error["error"], safety_error["error_type"])

    try:
        original_content = read_text(target)
    except UnicodeDecodeError as e:
        return _error_result(path, f"Error: Cannot decode file as UTF-8: {str(e)}", "encoding_error")
    except OSError as e:
        logger.error(f"Error reading file for patch application: {target}: {e}")
        return _error_result(path, f"Error: Could not read file '{path}': {str(e)}", "io_error")

    result = _processor.process_changes(request, config, original_content)

    if not result.success:
        return _error_result(
            path,
            f"Failed to apply patch: {', '.join(result.errors)}",
            result.error_type.value if result.error_type else "context_not_found",
            details=result.detailed_report(),
        )

    if split_lines(result.modified_content) == split_lines(original_content):
        return {
            "success": True,
            "path": path,
            "applied": False,
            "message": "No changes were needed - file content already matches target state",
            "applied_changes": [],
            "warnings": result.warnings,
            "summary": result.summary(),
        }

    if not dry_run:
        new_content = _restore_final_newline(original_content, result.modified_content)
        try:
            atomic_write_text(target, new_content)
        except OSError as e:
            logger.error(f"Error writing patched file {target}: {e}")
            return _error_result(
                path, f"Error: Could not write modified content to '{path}': {str(e)}", "io_error"
            )
        logger.info(f"Successfully applied patch to {target}")

    if dry_run:
        message = f"Dry run: {len(request.chunks)} change chunks can be applied to '{path}'"
    else:
        message = f"Successfully applied {len(request.chunks)} change chunks to '{path}'"
    return {
        "success": True,
        "path": path,
        "applied": not dry_run,
        "message": message,
        "applied_changes": [change.model_dump() for change in result.applied_changes],
        "warnings": result.warnings,
        "summary": result.summary(),
    }


def _error_result(
    path: str, message: str, error_type: str, details: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    response: Dict[str, Any] = {
        "success": False,
        "path": path,
        "applied": False,
        "error": message,
        "error_type": error_type,
    }
    if details is not None:
        response["details"] = details
    return response


def _restore_final_newline(original: str, modified: str) -> str:
    if modified and original.endswith(("\n", "\r")):
        return modified + "\n"
    return modified


def _validation_error_type(error: ValidationError) -> str:
    for detail in error.errors():
        if isinstance(detail.get("ctx", {}).get("error"), MalformedChangeLineError):
            return "malformed_change_line"
    return "invalid_request"


def _describe(error: ValidationError) -> str:
    messages: List[str] = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"])
        messages.append(f"{location}: {detail['msg']}")
    return "; ".join(messages)
