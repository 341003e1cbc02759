"""File safety and I/O helpers for the file-apply-patch tool.

The patch engine never touches the filesystem; everything it needs from
storage goes through these helpers, which perform the security checks before
any read or write.
"""

import codecs
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from .config import MAX_FILE_SIZE

MIN_FREE_SPACE = 1024 * 1024  # 1MB
BINARY_CHECK_BYTES = 8192
NON_TEXT_THRESHOLD = 0.3  # 30% non-text chars = binary


def resolve_target_path(file_path: str, root_dir: Optional[Path] = None) -> Path:
    """Resolve a tool path and make sure it stays inside ``root_dir``.

    Relative paths are joined to ``root_dir``; absolute paths are accepted
    only if they lie under it. Without a root, the path is used as given.

    Args:
        file_path: Path from the tool request
        root_dir: Project root the path must stay within

    Returns:
        The path to operate on

    Raises:
        PermissionError: If the path escapes ``root_dir``
        OSError: If the path cannot be resolved

    Example:
        >>> resolve_target_path("../../etc/passwd", Path("/srv/project"))
        Traceback (most recent call last):
        ...
        PermissionError: Path attempts to escape the project root: ../../etc/passwd
    """
    if root_dir is None:
        return Path(file_path)

    base = Path(root_dir).resolve()
    candidate = Path(file_path)
    if not candidate.is_absolute():
        candidate = base / candidate
    try:
        resolved = candidate.resolve()
    except RuntimeError as e:
        # Symlink loops on older interpreters
        raise OSError(str(e)) from e

    try:
        resolved.relative_to(base)
    except ValueError:
        raise PermissionError(f"Path attempts to escape the project root: {file_path}") from None
    # Keep the unresolved form so symlink checks still see the link itself
    return candidate


def validate_file_safety(
    file_path: Path,
    check_write: bool = False,
    check_space: bool = False,
    max_file_size: int = MAX_FILE_SIZE,
) -> Optional[Dict[str, Any]]:
    """Check that a file is safe to patch.

    Security Checks:
        1. Not a symlink (security policy - rejected)
        2. Is a regular file
        3. Not a binary file (not supported)
        4. Within the file size limit
        5. Write permission (if check_write=True)
        6. Enough free disk space for the temporary copy (if check_space=True)

    Existence is checked by the caller, which reports it with its own message.

    Args:
        file_path: Path to the file to validate
        check_write: If True, verify the file is writable
        check_space: If True, verify free space for an atomic rewrite
        max_file_size: Size limit in bytes

    Returns:
        None if all checks pass, otherwise a dict with 'error' and 'error_type' fields
    """
    if file_path.is_symlink():
        return {
            "error": f"Symlinks are not allowed (security policy): {file_path}",
            "error_type": "symlink_error",
        }

    if not file_path.is_file():
        return {"error": f"Not a regular file: {file_path}", "error_type": "not_a_file"}

    try:
        file_size = file_path.stat().st_size
    except OSError as e:
        return {"error": f"Cannot stat file: {str(e)}", "error_type": "io_error"}

    if file_size > max_file_size:
        return {
            "error": f"File too large: {file_size} bytes (max: {max_file_size})",
            "error_type": "resource_limit",
        }

    if is_binary_file(file_path):
        return {
            "error": f"Binary files are not supported: {file_path}",
            "error_type": "binary_file",
        }

    if check_write and not os.access(file_path, os.W_OK):
        return {
            "error": f"File is not writable: {file_path}",
            "error_type": "permission_denied",
        }

    if check_space:
        try:
            free_space = shutil.disk_usage(file_path.parent).free
        except OSError as e:
            return {"error": f"Cannot check disk space: {str(e)}", "error_type": "io_error"}

        needed = max(MIN_FREE_SPACE, int(file_size * 1.1))
        if free_space < needed:
            return {
                "error": f"Insufficient disk space: {free_space} bytes free, {needed} needed",
                "error_type": "disk_space_error",
            }

    return None


def is_binary_file(file_path: Path, check_bytes: int = BINARY_CHECK_BYTES) -> bool:
    """Guess whether a file is binary from its first ``check_bytes`` bytes.

    Null bytes mean binary; valid UTF-8 means text; otherwise a high ratio of
    non-printable bytes means binary. Unreadable files count as binary.
    """
    try:
        with open(file_path, "rb") as f:
            chunk = f.read(check_bytes)
    except OSError:
        return True

    if not chunk:
        return False
    if b"\x00" in chunk:
        return True

    # Incremental decoding tolerates a sample cut inside a multi-byte character
    try:
        codecs.getincrementaldecoder("utf-8")().decode(chunk, final=False)
        return False
    except UnicodeDecodeError:
        pass

    text_chars = bytes(range(32, 127)) + b"\n\r\t\b\f"
    non_text = sum(1 for byte in chunk if byte not in text_chars)
    return (non_text / len(chunk)) > NON_TEXT_THRESHOLD


def read_text(file_path: Path) -> str:
    """Read a UTF-8 file keeping its line endings untouched.

    Raises:
        UnicodeDecodeError: If the file is not valid UTF-8
        OSError: If the file cannot be read
    """
    with open(file_path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def atomic_write_text(file_path: Path, content: str) -> None:
    """Replace a file's content atomically.

    The content is written to a temporary file in the same directory, which
    then replaces the target with :func:`os.replace`. The original file mode
    is kept.

    Raises:
        OSError: If the temporary file cannot be written or moved into place
    """
    mode = file_path.stat().st_mode if file_path.exists() else None
    fd, temp_name = tempfile.mkstemp(dir=file_path.parent, prefix=".patch_tmp_")
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        if mode is not None:
            os.chmod(temp_path, mode)
        os.replace(temp_path, file_path)
    except BaseException:
        if temp_path.exists():
            temp_path.unlink()
        raise
