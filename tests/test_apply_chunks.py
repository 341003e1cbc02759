"""Tests for the file-apply-patch tool.

Tests the file side of chunk patching including:
- Successful application and write-back
- Failures leave the file untouched
- Dry run mode (CRITICAL)
- Request validation
- Security checks
"""

import os
import stat

import pytest

from chunk_patch_mcp.models import Chunk
from chunk_patch_mcp.tools.apply_chunks import file_apply_patch
from chunk_patch_mcp.utils import is_binary_file, resolve_target_path

CONFIG_PY = "DEBUG = False\nLOG_LEVEL = 'INFO'\nPORT = 8000\n"

LOG_LEVEL_CHUNK = {
    "context_marker": "@@ DEBUG = False",
    "changes": [" DEBUG = False", "-LOG_LEVEL = 'INFO'", "+LOG_LEVEL = 'DEBUG'", " PORT = 8000"],
}


class TestFileApplyPatch:
    """Test suite for file_apply_patch."""

    def test_apply_success(self, tmp_path):
        """Apply chunks and write the result back."""
        file = tmp_path / "config.py"
        file.write_text(CONFIG_PY)

        result = file_apply_patch("config.py", [LOG_LEVEL_CHUNK], root_dir=tmp_path)

        assert result["success"] is True
        assert result["applied"] is True
        assert result["path"] == "config.py"
        assert result["message"] == "Successfully applied 1 change chunks to 'config.py'"
        assert result["summary"] == {
            "chunks_applied": 1,
            "lines_added": 1,
            "lines_removed": 1,
            "net_line_delta": 0,
        }
        assert result["applied_changes"][0]["start"] == 0
        assert result["applied_changes"][0]["end"] == 3

        # Output is LF-joined; the final line break is kept
        assert file.read_text() == "DEBUG = False\nLOG_LEVEL = 'DEBUG'\nPORT = 8000\n"

    def test_accepts_chunk_models(self, tmp_path):
        file = tmp_path / "config.py"
        file.write_text(CONFIG_PY)
        chunk = Chunk(anchor="@@ PORT", change_lines=["-PORT = 8000", "+PORT = 9000"])

        result = file_apply_patch("config.py", [chunk], root_dir=tmp_path)

        assert result["success"] is True
        assert "PORT = 9000" in file.read_text()

    def test_absolute_path_without_root(self, tmp_path):
        file = tmp_path / "config.py"
        file.write_text(CONFIG_PY)

        result = file_apply_patch(str(file), [LOG_LEVEL_CHUNK])

        assert result["success"] is True
        assert "LOG_LEVEL = 'DEBUG'" in file.read_text()

    def test_context_not_found(self, tmp_path):
        """Missing anchors fail and leave the file unchanged."""
        file = tmp_path / "config.py"
        file.write_text(CONFIG_PY)
        chunk = {"context_marker": "@@ nonExistentSetting", "changes": ["+X = 1"]}

        result = file_apply_patch("config.py", [chunk], root_dir=tmp_path)

        assert result["success"] is False
        assert result["applied"] is False
        assert result["error_type"] == "context_not_found"
        assert result["error"] == "Failed to apply patch: context not found: @@ nonExistentSetting"
        assert result["details"]["errors"] == ["context not found: @@ nonExistentSetting"]
        assert file.read_text() == CONFIG_PY

    def test_partial_failure_does_not_write(self, tmp_path):
        """All or nothing: the first chunk's edit must not reach the file."""
        file = tmp_path / "config.py"
        file.write_text(CONFIG_PY)
        chunks = [LOG_LEVEL_CHUNK, {"context_marker": "@@ MISSING", "changes": ["-MISSING"]}]

        result = file_apply_patch("config.py", chunks, root_dir=tmp_path)

        assert result["success"] is False
        assert result["details"]["applied_changes"][0]["anchor"] == "@@ DEBUG = False"
        assert file.read_text() == CONFIG_PY

    def test_window_mismatch_error_type(self, tmp_path):
        file = tmp_path / "config.py"
        file.write_text(CONFIG_PY)
        chunk = {"context_marker": "@@ DEBUG", "changes": [" DEBUG = True", "+X = 1"]}

        result = file_apply_patch("config.py", [chunk], root_dir=tmp_path)

        assert result["error_type"] == "window_mismatch"

    def test_crlf_file_untouched_on_failure(self, tmp_path):
        file = tmp_path / "win.txt"
        file.write_bytes(b"one\r\ntwo\r\n")

        result = file_apply_patch("win.txt", [{"context_marker": "@@ three", "changes": ["-three"]}], root_dir=tmp_path)

        assert result["success"] is False
        assert file.read_bytes() == b"one\r\ntwo\r\n"

    def test_crlf_file_is_matched(self, tmp_path):
        """CRLF content matches and is written back with LF endings."""
        file = tmp_path / "win.txt"
        file.write_bytes(b"one\r\ntwo\r\nthree\r\n")

        result = file_apply_patch("win.txt", [{"context_marker": "@@ two", "changes": ["-two", "+2"]}], root_dir=tmp_path)

        assert result["success"] is True
        assert file.read_bytes() == b"one\n2\nthree\n"

    def test_no_changes_needed(self, tmp_path):
        """Context-only chunks succeed without writing."""
        file = tmp_path / "config.py"
        content = "DEBUG = False\nPORT = 8000"
        file.write_text(content)
        mtime = file.stat().st_mtime_ns

        result = file_apply_patch(
            "config.py", [{"context_marker": "@@ PORT", "changes": [" PORT = 8000"]}], root_dir=tmp_path
        )

        assert result["success"] is True
        assert result["applied"] is False
        assert result["message"] == "No changes were needed - file content already matches target state"
        assert file.stat().st_mtime_ns == mtime

    def test_warnings_reported(self, tmp_path):
        file = tmp_path / "dup.txt"
        file.write_text("x = 1\nx = 1\n")

        result = file_apply_patch("dup.txt", [{"context_marker": "@@ x = 1", "changes": ["-x = 1", "+x = 2"]}], root_dir=tmp_path)

        assert result["success"] is True
        assert len(result["warnings"]) == 1
        assert file.read_text() == "x = 2\nx = 1\n"

    def test_missing_final_newline_stays_missing(self, tmp_path):
        file = tmp_path / "config.py"
        file.write_text("DEBUG = False\nPORT = 8000")

        result = file_apply_patch(
            "config.py", [{"context_marker": "@@ PORT", "changes": ["-PORT = 8000", "+PORT = 9000"]}], root_dir=tmp_path
        )

        assert result["success"] is True
        assert file.read_text() == "DEBUG = False\nPORT = 9000"

    def test_line_ending_only_difference_is_not_written(self, tmp_path):
        """Context-only chunks on a CRLF file leave its bytes alone."""
        file = tmp_path / "win.txt"
        file.write_bytes(b"one\r\ntwo\r\n")

        result = file_apply_patch("win.txt", [{"context_marker": "@@ two", "changes": [" two"]}], root_dir=tmp_path)

        assert result["success"] is True
        assert result["applied"] is False
        assert file.read_bytes() == b"one\r\ntwo\r\n"


class TestDryRun:
    """CRITICAL: dry runs never modify the file."""

    def test_dry_run_success(self, tmp_path):
        file = tmp_path / "config.py"
        file.write_text(CONFIG_PY)

        result = file_apply_patch("config.py", [LOG_LEVEL_CHUNK], root_dir=tmp_path, dry_run=True)

        assert result["success"] is True
        assert result["applied"] is False
        assert "Dry run" in result["message"]
        assert result["summary"]["lines_added"] == 1
        assert file.read_text() == CONFIG_PY

    def test_dry_run_failure(self, tmp_path):
        file = tmp_path / "config.py"
        file.write_text(CONFIG_PY)

        result = file_apply_patch(
            "config.py", [{"context_marker": "@@ nope", "changes": ["-nope"]}], root_dir=tmp_path, dry_run=True
        )

        assert result["success"] is False
        assert file.read_text() == CONFIG_PY

    def test_dry_run_on_readonly_file(self, tmp_path):
        """Dry runs skip the write permission check."""
        file = tmp_path / "readonly.py"
        file.write_text(CONFIG_PY)
        file.chmod(stat.S_IRUSR)

        try:
            result = file_apply_patch("readonly.py", [LOG_LEVEL_CHUNK], root_dir=tmp_path, dry_run=True)
            assert result["success"] is True
        finally:
            file.chmod(stat.S_IRUSR | stat.S_IWUSR)


class TestRequestValidation:
    """Errors detected before the engine runs."""

    def test_file_not_found(self, tmp_path):
        result = file_apply_patch("missing.py", [LOG_LEVEL_CHUNK], root_dir=tmp_path)

        assert result["success"] is False
        assert result["error_type"] == "file_not_found"
        assert result["error"] == "Error: File 'missing.py' does not exist"

    def test_directory(self, tmp_path):
        (tmp_path / "src").mkdir()

        result = file_apply_patch("src", [LOG_LEVEL_CHUNK], root_dir=tmp_path)

        assert result["error_type"] == "not_a_file"
        assert result["error"] == "Error: 'src' is a directory, not a file"

    def test_no_chunks(self, tmp_path):
        (tmp_path / "config.py").write_text(CONFIG_PY)

        result = file_apply_patch("config.py", [], root_dir=tmp_path)

        assert result["success"] is False
        assert result["error_type"] == "invalid_request"
        assert result["error"] == "Error: No change chunks provided"

    def test_malformed_change_line(self, tmp_path):
        file = tmp_path / "config.py"
        file.write_text(CONFIG_PY)
        chunk = {"context_marker": "@@ DEBUG", "changes": ["DEBUG = True"]}

        result = file_apply_patch("config.py", [chunk], root_dir=tmp_path)

        assert result["success"] is False
        assert result["error_type"] == "malformed_change_line"
        assert "malformed change line" in result["error"]
        assert file.read_text() == CONFIG_PY

    def test_missing_context_marker(self, tmp_path):
        (tmp_path / "config.py").write_text(CONFIG_PY)

        result = file_apply_patch("config.py", [{"changes": ["+x"]}], root_dir=tmp_path)

        assert result["error_type"] == "invalid_request"
        assert "context_marker" in result["error"]


class TestSecurity:
    """Security checks on the target path."""

    def test_path_traversal_rejected(self, tmp_path):
        root = tmp_path / "project"
        root.mkdir()
        outside = tmp_path / "secret.txt"
        outside.write_text("secret\n")

        result = file_apply_patch("../secret.txt", [{"context_marker": "secret", "changes": ["-secret"]}], root_dir=root)

        assert result["success"] is False
        assert result["error_type"] == "permission_denied"
        assert outside.read_text() == "secret\n"

    def test_absolute_path_outside_root_rejected(self, tmp_path):
        root = tmp_path / "project"
        root.mkdir()
        outside = tmp_path / "other.txt"
        outside.write_text("x\n")

        result = file_apply_patch(str(outside), [{"context_marker": "x", "changes": ["-x"]}], root_dir=root)

        assert result["error_type"] == "permission_denied"

    def test_symlink_rejected(self, tmp_path):
        real = tmp_path / "real.txt"
        real.write_text("content\n")
        link = tmp_path / "link.txt"
        link.symlink_to(real)

        result = file_apply_patch("link.txt", [{"context_marker": "content", "changes": ["-content"]}], root_dir=tmp_path)

        assert result["success"] is False
        assert result["error_type"] == "symlink_error"
        assert real.read_text() == "content\n"

    def test_binary_rejected(self, tmp_path):
        file = tmp_path / "binary.bin"
        file.write_bytes(b"\x00\x01\x02\x03\xff\xfe")

        result = file_apply_patch("binary.bin", [{"context_marker": "x", "changes": ["-x"]}], root_dir=tmp_path)

        assert result["error_type"] == "binary_file"

    def test_non_ascii_utf8_is_text(self, tmp_path):
        """A sample cut inside a multi-byte character is still recognised as text."""
        file = tmp_path / "greeting.php"
        content = "<?php\n// " + "Привет мир " * 2000 + "\nclass Greeter\n{\n}\n"
        file.write_text(content, encoding="utf-8")
        # The first 8192 bytes end in the middle of a two-byte character
        assert file.read_bytes()[8192] & 0xC0 == 0x80
        assert is_binary_file(file) is False

        result = file_apply_patch(
            "greeting.php", [{"context_marker": "@@ class Greeter", "changes": ["-class Greeter", "+final class Greeter"]}],
            root_dir=tmp_path,
        )

        assert result["success"] is True
        assert file.read_text(encoding="utf-8") == content.replace("class Greeter", "final class Greeter")

    def test_resolve_target_path_rejects_escape(self, tmp_path):
        with pytest.raises(PermissionError, match="escape the project root"):
            resolve_target_path("../outside.txt", tmp_path)

        assert resolve_target_path("inside.txt", tmp_path) == tmp_path.resolve() / "inside.txt"

    def test_file_too_large(self, tmp_path):
        file = tmp_path / "big.txt"
        file.write_text("x\n" * 100)

        result = file_apply_patch(
            "big.txt", [{"context_marker": "x", "changes": ["-x"]}], root_dir=tmp_path, max_file_size=10
        )

        assert result["error_type"] == "resource_limit"

    @pytest.mark.skipif(os.name == "nt" or os.geteuid() == 0, reason="requires POSIX permissions")
    def test_readonly_file_rejected(self, tmp_path):
        file = tmp_path / "readonly.py"
        file.write_text(CONFIG_PY)
        file.chmod(stat.S_IRUSR)

        try:
            result = file_apply_patch("readonly.py", [LOG_LEVEL_CHUNK], root_dir=tmp_path)
            assert result["error_type"] == "permission_denied"
        finally:
            file.chmod(stat.S_IRUSR | stat.S_IWUSR)

    def test_file_mode_preserved(self, tmp_path):
        file = tmp_path / "script.sh"
        file.write_text("echo one\n")
        file.chmod(0o755)

        result = file_apply_patch("script.sh", [{"context_marker": "echo", "changes": ["-echo one", "+echo two"]}], root_dir=tmp_path)

        assert result["success"] is True
        assert stat.S_IMODE(file.stat().st_mode) == 0o755
        assert not list(tmp_path.glob(".patch_tmp_*"))
