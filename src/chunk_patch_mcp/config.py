"""Server configuration loaded from environment variables.

Environment:
    MCP_ROOT_PATH: Project root that relative tool paths resolve against (default: cwd)
    MCP_FILE_APPLY_PATCH: Enable the file-apply-patch tool (default: true)
    MCP_MAX_FILE_SIZE: Largest file the tool will patch, in bytes (default: 10MB)
    MCP_ANCHOR_PREFIX: Decorator stripped from anchors (default: "@@ ")
    MCP_LOG_LEVEL: Logging level for the server (default: INFO)
"""

import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from .models import EngineConfig

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


class ServerConfig(BaseModel):
    """Settings of the MCP server and its file tool."""

    root_path: Path = Field(default_factory=Path.cwd, description="Project root")
    apply_patch_enabled: bool = Field(True, description="Expose file-apply-patch")
    max_file_size: int = Field(MAX_FILE_SIZE, gt=0, description="Max file size in bytes")
    anchor_prefix: str = Field("@@ ", description="Decorator stripped from anchors")
    log_level: str = Field("INFO", description="Logging level name")

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """Build the configuration from ``environ`` (defaults to ``os.environ``).

        Raises:
            pydantic.ValidationError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        values: dict = {
            "apply_patch_enabled": _env_flag(env.get("MCP_FILE_APPLY_PATCH"), True),
        }
        if env.get("MCP_ROOT_PATH"):
            values["root_path"] = Path(env["MCP_ROOT_PATH"])
        if env.get("MCP_MAX_FILE_SIZE"):
            values["max_file_size"] = env["MCP_MAX_FILE_SIZE"]
        if "MCP_ANCHOR_PREFIX" in env:
            values["anchor_prefix"] = env["MCP_ANCHOR_PREFIX"]
        if env.get("MCP_LOG_LEVEL"):
            values["log_level"] = env["MCP_LOG_LEVEL"]
        return cls(**values)

    def engine_config(self) -> EngineConfig:
        return EngineConfig(anchor_prefix=self.anchor_prefix)
