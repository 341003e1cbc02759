"""MCP Server for anchor-based file patching.

This module implements the Model Context Protocol (MCP) server that registers
and routes the file-apply-patch tool.

Tools provided:
    1. file-apply-patch - Apply change chunks to a file (supports dry_run)

The tool can be disabled with MCP_FILE_APPLY_PATCH=false; see
:mod:`chunk_patch_mcp.config` for every setting.
"""

import asyncio
import json
import logging
import sys
from typing import Any

from mcp.server import Server
from mcp.types import TextContent, Tool

from .config import ServerConfig
from .tools import apply_chunks

logger = logging.getLogger(__name__)

# Create MCP server instance
server = Server("chunk-patch-mcp")

APPLY_PATCH_TOOL = "file-apply-patch"


def get_config() -> ServerConfig:
    """Read the configuration for the current call from the environment."""
    return ServerConfig.from_env()


@server.list_tools()  # type: ignore[misc,no-untyped-call]
async def list_tools() -> list[Tool]:
    """List the enabled tools with their schemas.

    Returns:
        List of Tool objects with proper input schemas
    """
    if not get_config().apply_patch_enabled:
        return []

    return [
        Tool(
            name=APPLY_PATCH_TOOL,
            description="""Apply change chunks to modify files using contextual markers and fuzzy matching.

Each chunk names an anchor (context_marker, e.g. "@@ class UserService") and lists the
lines around the edit, each prefixed with ' ' (unchanged), '-' (remove) or '+' (add).
No line numbers are needed.

MATCHING:
• The anchor text must appear in a line at or near the edit site
• Context and removed lines are compared ignoring leading/trailing whitespace
• Unchanged lines keep the file's own indentation; added lines are written verbatim
• When several places match, the first one wins

SAFETY:
• Chunks apply in order, each one seeing the edits of the previous ones
• All or nothing: if any chunk fails, the file is left unchanged
• dry_run: true reports the result without writing""",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path to the file to patch, relative to the project root",
                    },
                    "chunks": {
                        "type": "array",
                        "description": "Change chunks, applied in order",
                        "items": {
                            "type": "object",
                            "properties": {
                                "context_marker": {
                                    "type": "string",
                                    "description": "Anchor locating the edit, e.g. '@@ class UserService'",
                                },
                                "changes": {
                                    "type": "array",
                                    "description": "Lines prefixed with ' ', '-' or '+'",
                                    "items": {"type": "string"},
                                },
                            },
                            "required": ["context_marker", "changes"],
                        },
                    },
                    "dry_run": {
                        "type": "boolean",
                        "description": "Validate without modifying (default: false)",
                        "default": False,
                    },
                },
                "required": ["path", "chunks"],
            },
        ),
    ]


@server.call_tool()  # type: ignore[misc]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Route tool calls to appropriate implementations.

    Args:
        name: Name of the tool to call
        arguments: Dictionary of tool arguments

    Returns:
        List containing a single TextContent with JSON-formatted result

    Raises:
        ValueError: If tool name is unknown or the tool is disabled
    """
    config = get_config()

    if name == APPLY_PATCH_TOOL and config.apply_patch_enabled:
        result = apply_chunks.file_apply_patch(
            arguments["path"],
            arguments.get("chunks") or [],
            root_dir=config.root_path,
            dry_run=arguments.get("dry_run", False),
            config=config.engine_config(),
            max_file_size=config.max_file_size,
        )
    else:
        raise ValueError(f"Unknown tool: {name}")

    return [TextContent(type="text", text=json.dumps(result, indent=2))]


def configure_logging(level: str) -> None:
    """Send log records to stderr; stdout carries the MCP protocol."""
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def main() -> None:
    """Run the MCP server using stdio transport.

    This is the main entry point for the server. It sets up the stdio
    communication channel and runs the server event loop.
    """
    from mcp.server.stdio import stdio_server

    config = get_config()
    configure_logging(config.log_level)
    logger.info(f"Starting chunk-patch-mcp (root: {config.root_path})")

    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
