"""CLI entry point for chunk-patch-mcp server.

This module enables running the server as a Python module:
    python -m chunk_patch_mcp

The server will start and communicate via stdio transport.
"""

from .server import run

if __name__ == "__main__":
    run()
