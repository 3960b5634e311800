"""MCP application instance.

This module exists to avoid circular import issues when running with `python -m`.
All tool modules should import `mcp` from here, not from server.py.
"""

from mcp.server.fastmcp import FastMCP

# Initialize the MCP server
mcp = FastMCP(
    "Corridor Tracker",
    instructions=(
        "Train and freight movements through the Cardiff–Kotara corridor - "
        "scheduled, realtime-updated and estimated, each with a confidence label"
    ),
)
