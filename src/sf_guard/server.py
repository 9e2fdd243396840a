"""MCP server exposing the Salesforce deployment guard to editor agents.

Run with:
    uv run sf-guard-mcp
    # or
    python -m sf_guard.server
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from sf_guard.config import settings
from sf_guard.sync.engine import build_engine, find_workspace_root
from sf_guard.tools.guard_tools import register_guard_tools

mcp = FastMCP(
    "sf-guard",
    instructions=(
        "Salesforce deployment guard. Before deploying or overwriting a "
        "Salesforce source file, call check_conflict; if it reports a "
        "conflict, call resolve_conflict. Use retrieve and deploy to move "
        "files with sync tracking, or call mark_synced after a transfer done "
        "elsewhere."
    ),
)


def _initialize() -> None:
    """Initialize all components and register tools."""
    settings.validate()
    logging.basicConfig(level=settings.log_level.upper(), stream=sys.stderr)

    start = Path(settings.workspace) if settings.workspace else Path.cwd()
    workspace = find_workspace_root(start)
    if workspace is None:
        raise ValueError(f"No sfdx-project.json found above {start}")

    engine = build_engine(
        workspace,
        sf_bin=settings.sf_bin,
        state_file=settings.state_file,
        snapshot_dir=settings.snapshot_dir,
        session_ttl_seconds=settings.session_ttl_seconds,
        command_timeout=settings.command_timeout,
    )
    register_guard_tools(mcp, engine)


def main() -> None:
    """Entry point for the MCP server."""
    _initialize()
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
