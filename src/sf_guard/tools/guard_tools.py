"""MCP tools for conflict checks, resolution, sync bookkeeping and tracked transfers."""

from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP

from sf_guard.errors import LocalIOFailed, NotAnArtifactError
from sf_guard.sync.engine import GuardEngine
from sf_guard.sync.resolution import ResolutionStrategy, StrategyChooser


def register_guard_tools(mcp: FastMCP, engine: GuardEngine) -> None:
    """Register the guard's host-facing operations with the MCP server."""

    @mcp.tool()
    def check_conflict(local_path: str) -> dict[str, Any]:
        """Check whether a Salesforce source file was changed in the org
        since this workspace last synced it.

        Call before deploying or otherwise overwriting the org copy.

        Args:
            local_path: Path of the local source file.
        """
        return engine.check_conflict(local_path).model_dump(mode="json")

    @mcp.tool()
    def mark_synced(local_path: str) -> dict[str, Any]:
        """Record a file's artifact as in sync with the org right now.

        Call after a successful retrieve or deploy done outside this server.

        Args:
            local_path: Path of the local source file.
        """
        try:
            entry = engine.mark_synced(local_path)
        except (NotAnArtifactError, LocalIOFailed) as exc:
            return {"success": False, "message": str(exc)}
        return {"success": True, **entry.model_dump(mode="json")}

    @mcp.tool()
    def resolve_conflict(local_path: str, strategy: str) -> dict[str, Any]:
        """Compare a file (or its whole component bundle) with the org and
        reconcile them.

        Args:
            local_path: Path of the local source file.
            strategy: "adopt_remote" to overwrite local files with the org
                version, "keep_local" to keep local changes, or "manual" to
                only write the org snapshots for a manual merge.
        """
        chosen = _parse_strategy(strategy)
        if chosen is None:
            return _unknown_strategy(strategy)
        try:
            outcome = engine.resolve_conflict(local_path, _always(chosen))
        except NotAnArtifactError as exc:
            return {"success": False, "message": str(exc)}
        return {"success": outcome.resolved, **outcome.model_dump(mode="json")}

    @mcp.tool()
    def list_sync_status() -> list[dict[str, Any]]:
        """List tracked artifacts and when each was last synced, newest first."""
        return [entry.model_dump(mode="json") for entry in engine.list_sync_status()]

    @mcp.tool()
    def clear_sync_status(artifact_name: str | None = None) -> dict[str, Any]:
        """Forget the sync watermark of one artifact, or of all artifacts.

        Args:
            artifact_name: Artifact to forget. If None, clears everything.
        """
        removed = engine.clear_sync_status(artifact_name)
        return {"success": True, "removed": removed}

    @mcp.tool()
    def retrieve(local_path: str) -> dict[str, Any]:
        """Retrieve a file's artifact (or its whole component bundle) from the
        org and record it as synced.

        Args:
            local_path: Path of the local source file.
        """
        try:
            result = engine.retrieve(local_path)
        except NotAnArtifactError as exc:
            return {"success": False, "message": str(exc)}
        return result.model_dump(mode="json")

    @mcp.tool()
    def deploy(
        local_path: str, force: bool = False, strategy: str | None = None
    ) -> dict[str, Any]:
        """Deploy a file's artifact unless the org holds changes this
        workspace has not seen.

        Args:
            local_path: Path of the local source file.
            force: Deploy even when a conflict is detected.
            strategy: Resolution to apply on conflict ("adopt_remote",
                "keep_local" or "manual"). If None, a conflict refuses the
                deploy.
        """
        choose: StrategyChooser | None = None
        if strategy is not None:
            chosen = _parse_strategy(strategy)
            if chosen is None:
                return _unknown_strategy(strategy)
            choose = _always(chosen)
        try:
            result = engine.deploy(local_path, force=force, choose=choose)
        except NotAnArtifactError as exc:
            return {"success": False, "message": str(exc)}
        return result.model_dump(mode="json")


def _parse_strategy(value: str) -> ResolutionStrategy | None:
    try:
        return ResolutionStrategy(value)
    except ValueError:
        return None


def _always(strategy: ResolutionStrategy) -> StrategyChooser:
    return lambda identity, diffs: strategy


def _unknown_strategy(value: str) -> dict[str, Any]:
    return {
        "success": False,
        "message": f"Unknown strategy {value!r}; use one of "
        + ", ".join(s.value for s in ResolutionStrategy),
    }
