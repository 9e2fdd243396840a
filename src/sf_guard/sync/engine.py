"""Guard engine: the operations exposed to the CLI and the MCP server.

Resolves local paths to artifacts and coordinates conflict detection,
resolution, tracked retrieve, safe deploy and the watermark store.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from pydantic import BaseModel

from sf_guard.errors import (
    IdentityUnavailable,
    LocalIOFailed,
    NotAnArtifactError,
    RemoteQueryFailed,
    SessionUnavailable,
)
from sf_guard.org_client.auth import lookup_username
from sf_guard.org_client.client import OrgClient
from sf_guard.org_client.runner import SfCliRunner
from sf_guard.org_client.session import SessionCache
from sf_guard.sync.conflict import ConflictDetector, ConflictVerdict
from sf_guard.sync.resolution import (
    ResolutionEngine,
    ResolutionOutcome,
    StrategyChooser,
)
from sf_guard.sync.resolver import (
    ArtifactIdentity,
    artifact_source_path,
    resolve_artifact,
)
from sf_guard.sync.state import WatermarkEntry, WatermarkStore, utcnow

logger = logging.getLogger(__name__)

PROJECT_FILENAME = "sfdx-project.json"


# ------------------------------------------------------------------
# Result models
# ------------------------------------------------------------------


class SyncResult(BaseModel):
    """Outcome of a tracked retrieve or a safe deploy."""

    success: bool
    message: str
    artifact: str = ""
    local_path: str = ""
    verdict: ConflictVerdict | None = None
    resolution: ResolutionOutcome | None = None


# ------------------------------------------------------------------
# Engine
# ------------------------------------------------------------------


class GuardEngine:
    """Coordinates conflict checks and sync bookkeeping for one workspace.

    Args:
        sessions: Org session cache.
        store: Watermark store of the workspace.
        snapshot_dir: Where org snapshots are written for diffing.
        clock: Source of watermark timestamps.
    """

    def __init__(
        self,
        sessions: SessionCache,
        store: WatermarkStore,
        snapshot_dir: str | Path,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sessions = sessions
        self._store = store
        self._clock = clock
        self._detector = ConflictDetector(sessions, store)
        self._resolver = ResolutionEngine(sessions, store, snapshot_dir, clock=clock)

    @property
    def store(self) -> WatermarkStore:
        return self._store

    @staticmethod
    def _require_artifact(local_path: str | Path) -> ArtifactIdentity:
        identity = resolve_artifact(local_path)
        if identity is None:
            raise NotAnArtifactError(f"{local_path} is not a tracked Salesforce artifact")
        return identity

    # ------------------------------------------------------------------
    # Conflict detection and resolution
    # ------------------------------------------------------------------

    def check_conflict(self, local_path: str | Path) -> ConflictVerdict:
        """Check whether the org copy of *local_path*'s artifact changed
        since this workspace last synced it.
        """
        identity = resolve_artifact(local_path)
        if identity is None:
            logger.info("Unsupported file type for conflict check: %s", local_path)
            return ConflictVerdict(has_conflict=False)
        return self._detector.check(identity)

    def resolve_conflict(
        self, local_path: str | Path, choose: StrategyChooser
    ) -> ResolutionOutcome:
        """Show org/local differences and apply the strategy *choose* picks."""
        identity = self._require_artifact(local_path)
        return self._resolver.resolve(identity, local_path, choose)

    # ------------------------------------------------------------------
    # Watermarks
    # ------------------------------------------------------------------

    def mark_synced(self, local_path: str | Path) -> WatermarkEntry:
        """Record that *local_path*'s artifact is in sync with the org now.

        Raises:
            NotAnArtifactError: If *local_path* is not a tracked artifact.
            LocalIOFailed: If the state file cannot be read or written.
        """
        identity = self._require_artifact(local_path)
        entry = self._store.record(identity, self._clock())
        logger.info("Tracked sync for %s at %s", identity, entry.synced_at.isoformat())
        return entry

    def list_sync_status(self) -> list[WatermarkEntry]:
        """All tracked artifacts, most recently synced first."""
        return self._store.list_all()

    def clear_sync_status(self, name: str | None = None) -> int:
        """Forget the watermark of *name*, or of every artifact when ``None``."""
        if name is None:
            return self._store.clear_all()
        return self._store.delete(name)

    # ------------------------------------------------------------------
    # Tracked retrieve / safe deploy
    # ------------------------------------------------------------------

    def _connection(self) -> OrgClient:
        return self._sessions.get_session().connection

    def retrieve(self, local_path: str | Path) -> SyncResult:
        """Retrieve the artifact from the org and record the watermark."""
        identity = self._require_artifact(local_path)
        source = artifact_source_path(Path(local_path).absolute(), identity)

        try:
            self._connection().project.retrieve(source)
        except (IdentityUnavailable, SessionUnavailable, RemoteQueryFailed) as exc:
            self._invalidate_on_auth_failure(exc)
            return SyncResult(
                success=False,
                message=f"Retrieve failed: {exc}",
                artifact=str(identity),
                local_path=str(local_path),
            )

        try:
            self._store.record(identity, self._clock())
        except LocalIOFailed as exc:
            return SyncResult(
                success=False,
                message=f"Retrieved {identity.name} but could not record the sync: {exc}",
                artifact=str(identity),
                local_path=str(local_path),
            )
        logger.info("Retrieved and synced %s from %s", identity, source)
        return SyncResult(
            success=True,
            message=f"Retrieved and synced {identity.name}",
            artifact=str(identity),
            local_path=str(local_path),
        )

    def deploy(
        self,
        local_path: str | Path,
        *,
        force: bool = False,
        choose: StrategyChooser | None = None,
    ) -> SyncResult:
        """Deploy the artifact unless the org holds changes we have not seen.

        On conflict the deploy is refused unless *force* is set, or
        *choose* is given and the resolution ends ``resolved``.  The
        watermark is recorded after a successful deploy.
        """
        identity = self._require_artifact(local_path)
        source = artifact_source_path(Path(local_path).absolute(), identity)
        verdict = self.check_conflict(local_path)
        resolution: ResolutionOutcome | None = None

        if verdict.has_conflict and not force:
            if choose is None:
                return SyncResult(
                    success=False,
                    message=(
                        f"Conflict: {identity.name} was modified in the org by "
                        f"{verdict.modified_by} at {verdict.modified_at}. "
                        "Retrieve or resolve it first, or deploy with force."
                    ),
                    artifact=str(identity),
                    local_path=str(local_path),
                    verdict=verdict,
                )
            resolution = self._resolver.resolve(identity, local_path, choose)
            if not resolution.resolved:
                return SyncResult(
                    success=False,
                    message=f"Deployment cancelled: {resolution.message}",
                    artifact=str(identity),
                    local_path=str(local_path),
                    verdict=verdict,
                    resolution=resolution,
                )

        try:
            self._connection().project.deploy(source)
        except (IdentityUnavailable, SessionUnavailable, RemoteQueryFailed) as exc:
            self._invalidate_on_auth_failure(exc)
            return SyncResult(
                success=False,
                message=f"Deployment failed: {exc}",
                artifact=str(identity),
                local_path=str(local_path),
                verdict=verdict,
                resolution=resolution,
            )

        try:
            self._store.record(identity, self._clock())
        except LocalIOFailed as exc:
            return SyncResult(
                success=False,
                message=f"Deployed {identity.name} but could not record the sync: {exc}",
                artifact=str(identity),
                local_path=str(local_path),
                verdict=verdict,
                resolution=resolution,
            )
        logger.info("Deployed %s and updated its sync timestamp", identity)
        return SyncResult(
            success=True,
            message=f"{identity.name} deployed successfully",
            artifact=str(identity),
            local_path=str(local_path),
            verdict=verdict,
            resolution=resolution,
        )

    def _invalidate_on_auth_failure(self, exc: Exception) -> None:
        if isinstance(exc, RemoteQueryFailed) and exc.auth_failure:
            self._sessions.invalidate(str(exc))


# ------------------------------------------------------------------
# Construction
# ------------------------------------------------------------------


def find_workspace_root(start: str | Path) -> Path | None:
    """Walk up from *start* to the directory holding ``sfdx-project.json``."""
    current = Path(start).resolve()
    if current.is_file():
        current = current.parent
    for parent in [current, *current.parents]:
        if (parent / PROJECT_FILENAME).exists():
            return parent
    return None


def build_engine(
    workspace: Path,
    *,
    sf_bin: str = "sf",
    state_file: str = ".sfguard/state.json",
    snapshot_dir: str = ".sfguard-temp",
    session_ttl_seconds: int = 1800,
    command_timeout: float | None = None,
) -> GuardEngine:
    """Wire a ``GuardEngine`` for *workspace* backed by the ``sf`` CLI.

    Relative state and snapshot paths are resolved against *workspace*.
    """
    runner = SfCliRunner(sf_bin, cwd=workspace, timeout=command_timeout)
    sessions = SessionCache(
        lambda: lookup_username(runner),
        lambda username: OrgClient(runner, target_org=username),
        ttl=timedelta(seconds=session_ttl_seconds),
        workspace=workspace,
    )
    store = WatermarkStore(workspace / state_file)
    return GuardEngine(sessions, store, workspace / snapshot_dir)
