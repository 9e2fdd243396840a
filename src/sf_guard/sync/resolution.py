"""Diff presentation and conflict resolution for one artifact.

Fetches the org's current source for an artifact (every member, for a
component bundle), writes it as snapshot files next to the workspace so an
external diff viewer can open them, and applies the strategy the user
picks:

* ``adopt_remote``: overwrite the differing local files with the org
  version, then record the artifact as synced.
* ``keep_local``: leave local files alone and record the artifact as
  synced; the user has reviewed the divergence.
* ``manual``: leave local files alone and record the artifact as synced,
  but report it unresolved so the caller does not deploy automatically.

All org content is fetched before anything is written; a failed fetch
leaves every local file untouched.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from sf_guard.errors import (
    IdentityUnavailable,
    LocalIOFailed,
    RemoteFetchFailed,
    SessionUnavailable,
)
from sf_guard.sync.differ import SyncDiffer, encode_remote
from sf_guard.sync.resolver import (
    ArtifactIdentity,
    ArtifactKind,
    bundle_directory,
    bundle_members,
)
from sf_guard.sync.state import WatermarkStore, utcnow

if TYPE_CHECKING:
    from sf_guard.org_client.client import OrgClient
    from sf_guard.org_client.session import SessionCache

logger = logging.getLogger(__name__)


class ResolutionStrategy(StrEnum):
    """How the user chose to reconcile local and org content."""

    ADOPT_REMOTE = "adopt_remote"
    KEEP_LOCAL = "keep_local"
    MANUAL = "manual"


class ResolutionStatus(StrEnum):
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


class MemberDiff(BaseModel):
    """One local file whose content differs from its org snapshot."""

    member_name: str
    local_path: str
    remote_snapshot_path: str
    diff: str = ""


class ResolutionOutcome(BaseModel):
    """Result of resolving one artifact."""

    status: ResolutionStatus
    artifact: str
    strategy: ResolutionStrategy | None = None
    diffs: list[MemberDiff] = Field(default_factory=list)
    updated_paths: list[str] = Field(default_factory=list)
    message: str = ""

    @property
    def resolved(self) -> bool:
        return self.status is ResolutionStatus.RESOLVED


StrategyChooser = Callable[[ArtifactIdentity, list[MemberDiff]], "ResolutionStrategy | None"]
"""Prompt collaborator: shown all diffs at once, returns one strategy or
``None`` if the user cancelled."""


@dataclass(frozen=True)
class _Snapshot:
    local_path: Path
    local_content: bytes
    remote_content: str


class ResolutionEngine:
    """Fetches org snapshots, builds diffs and applies a resolution strategy.

    Args:
        sessions: Session cache providing the org connection.
        store: Watermark store updated after a resolution.
        snapshot_dir: Directory that receives ``<name>_ORG<ext>`` snapshots.
        clock: Source of the watermark timestamp.
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
        self._snapshot_dir = Path(snapshot_dir)
        self._clock = clock
        self._differ = SyncDiffer()

    def resolve(
        self,
        identity: ArtifactIdentity,
        local_path: str | Path,
        choose: StrategyChooser,
    ) -> ResolutionOutcome:
        """Resolve *identity*, whose local copy includes *local_path*.

        For bundles *local_path* may be any member file; the whole bundle
        directory is compared.
        """
        try:
            session = self._sessions.get_session()
        except (IdentityUnavailable, SessionUnavailable) as exc:
            return self._unresolved(identity, f"No org session: {exc}")

        try:
            snapshots = self._fetch(session.connection, identity, Path(local_path))
            diffs = self._write_snapshots(identity, snapshots)
        except (RemoteFetchFailed, LocalIOFailed) as exc:
            logger.error("Cannot resolve %s: %s", identity, exc)
            if isinstance(exc, RemoteFetchFailed) and exc.auth_failure:
                self._sessions.invalidate(str(exc))
            return self._unresolved(identity, str(exc))

        if identity.kind is ArtifactKind.BUNDLE and not diffs:
            logger.info("All members of %s match the org", identity)
            return ResolutionOutcome(
                status=ResolutionStatus.RESOLVED,
                artifact=str(identity),
                message="Local bundle matches the org; nothing to reconcile.",
            )

        strategy = choose(identity, diffs)
        if strategy is None:
            return self._unresolved(identity, "Resolution cancelled.", diffs=diffs)

        updated: list[str] = []
        if strategy is ResolutionStrategy.ADOPT_REMOTE:
            differing = {Path(d.local_path) for d in diffs}
            try:
                updated = _replace_all(
                    [s for s in snapshots if s.local_path in differing]
                )
            except LocalIOFailed as exc:
                logger.error("Could not adopt org version of %s: %s", identity, exc)
                return self._unresolved(identity, str(exc), diffs=diffs, strategy=strategy)

        try:
            self._store.record(identity, self._clock())
        except LocalIOFailed as exc:
            logger.error("Resolved %s but could not record the sync: %s", identity, exc)
            return self._unresolved(
                identity,
                str(exc),
                diffs=diffs,
                strategy=strategy,
                updated_paths=updated,
            )

        if strategy is ResolutionStrategy.MANUAL:
            return ResolutionOutcome(
                status=ResolutionStatus.UNRESOLVED,
                artifact=str(identity),
                strategy=strategy,
                diffs=diffs,
                message="Merge the changes manually before deploying.",
            )

        message = (
            f"Local copy updated with the org version ({len(updated)} file(s))."
            if strategy is ResolutionStrategy.ADOPT_REMOTE
            else "Keeping local changes."
        )
        logger.info("Resolved %s with %s", identity, strategy)
        return ResolutionOutcome(
            status=ResolutionStatus.RESOLVED,
            artifact=str(identity),
            strategy=strategy,
            diffs=diffs,
            updated_paths=updated,
            message=message,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _fetch(
        self, connection: OrgClient, identity: ArtifactIdentity, local_path: Path
    ) -> list[_Snapshot]:
        """Read local content and fetch org content for every member, in order."""
        if identity.kind is ArtifactKind.BUNDLE:
            try:
                members = bundle_members(bundle_directory(local_path))
            except (OSError, ValueError) as exc:
                raise LocalIOFailed(f"Cannot list bundle {identity}: {exc}") from exc
        else:
            members = [local_path]

        snapshots: list[_Snapshot] = []
        for member in members:
            local_content = _read_bytes(member)
            member_file = member.name if identity.kind is ArtifactKind.BUNDLE else None
            remote_content = connection.metadata.get_source(identity, member_file)
            snapshots.append(_Snapshot(member, local_content, remote_content))
        return snapshots

    def _snapshot_path(self, identity: ArtifactIdentity, member: Path) -> Path:
        file_name = f"{member.stem}_ORG{member.suffix}"
        if identity.kind is ArtifactKind.BUNDLE:
            return self._snapshot_dir / identity.name / file_name
        return self._snapshot_dir / file_name

    def _write_snapshots(
        self, identity: ArtifactIdentity, snapshots: list[_Snapshot]
    ) -> list[MemberDiff]:
        """Write snapshot files and return the diffs that need a decision.

        Bundles only report differing members; a single file is always
        presented.
        """
        diffs: list[MemberDiff] = []
        for snap in snapshots:
            identical = self._differ.is_identical(snap.local_content, snap.remote_content)
            if identical and identity.kind is ArtifactKind.BUNDLE:
                continue

            snapshot_path = self._snapshot_path(identity, snap.local_path)
            try:
                snapshot_path.parent.mkdir(parents=True, exist_ok=True)
                snapshot_path.write_bytes(encode_remote(snap.remote_content))
            except OSError as exc:
                raise LocalIOFailed(f"Cannot write snapshot {snapshot_path}: {exc}") from exc

            diffs.append(
                MemberDiff(
                    member_name=snap.local_path.name,
                    local_path=str(snap.local_path),
                    remote_snapshot_path=str(snapshot_path),
                    diff=self._differ.compute_diff(
                        snap.local_content.decode("utf-8", errors="replace"),
                        snap.remote_content,
                        label=snap.local_path.name,
                    ),
                )
            )
        return diffs

    @staticmethod
    def _unresolved(
        identity: ArtifactIdentity,
        message: str,
        *,
        diffs: list[MemberDiff] | None = None,
        strategy: ResolutionStrategy | None = None,
        updated_paths: list[str] | None = None,
    ) -> ResolutionOutcome:
        return ResolutionOutcome(
            status=ResolutionStatus.UNRESOLVED,
            artifact=str(identity),
            strategy=strategy,
            diffs=diffs or [],
            updated_paths=updated_paths or [],
            message=message,
        )


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise LocalIOFailed(f"Cannot read {path}: {exc}") from exc


def _replace_all(snapshots: list[_Snapshot]) -> list[str]:
    """Overwrite each local file with its org content.

    Every new file is staged next to its target first, then swapped in,
    so a write error leaves the originals untouched.
    """
    staged: list[tuple[Path, Path]] = []
    try:
        for snap in snapshots:
            temp = snap.local_path.with_name(f".{snap.local_path.name}.sfguard-tmp")
            temp.write_bytes(encode_remote(snap.remote_content))
            staged.append((temp, snap.local_path))
    except OSError as exc:
        for temp, _ in staged:
            temp.unlink(missing_ok=True)
        raise LocalIOFailed(f"Cannot stage org content: {exc}") from exc

    updated: list[str] = []
    try:
        for temp, target in staged:
            os.replace(temp, target)
            updated.append(str(target))
    except OSError as exc:
        for temp, _ in staged:
            temp.unlink(missing_ok=True)
        raise LocalIOFailed(f"Cannot replace {target}: {exc}") from exc
    return updated
