"""Conflict detection, resolution and sync bookkeeping for org artifacts.

``GuardEngine`` lives in :mod:`sf_guard.sync.engine`; it depends on the
org client, which in turn imports the resolver from this package.
"""

from sf_guard.sync.conflict import ConflictDetector, ConflictReason, ConflictVerdict
from sf_guard.sync.differ import SyncDiffer
from sf_guard.sync.identity import is_acting_user
from sf_guard.sync.resolution import (
    MemberDiff,
    ResolutionEngine,
    ResolutionOutcome,
    ResolutionStatus,
    ResolutionStrategy,
)
from sf_guard.sync.resolver import (
    ArtifactIdentity,
    ArtifactKind,
    bundle_directory,
    bundle_members,
    resolve_artifact,
)
from sf_guard.sync.state import SyncState, WatermarkEntry, WatermarkStore

__all__ = [
    "ArtifactIdentity",
    "ArtifactKind",
    "ConflictDetector",
    "ConflictReason",
    "ConflictVerdict",
    "MemberDiff",
    "ResolutionEngine",
    "ResolutionOutcome",
    "ResolutionStatus",
    "ResolutionStrategy",
    "SyncDiffer",
    "SyncState",
    "WatermarkEntry",
    "WatermarkStore",
    "bundle_directory",
    "bundle_members",
    "is_acting_user",
    "resolve_artifact",
]
