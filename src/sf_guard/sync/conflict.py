"""Conflict detection before overwriting an org artifact.

Compares the org's last-modification metadata for an artifact against the
workspace's sync watermark:

* With a watermark, any org change strictly later than the watermark is a
  conflict, whoever made it.
* Without one (never synced from this workspace), the only signal is who
  made the last change: anyone other than the acting user is a conflict.

The detector is fail-open.  When the check itself cannot run (no org
user, no session, failed query, unknown artifact) the verdict is "no
conflict", so the guard never blocks a deploy because of its own errors.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel

from sf_guard.errors import (
    IdentityUnavailable,
    RemoteQueryFailed,
    RemoteRecordNotFound,
    SessionUnavailable,
)
from sf_guard.sync.identity import is_acting_user
from sf_guard.sync.resolver import ArtifactIdentity
from sf_guard.sync.state import WatermarkStore

if TYPE_CHECKING:
    from sf_guard.org_client.metadata import ModificationInfo
    from sf_guard.org_client.session import SessionCache

logger = logging.getLogger(__name__)


class ConflictReason(StrEnum):
    """Why a conflict was declared."""

    NEVER_SYNCED_IDENTITY_MISMATCH = "never-synced-identity-mismatch"
    STALE_WATERMARK = "stale-watermark"


class ConflictVerdict(BaseModel):
    """Outcome of one conflict check. Never cached."""

    has_conflict: bool
    modified_by: str | None = None
    modified_at: datetime | None = None
    reason: ConflictReason | None = None


class ConflictDetector:
    """Decides whether an artifact changed in the org behind our back.

    Args:
        sessions: Session cache providing the acting user and connection.
        store: Watermark store holding last-synced instants.
    """

    def __init__(self, sessions: SessionCache, store: WatermarkStore) -> None:
        self._sessions = sessions
        self._store = store

    def check(self, identity: ArtifactIdentity) -> ConflictVerdict:
        """Check *identity* for a conflict. Never raises for org-side failures."""
        try:
            session = self._sessions.get_session()
        except IdentityUnavailable as exc:
            logger.info("Skipping conflict check for %s: %s", identity, exc)
            return ConflictVerdict(has_conflict=False)
        except SessionUnavailable as exc:
            self._sessions.invalidate(str(exc))
            logger.warning("Skipping conflict check for %s: %s", identity, exc)
            return ConflictVerdict(has_conflict=False)

        try:
            info = session.connection.metadata.get_modification_info(identity)
        except RemoteRecordNotFound:
            logger.info("%s is not in the org yet; no conflict", identity)
            return ConflictVerdict(has_conflict=False)
        except RemoteQueryFailed as exc:
            if exc.auth_failure:
                self._sessions.invalidate(str(exc))
            logger.warning("Conflict check for %s failed: %s", identity, exc)
            return ConflictVerdict(has_conflict=False)

        try:
            watermark = self._store.get(identity)
        except (OSError, ValueError) as exc:
            logger.warning("Could not read watermark for %s: %s", identity, exc)
            return ConflictVerdict(has_conflict=False)

        verdict = decide(info, session.username, watermark)
        logger.info(
            "Conflict check for %s: org modified %s by %s, watermark %s -> %s",
            identity,
            info.last_modified_at.isoformat(),
            info.modified_by_name,
            watermark.isoformat() if watermark else "none",
            verdict.reason or "no conflict",
        )
        return verdict


def decide(
    info: ModificationInfo,
    acting_user: str,
    watermark: datetime | None,
) -> ConflictVerdict:
    """Apply the two-mode conflict policy to fetched org metadata."""
    if watermark is None:
        has_conflict = not is_acting_user(
            acting_user, info.modified_by_name, info.modified_by_username
        )
        reason = ConflictReason.NEVER_SYNCED_IDENTITY_MISMATCH
    else:
        has_conflict = info.last_modified_at > watermark
        reason = ConflictReason.STALE_WATERMARK

    return ConflictVerdict(
        has_conflict=has_conflict,
        modified_by=info.modified_by_name,
        modified_at=info.last_modified_at,
        reason=reason if has_conflict else None,
    )
