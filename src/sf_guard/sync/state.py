"""Sync watermark persistence using JSON-backed Pydantic models.

Records, per org artifact, the instant this workspace last synchronized
with the org (retrieve, deploy, or a conflict resolution the user marked
as synced).  The conflict detector compares the org's last-modified
instant against this watermark.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from sf_guard.errors import LocalIOFailed
from sf_guard.sync.resolver import ArtifactIdentity

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class WatermarkEntry(BaseModel):
    """Last synchronized instant of one artifact."""

    name: str
    type_tag: str
    synced_at: datetime

    @field_validator("synced_at")
    @classmethod
    def _normalize_timezone(cls, value: datetime) -> datetime:
        return as_utc(value)


class SyncState(BaseModel):
    """Root model for the persisted state file."""

    version: int = 1
    watermarks: list[WatermarkEntry] = Field(default_factory=list)


class WatermarkStore:
    """Manages reading, writing, and querying the JSON watermark file.

    Entries are keyed by ``(type_tag, name)`` so two artifact types that
    share a name keep independent watermarks.  The file is loaded lazily
    on first use and rewritten after every mutation.

    Args:
        state_file: Path to the JSON state file.
    """

    def __init__(self, state_file: str | Path) -> None:
        self._state_file = Path(state_file)
        self._state: SyncState | None = None

    @property
    def state_file(self) -> Path:
        return self._state_file

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> SyncState:
        """Load state from disk, returning an empty state if the file
        does not exist or is empty.
        """
        if self._state_file.exists() and self._state_file.stat().st_size > 0:
            raw = self._state_file.read_text(encoding="utf-8")
            self._state = SyncState.model_validate_json(raw)
        else:
            self._state = SyncState()
        return self._state

    def save(self, state: SyncState) -> None:
        """Persist *state* as pretty-printed JSON, creating parent directories."""
        self._state_file.parent.mkdir(parents=True, exist_ok=True)
        self._state_file.write_text(
            state.model_dump_json(indent=2) + "\n",
            encoding="utf-8",
        )
        self._state = state

    def _ensure_loaded(self) -> SyncState:
        if self._state is None:
            return self.load()
        return self._state

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, identity: ArtifactIdentity) -> datetime | None:
        """Return the watermark for *identity*, or ``None`` if never synced."""
        state = self._ensure_loaded()
        for entry in state.watermarks:
            if entry.type_tag == identity.type_tag and entry.name == identity.name:
                return entry.synced_at
        return None

    def list_all(self) -> list[WatermarkEntry]:
        """All watermarks, most recently synced first (ties by name)."""
        state = self._ensure_loaded()
        by_name = sorted(state.watermarks, key=lambda e: (e.name, e.type_tag))
        return sorted(by_name, key=lambda e: e.synced_at, reverse=True)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set(self, identity: ArtifactIdentity, synced_at: datetime) -> WatermarkEntry:
        """Record *synced_at* as the watermark of *identity* and persist."""
        state = self._ensure_loaded()
        entry = WatermarkEntry(
            name=identity.name, type_tag=identity.type_tag, synced_at=synced_at
        )
        kept = [
            e
            for e in state.watermarks
            if not (e.type_tag == identity.type_tag and e.name == identity.name)
        ]
        self.save(state.model_copy(update={"watermarks": [*kept, entry]}))
        logger.debug("Watermark for %s set to %s", identity, entry.synced_at.isoformat())
        return entry

    def delete(self, name: str, type_tag: str | None = None) -> int:
        """Remove the watermark(s) for *name* and persist.

        Without *type_tag* every artifact type with that name is removed.

        Returns:
            The number of entries removed.
        """
        state = self._ensure_loaded()
        kept = [
            e
            for e in state.watermarks
            if not (e.name == name and (type_tag is None or e.type_tag == type_tag))
        ]
        removed = len(state.watermarks) - len(kept)
        if removed:
            self.save(state.model_copy(update={"watermarks": kept}))
        return removed

    def clear_all(self) -> int:
        """Remove every watermark and persist. Returns the number removed."""
        state = self._ensure_loaded()
        removed = len(state.watermarks)
        self.save(state.model_copy(update={"watermarks": []}))
        return removed

    def record(self, identity: ArtifactIdentity, synced_at: datetime) -> WatermarkEntry:
        """Like :meth:`set`, but report an unreadable or unwritable state
        file as :class:`LocalIOFailed`.
        """
        try:
            return self.set(identity, synced_at)
        except (OSError, ValueError) as exc:
            raise LocalIOFailed(
                f"Cannot record sync of {identity} in {self._state_file}: {exc}"
            ) from exc
