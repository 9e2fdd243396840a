"""Shared test fixtures for sf-guard."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest

from sf_guard.errors import RemoteFetchFailed, RemoteRecordNotFound
from sf_guard.org_client.metadata import ModificationInfo
from sf_guard.org_client.session import SessionCache
from sf_guard.sync.engine import GuardEngine
from sf_guard.sync.resolver import ArtifactIdentity
from sf_guard.sync.state import WatermarkStore

if TYPE_CHECKING:
    from pathlib import Path

T0 = datetime(2026, 1, 5, 12, 0, 0, 123456, tzinfo=timezone.utc)
ACTING_USER = "jane.doe@acme.com"


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeMetadata:
    """In-memory stand-in for ``MetadataClient``."""

    def __init__(self) -> None:
        self.info: dict[str, ModificationInfo | Exception] = {}
        self.sources: dict[tuple[str, str | None], str | Exception] = {}
        self.info_calls: list[str] = []
        self.source_calls: list[tuple[str, str | None]] = []

    def modified(
        self,
        identity: ArtifactIdentity,
        at: datetime,
        *,
        name: str = "Jane Doe",
        username: str = ACTING_USER,
    ) -> None:
        self.info[str(identity)] = ModificationInfo(at, name, username)

    def get_modification_info(self, identity: ArtifactIdentity) -> ModificationInfo:
        self.info_calls.append(str(identity))
        value = self.info.get(str(identity))
        if value is None:
            raise RemoteRecordNotFound(f"{identity} not found in org")
        if isinstance(value, Exception):
            raise value
        return value

    def get_source(self, identity: ArtifactIdentity, member_file: str | None = None) -> str:
        key = (str(identity), member_file)
        self.source_calls.append(key)
        value = self.sources.get(key)
        if value is None:
            raise RemoteFetchFailed(f"{identity}/{member_file} not found in org")
        if isinstance(value, Exception):
            raise value
        return value


class FakeOrg:
    """Stand-in for ``OrgClient``: fake metadata, mocked project transfers."""

    def __init__(self) -> None:
        self.metadata = FakeMetadata()
        self.project = MagicMock()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def org() -> FakeOrg:
    return FakeOrg()


@pytest.fixture
def identity_lookup() -> MagicMock:
    return MagicMock(return_value=ACTING_USER)


@pytest.fixture
def sessions(identity_lookup: MagicMock, org: FakeOrg, clock: FakeClock) -> SessionCache:
    return SessionCache(identity_lookup, lambda username: org, clock=clock)  # type: ignore[arg-type, return-value]


@pytest.fixture
def store(tmp_path: Path) -> WatermarkStore:
    return WatermarkStore(tmp_path / ".sfguard" / "state.json")


@pytest.fixture
def engine(
    sessions: SessionCache, store: WatermarkStore, clock: FakeClock, tmp_path: Path
) -> GuardEngine:
    return GuardEngine(sessions, store, tmp_path / ".sfguard-temp", clock=clock)


@pytest.fixture
def blocked_store(tmp_path: Path) -> WatermarkStore:
    """A store whose state directory is occupied by a regular file."""
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    return WatermarkStore(blocker / "state.json")
