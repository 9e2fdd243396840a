"""Tests for diffing and resolving single files and component bundles."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from conftest import T0, FakeClock, FakeOrg

from sf_guard.errors import RemoteFetchFailed, RemoteQueryFailed
from sf_guard.org_client.session import SessionCache
from sf_guard.sync.resolution import (
    MemberDiff,
    ResolutionEngine,
    ResolutionStatus,
    ResolutionStrategy,
)
from sf_guard.sync.resolver import ArtifactIdentity, resolve_artifact
from sf_guard.sync.state import WatermarkStore

LOCAL_CLASS = b"public class Invoice {\n    // local edit\n}\n"
ORG_CLASS = "public class Invoice {\n    // org edit\n}\n"


@pytest.fixture
def resolver(
    sessions: SessionCache, store: WatermarkStore, clock: FakeClock, tmp_path: Path
) -> ResolutionEngine:
    return ResolutionEngine(sessions, store, tmp_path / ".sfguard-temp", clock=clock)


@pytest.fixture
def apex_file(tmp_path: Path, org: FakeOrg) -> Path:
    path = tmp_path / "force-app" / "classes" / "Invoice.cls"
    path.parent.mkdir(parents=True)
    path.write_bytes(LOCAL_CLASS)
    org.metadata.sources[("ApexClass:Invoice", None)] = ORG_CLASS
    return path


@pytest.fixture
def bundle(tmp_path: Path, org: FakeOrg) -> Path:
    """A three-member bundle where only the template differs from the org."""
    directory = tmp_path / "force-app" / "lwc" / "invoiceList"
    directory.mkdir(parents=True)
    members = {
        "invoiceList.css": ":host { display: block; }\n",
        "invoiceList.html": "<template><p>local</p></template>\n",
        "invoiceList.js": "export default class InvoiceList {}\n",
    }
    for name, content in members.items():
        (directory / name).write_text(content)
        org.metadata.sources[("LightningComponentBundle:invoiceList", name)] = content
    (directory / "invoiceList.js-meta.xml").write_text("<LightningComponentBundle/>")
    org.metadata.sources[("LightningComponentBundle:invoiceList", "invoiceList.html")] = (
        "<template><p>org</p></template>\n"
    )
    return directory


def _identity(path: Path) -> ArtifactIdentity:
    identity = resolve_artifact(path)
    assert identity is not None
    return identity


def _always(strategy: ResolutionStrategy | None) -> MagicMock:
    return MagicMock(return_value=strategy)


class TestSingleFile:
    def test_adopt_remote_overwrites_local(
        self, resolver: ResolutionEngine, apex_file: Path, store: WatermarkStore
    ) -> None:
        outcome = resolver.resolve(
            _identity(apex_file), apex_file, _always(ResolutionStrategy.ADOPT_REMOTE)
        )

        assert outcome.status is ResolutionStatus.RESOLVED
        assert apex_file.read_text() == ORG_CLASS
        assert outcome.updated_paths == [str(apex_file)]
        assert store.get(_identity(apex_file)) == T0

    def test_snapshot_written_next_to_workspace(
        self, resolver: ResolutionEngine, apex_file: Path, tmp_path: Path
    ) -> None:
        choose = _always(ResolutionStrategy.KEEP_LOCAL)
        resolver.resolve(_identity(apex_file), apex_file, choose)

        (identity, diffs), _ = choose.call_args
        assert len(diffs) == 1
        snapshot = Path(diffs[0].remote_snapshot_path)
        assert snapshot == tmp_path / ".sfguard-temp" / "Invoice_ORG.cls"
        assert snapshot.read_text() == ORG_CLASS
        assert "-    // org edit" in diffs[0].diff
        assert "+    // local edit" in diffs[0].diff

    def test_keep_local_leaves_content_and_marks_synced(
        self, resolver: ResolutionEngine, apex_file: Path, store: WatermarkStore
    ) -> None:
        outcome = resolver.resolve(
            _identity(apex_file), apex_file, _always(ResolutionStrategy.KEEP_LOCAL)
        )

        assert outcome.resolved
        assert apex_file.read_bytes() == LOCAL_CLASS
        assert store.get(_identity(apex_file)) == T0

    def test_manual_is_unresolved_but_marks_synced(
        self, resolver: ResolutionEngine, apex_file: Path, store: WatermarkStore
    ) -> None:
        outcome = resolver.resolve(
            _identity(apex_file), apex_file, _always(ResolutionStrategy.MANUAL)
        )

        assert outcome.status is ResolutionStatus.UNRESOLVED
        assert outcome.strategy is ResolutionStrategy.MANUAL
        assert apex_file.read_bytes() == LOCAL_CLASS
        assert store.get(_identity(apex_file)) == T0

    def test_cancel_changes_nothing(
        self, resolver: ResolutionEngine, apex_file: Path, store: WatermarkStore
    ) -> None:
        outcome = resolver.resolve(_identity(apex_file), apex_file, _always(None))

        assert not outcome.resolved
        assert apex_file.read_bytes() == LOCAL_CLASS
        assert store.get(_identity(apex_file)) is None

    def test_identical_single_file_is_still_presented(
        self, resolver: ResolutionEngine, apex_file: Path, org: FakeOrg
    ) -> None:
        org.metadata.sources[("ApexClass:Invoice", None)] = LOCAL_CLASS.decode()
        choose = _always(ResolutionStrategy.KEEP_LOCAL)

        resolver.resolve(_identity(apex_file), apex_file, choose)

        (_, diffs), _ = choose.call_args
        assert [d.diff for d in diffs] == [""]

    def test_fetch_failure_is_unresolved_without_writes(
        self, resolver: ResolutionEngine, apex_file: Path, org: FakeOrg, store: WatermarkStore
    ) -> None:
        org.metadata.sources[("ApexClass:Invoice", None)] = RemoteFetchFailed("not in org")
        choose = _always(ResolutionStrategy.ADOPT_REMOTE)

        outcome = resolver.resolve(_identity(apex_file), apex_file, choose)

        assert not outcome.resolved
        assert "not in org" in outcome.message
        choose.assert_not_called()
        assert apex_file.read_bytes() == LOCAL_CLASS
        assert store.get(_identity(apex_file)) is None

    def test_missing_local_file_is_unresolved(
        self, resolver: ResolutionEngine, tmp_path: Path
    ) -> None:
        missing = tmp_path / "classes" / "Ghost.cls"
        outcome = resolver.resolve(_identity(missing), missing, _always(ResolutionStrategy.KEEP_LOCAL))

        assert not outcome.resolved
        assert "Cannot read" in outcome.message

    def test_no_session_is_unresolved(
        self, resolver: ResolutionEngine, apex_file: Path, identity_lookup: MagicMock
    ) -> None:
        identity_lookup.return_value = None

        outcome = resolver.resolve(
            _identity(apex_file), apex_file, _always(ResolutionStrategy.ADOPT_REMOTE)
        )

        assert not outcome.resolved
        assert apex_file.read_bytes() == LOCAL_CLASS


class TestBundle:
    def test_only_differing_members_are_presented(
        self, resolver: ResolutionEngine, bundle: Path
    ) -> None:
        choose = _always(ResolutionStrategy.KEEP_LOCAL)
        member = bundle / "invoiceList.js"

        resolver.resolve(_identity(member), member, choose)

        choose.assert_called_once()
        (_, diffs), _ = choose.call_args
        assert [d.member_name for d in diffs] == ["invoiceList.html"]
        assert isinstance(diffs[0], MemberDiff)

    def test_adopt_remote_touches_only_differing_member(
        self, resolver: ResolutionEngine, bundle: Path, store: WatermarkStore
    ) -> None:
        before = {p.name: p.read_bytes() for p in bundle.iterdir()}
        member = bundle / "invoiceList.css"

        outcome = resolver.resolve(
            _identity(member), member, _always(ResolutionStrategy.ADOPT_REMOTE)
        )

        assert outcome.resolved
        assert outcome.updated_paths == [str(bundle / "invoiceList.html")]
        assert (bundle / "invoiceList.html").read_text() == "<template><p>org</p></template>\n"
        for name in ("invoiceList.css", "invoiceList.js", "invoiceList.js-meta.xml"):
            assert (bundle / name).read_bytes() == before[name]
        assert sorted(p.name for p in bundle.iterdir()) == sorted(before)
        assert store.get(_identity(member)) == T0

    def test_members_fetched_sequentially_by_exact_file(
        self, resolver: ResolutionEngine, bundle: Path, org: FakeOrg
    ) -> None:
        member = bundle / "invoiceList.js"
        resolver.resolve(_identity(member), member, _always(ResolutionStrategy.KEEP_LOCAL))

        assert org.metadata.source_calls == [
            ("LightningComponentBundle:invoiceList", "invoiceList.css"),
            ("LightningComponentBundle:invoiceList", "invoiceList.html"),
            ("LightningComponentBundle:invoiceList", "invoiceList.js"),
        ]

    def test_bundle_snapshots_grouped_by_bundle(
        self, resolver: ResolutionEngine, bundle: Path, tmp_path: Path
    ) -> None:
        choose = _always(ResolutionStrategy.MANUAL)
        member = bundle / "invoiceList.js"

        resolver.resolve(_identity(member), member, choose)

        (_, diffs), _ = choose.call_args
        assert Path(diffs[0].remote_snapshot_path) == (
            tmp_path / ".sfguard-temp" / "invoiceList" / "invoiceList_ORG.html"
        )

    def test_matching_bundle_short_circuits(
        self, resolver: ResolutionEngine, bundle: Path, org: FakeOrg, store: WatermarkStore
    ) -> None:
        org.metadata.sources[("LightningComponentBundle:invoiceList", "invoiceList.html")] = (
            "<template><p>local</p></template>\n"
        )
        choose = _always(ResolutionStrategy.ADOPT_REMOTE)
        member = bundle / "invoiceList.js"

        outcome = resolver.resolve(_identity(member), member, choose)

        assert outcome.resolved
        assert outcome.diffs == []
        choose.assert_not_called()
        assert store.get(_identity(member)) is None

    def test_one_failed_member_fetch_aborts_everything(
        self, resolver: ResolutionEngine, bundle: Path, org: FakeOrg, store: WatermarkStore
    ) -> None:
        org.metadata.sources[("LightningComponentBundle:invoiceList", "invoiceList.js")] = (
            RemoteFetchFailed("invoiceList.js not found in org")
        )
        before = {p.name: p.read_bytes() for p in bundle.iterdir()}
        choose = _always(ResolutionStrategy.ADOPT_REMOTE)
        member = bundle / "invoiceList.html"

        outcome = resolver.resolve(_identity(member), member, choose)

        assert outcome.status is ResolutionStatus.UNRESOLVED
        choose.assert_not_called()
        assert {p.name: p.read_bytes() for p in bundle.iterdir()} == before
        assert store.get(_identity(member)) is None

    def test_manual_on_bundle_keeps_every_member(
        self, resolver: ResolutionEngine, bundle: Path, store: WatermarkStore
    ) -> None:
        before = {p.name: p.read_bytes() for p in bundle.iterdir()}
        member = bundle / "invoiceList.js"

        outcome = resolver.resolve(_identity(member), member, _always(ResolutionStrategy.MANUAL))

        assert not outcome.resolved
        assert {p.name: p.read_bytes() for p in bundle.iterdir()} == before
        assert store.get(_identity(member)) == T0


class TestFailureHandling:
    def test_unsaveable_watermark_is_unresolved_after_adopt(
        self,
        sessions: SessionCache,
        blocked_store: WatermarkStore,
        clock: FakeClock,
        tmp_path: Path,
        apex_file: Path,
    ) -> None:
        resolver = ResolutionEngine(sessions, blocked_store, tmp_path / ".sfguard-temp", clock=clock)

        outcome = resolver.resolve(
            _identity(apex_file), apex_file, _always(ResolutionStrategy.ADOPT_REMOTE)
        )

        assert outcome.status is ResolutionStatus.UNRESOLVED
        assert outcome.strategy is ResolutionStrategy.ADOPT_REMOTE
        assert outcome.updated_paths == [str(apex_file)]
        assert "Cannot record sync" in outcome.message
        assert apex_file.read_text() == ORG_CLASS

    def test_unsaveable_watermark_on_keep_local_is_unresolved(
        self,
        sessions: SessionCache,
        blocked_store: WatermarkStore,
        clock: FakeClock,
        tmp_path: Path,
        apex_file: Path,
    ) -> None:
        resolver = ResolutionEngine(sessions, blocked_store, tmp_path / ".sfguard-temp", clock=clock)

        outcome = resolver.resolve(
            _identity(apex_file), apex_file, _always(ResolutionStrategy.KEEP_LOCAL)
        )

        assert not outcome.resolved
        assert apex_file.read_bytes() == LOCAL_CLASS

    def test_auth_failure_during_fetch_drops_session(
        self, resolver: ResolutionEngine, apex_file: Path, org: FakeOrg, sessions: SessionCache
    ) -> None:
        cause = RemoteQueryFailed("INVALID_SESSION_ID", auth_failure=True)
        org.metadata.sources[("ApexClass:Invoice", None)] = RemoteFetchFailed(
            f"Could not fetch ApexClass:Invoice: {cause}", auth_failure=True
        )

        outcome = resolver.resolve(
            _identity(apex_file), apex_file, _always(ResolutionStrategy.ADOPT_REMOTE)
        )

        assert not outcome.resolved
        assert sessions.current is None

    def test_other_fetch_failures_keep_session(
        self, resolver: ResolutionEngine, apex_file: Path, org: FakeOrg, sessions: SessionCache
    ) -> None:
        org.metadata.sources[("ApexClass:Invoice", None)] = RemoteFetchFailed("not in org")

        resolver.resolve(_identity(apex_file), apex_file, _always(ResolutionStrategy.ADOPT_REMOTE))

        assert sessions.current is not None
