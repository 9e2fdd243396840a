"""Metadata queries against the org through ``sf data query``.

Wraps the two reads the guard needs: who last modified an artifact and
when, and the artifact's current source text.  Queries are always
scoped by the artifact's exact name and type; bundle members are further
scoped by their exact file path inside the bundle.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sf_guard.errors import RemoteFetchFailed, RemoteQueryFailed, RemoteRecordNotFound
from sf_guard.org_client.runner import SfCliRunner
from sf_guard.sync.resolver import BUNDLE_MARKER, ArtifactIdentity, ArtifactKind

logger = logging.getLogger(__name__)

_OFFSET_WITHOUT_COLON = re.compile(r"([+-]\d{2})(\d{2})$")


@dataclass(frozen=True)
class ModificationInfo:
    """Last-modification metadata of an org artifact."""

    last_modified_at: datetime
    modified_by_name: str
    modified_by_username: str


def soql_literal(value: str) -> str:
    """Quote *value* as a SOQL string literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def parse_org_datetime(value: str) -> datetime:
    """Parse an org timestamp such as ``2024-05-01T10:15:30.000+0000``.

    Raises:
        ValueError: If *value* is not an ISO-8601 timestamp.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _OFFSET_WITHOUT_COLON.sub(r"\1:\2", text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def member_file_path(identity: ArtifactIdentity, member_file: str) -> str:
    """Org-side ``FilePath`` of a bundle member, e.g. ``lwc/invoice/invoice.js``."""
    return f"{BUNDLE_MARKER}/{identity.name}/{member_file}"


class MetadataClient:
    """Client for metadata reads against one org.

    Args:
        runner: CLI runner bound to the workspace.
        target_org: Username of the org to query.
    """

    def __init__(self, runner: SfCliRunner, target_org: str | None = None) -> None:
        self._runner = runner
        self._target_org = target_org

    # ------------------------------------------------------------------
    # Raw query
    # ------------------------------------------------------------------

    def query(self, soql: str, *, tooling: bool = False) -> list[dict[str, Any]]:
        """Run a SOQL query and return its records.

        Raises:
            RemoteQueryFailed: If the CLI call fails.
        """
        args = ["data", "query", "--query", soql]
        if tooling:
            args.append("--use-tooling-api")
        if self._target_org:
            args.extend(["--target-org", self._target_org])
        result = self._runner.run_json(*args)
        records = result.get("records") or []
        return [r for r in records if isinstance(r, dict)]

    # ------------------------------------------------------------------
    # Last modification
    # ------------------------------------------------------------------

    def modification_query(self, identity: ArtifactIdentity) -> str:
        name_field = "DeveloperName" if identity.kind is ArtifactKind.BUNDLE else "Name"
        return (
            "SELECT LastModifiedDate, LastModifiedBy.Name, LastModifiedBy.Username "
            f"FROM {identity.type_tag} "
            f"WHERE {name_field} = {soql_literal(identity.name)}"
        )

    def get_modification_info(self, identity: ArtifactIdentity) -> ModificationInfo:
        """Fetch who last modified *identity* in the org, and when.

        Raises:
            RemoteQueryFailed: If the query fails or returns an unusable record.
            RemoteRecordNotFound: If the artifact does not exist in the org.
        """
        records = self.query(
            self.modification_query(identity), tooling=identity.spec.tooling
        )
        if not records:
            raise RemoteRecordNotFound(f"{identity} not found in org")
        if len(records) > 1:
            logger.warning("%d org records match %s; using the first", len(records), identity)

        record = records[0]
        modified_by = record.get("LastModifiedBy") or {}
        try:
            last_modified_at = parse_org_datetime(str(record["LastModifiedDate"]))
        except (KeyError, ValueError) as exc:
            raise RemoteQueryFailed(
                f"Unusable LastModifiedDate for {identity}: {record.get('LastModifiedDate')!r}"
            ) from exc

        return ModificationInfo(
            last_modified_at=last_modified_at,
            modified_by_name=modified_by.get("Name") or "Unknown",
            modified_by_username=modified_by.get("Username") or "",
        )

    # ------------------------------------------------------------------
    # Source content
    # ------------------------------------------------------------------

    def source_query(self, identity: ArtifactIdentity, member_file: str | None = None) -> str:
        if identity.kind is ArtifactKind.BUNDLE:
            if not member_file:
                raise ValueError(f"Bundle {identity} needs a member file to fetch")
            return (
                "SELECT Source FROM LightningComponentResource "
                f"WHERE LightningComponentBundle.DeveloperName = {soql_literal(identity.name)} "
                f"AND FilePath = {soql_literal(member_file_path(identity, member_file))}"
            )
        return (
            f"SELECT {identity.spec.content_field} FROM {identity.type_tag} "
            f"WHERE Name = {soql_literal(identity.name)}"
        )

    def get_source(self, identity: ArtifactIdentity, member_file: str | None = None) -> str:
        """Fetch the org's current source text for an artifact or bundle member.

        Args:
            identity: The artifact to fetch.
            member_file: File name of the bundle member (bundles only).

        Raises:
            RemoteFetchFailed: If the query fails or matches no record.
        """
        target = f"{identity}/{member_file}" if member_file else str(identity)
        try:
            records = self.query(
                self.source_query(identity, member_file), tooling=identity.spec.tooling
            )
        except RemoteQueryFailed as exc:
            raise RemoteFetchFailed(
                f"Could not fetch {target}: {exc}", auth_failure=exc.auth_failure
            ) from exc

        if not records:
            raise RemoteFetchFailed(f"{target} not found in org")

        content = records[0].get(identity.spec.content_field)
        if content is None:
            raise RemoteFetchFailed(f"{target} has no {identity.spec.content_field} in org")
        return str(content)
