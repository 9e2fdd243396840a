"""Composed org client that exposes all sub-clients.

``OrgClient`` is the connection object held by a session: it binds a CLI
runner to one target org and exposes domain-specific sub-clients as
properties.
"""

from __future__ import annotations

from sf_guard.org_client.metadata import MetadataClient
from sf_guard.org_client.project import ProjectClient
from sf_guard.org_client.runner import SfCliRunner


class OrgClient:
    """Unified org client composing the metadata and project sub-clients.

    Usage::

        client = OrgClient(SfCliRunner(cwd=workspace), target_org="me@example.com")
        info = client.metadata.get_modification_info(identity)
        client.project.deploy(path)

    Args:
        runner: CLI runner bound to the workspace.
        target_org: Username every command is scoped to.
    """

    def __init__(self, runner: SfCliRunner, target_org: str | None = None) -> None:
        self._runner = runner
        self._target_org = target_org

        self._metadata: MetadataClient | None = None
        self._project: ProjectClient | None = None

    @property
    def target_org(self) -> str | None:
        return self._target_org

    @property
    def metadata(self) -> MetadataClient:
        """Last-modification queries and source fetches."""
        if self._metadata is None:
            self._metadata = MetadataClient(self._runner, self._target_org)
        return self._metadata

    @property
    def project(self) -> ProjectClient:
        """Retrieve and deploy operations."""
        if self._project is None:
            self._project = ProjectClient(self._runner, self._target_org)
        return self._project
