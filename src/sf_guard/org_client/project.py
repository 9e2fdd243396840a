"""Source transfer between the workspace and the org.

Thin wrappers over ``sf project retrieve start`` and
``sf project deploy start``; the transfer itself is the CLI's job.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sf_guard.org_client.runner import SfCliRunner


class ProjectClient:
    """Client for retrieve/deploy of local source paths.

    Args:
        runner: CLI runner bound to the workspace.
        target_org: Username of the org to transfer with.
    """

    def __init__(self, runner: SfCliRunner, target_org: str | None = None) -> None:
        self._runner = runner
        self._target_org = target_org

    def _args(self, action: str, source_path: Path) -> list[str]:
        args = ["project", action, "start", "--source-dir", str(source_path)]
        if self._target_org:
            args.extend(["--target-org", self._target_org])
        return args

    def retrieve(self, source_path: Path) -> dict[str, Any]:
        """Retrieve *source_path* (a file or bundle directory) from the org.

        Raises:
            RemoteQueryFailed: If the CLI reports a failure.
        """
        return self._runner.run_json(*self._args("retrieve", source_path))

    def deploy(self, source_path: Path) -> dict[str, Any]:
        """Deploy *source_path* (a file or bundle directory) to the org.

        Raises:
            RemoteQueryFailed: If the CLI reports a failure.
        """
        return self._runner.run_json(*self._args("deploy", source_path))
