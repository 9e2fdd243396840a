"""Subprocess wrapper around the Salesforce ``sf`` CLI.

Every org interaction goes through ``sf <command> --json``.  The CLI
prints a JSON envelope with a ``status`` field (``0`` on success) and
either a ``result`` payload or an error ``name``/``message``.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any

from sf_guard.errors import RemoteQueryFailed

logger = logging.getLogger(__name__)

# Error names / message fragments meaning the org session itself is unusable.
_AUTH_FAILURE_MARKERS = (
    "INVALID_SESSION_ID",
    "NoDefaultEnvError",
    "NoOrgFound",
    "NamedOrgNotFound",
    "AuthInfoCreationError",
    "expired access/refresh token",
)


def is_auth_failure(*texts: str) -> bool:
    return any(marker in text for text in texts for marker in _AUTH_FAILURE_MARKERS)


class SfCliRunner:
    """Runs ``sf`` commands in the workspace and decodes their JSON output.

    Args:
        executable: Name or path of the ``sf`` binary.
        cwd: Workspace root the CLI runs in (selects the project's
            default org).
        timeout: Seconds before a single command is abandoned.
    """

    def __init__(
        self,
        executable: str = "sf",
        *,
        cwd: str | Path | None = None,
        timeout: float | None = None,
    ) -> None:
        self._executable = executable
        self._cwd = str(cwd) if cwd is not None else None
        self._timeout = timeout

    @property
    def cwd(self) -> str | None:
        return self._cwd

    def run_json(self, *args: str) -> dict[str, Any]:
        """Run ``sf *args --json`` and return its ``result`` payload.

        Raises:
            RemoteQueryFailed: If the process cannot be started, times out,
                prints something other than JSON, or reports a non-zero
                status.
        """
        command = [self._executable, *args, "--json"]
        label = " ".join(args[:2])
        logger.debug("Running %s", command)

        try:
            proc = subprocess.run(
                command,
                capture_output=True,
                text=True,
                cwd=self._cwd,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise RemoteQueryFailed(f"sf {label} timed out after {exc.timeout}s") from exc
        except OSError as exc:
            raise RemoteQueryFailed(f"Could not run {self._executable}: {exc}") from exc

        try:
            payload = json.loads(proc.stdout) if proc.stdout.strip() else {}
        except json.JSONDecodeError as exc:
            raise RemoteQueryFailed(
                f"sf {label} returned invalid JSON: {proc.stdout[:200]!r}"
            ) from exc
        if not isinstance(payload, dict):
            raise RemoteQueryFailed(f"sf {label} returned an unexpected payload")

        status = payload.get("status", proc.returncode)
        if proc.returncode != 0 or status != 0:
            name = str(payload.get("name", ""))
            message = str(payload.get("message") or proc.stderr.strip() or "unknown error")
            raise RemoteQueryFailed(
                f"sf {label} failed: {name + ': ' if name else ''}{message}",
                auth_failure=is_auth_failure(name, message),
            )

        result = payload.get("result")
        return result if isinstance(result, dict) else {}
