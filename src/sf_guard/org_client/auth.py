"""Acting-user lookup for the workspace's default org."""

from __future__ import annotations

import logging

from sf_guard.errors import RemoteQueryFailed
from sf_guard.org_client.runner import SfCliRunner

logger = logging.getLogger(__name__)


def lookup_username(runner: SfCliRunner) -> str | None:
    """Return the login (or alias) of the workspace's default org user.

    A workspace without an authenticated default org is a legitimate
    state, reported as ``None``.

    Raises:
        RemoteQueryFailed: If the CLI fails for any other reason.
    """
    try:
        result = runner.run_json("org", "display")
    except RemoteQueryFailed as exc:
        if exc.auth_failure:
            logger.info("No authenticated default org: %s", exc)
            return None
        raise

    return result.get("username") or result.get("alias") or None
