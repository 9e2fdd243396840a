"""Cached, expiring session to the workspace's org.

A session binds the acting user's identity to an ``OrgClient``.  Building
one costs an ``sf org display`` round-trip, so the handle is reused until
it expires and is dropped early when the workspace changes or the org
rejects it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from sf_guard.errors import IdentityUnavailable, SessionUnavailable
from sf_guard.org_client.client import OrgClient
from sf_guard.sync.state import utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=30)


@dataclass(frozen=True)
class SessionHandle:
    """An authenticated connection valid until ``expires_at``."""

    connection: OrgClient
    username: str
    expires_at: datetime


class SessionCache:
    """Holds at most one ``SessionHandle`` and rebuilds it on demand.

    Args:
        identity_lookup: Returns the acting user's login, or ``None`` when
            no org is authenticated.  May raise on CLI failure.
        connection_factory: Builds an ``OrgClient`` scoped to a username.
        ttl: Lifetime of a handle.
        clock: Source of the current time.
    """

    def __init__(
        self,
        identity_lookup: Callable[[], str | None],
        connection_factory: Callable[[str], OrgClient],
        *,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utcnow,
        workspace: Path | None = None,
    ) -> None:
        self._identity_lookup = identity_lookup
        self._connection_factory = connection_factory
        self._ttl = ttl
        self._clock = clock
        self._workspace = workspace
        self._handle: SessionHandle | None = None

    @property
    def current(self) -> SessionHandle | None:
        """The cached handle, if any, without validating its expiry."""
        return self._handle

    def get_session(self) -> SessionHandle:
        """Return a valid handle, building a new one if needed.

        Raises:
            IdentityUnavailable: If no acting user could be determined.
            SessionUnavailable: If building the session failed.
        """
        now = self._clock()
        if self._handle is not None and now < self._handle.expires_at:
            return self._handle

        self._handle = None
        try:
            username = self._identity_lookup()
        except Exception as exc:
            raise SessionUnavailable(f"Identity lookup failed: {exc}") from exc
        if not username:
            raise IdentityUnavailable("No authenticated org user for this workspace")

        try:
            connection = self._connection_factory(username)
        except Exception as exc:
            raise SessionUnavailable(f"Could not connect as {username}: {exc}") from exc

        self._handle = SessionHandle(
            connection=connection,
            username=username,
            expires_at=now + self._ttl,
        )
        logger.info("New org session for %s (expires %s)", username, self._handle.expires_at)
        return self._handle

    def invalidate(self, reason: str = "") -> None:
        """Drop the cached handle so the next call rebuilds from scratch."""
        if self._handle is not None:
            logger.info("Org session invalidated%s", f": {reason}" if reason else "")
        self._handle = None

    def workspace_changed(self, workspace: Path) -> None:
        """Bind to *workspace*, invalidating the handle if it differs."""
        if self._workspace is not None and Path(workspace) != self._workspace:
            self.invalidate(f"workspace changed to {workspace}")
        self._workspace = Path(workspace)
