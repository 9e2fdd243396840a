"""Error taxonomy shared by the org client, the detector and the resolver.

Lower layers raise these; the conflict detector absorbs the query-side
errors into a no-conflict verdict and the resolution engine turns fetch
and local I/O errors into an unresolved outcome.
"""

from __future__ import annotations


class GuardError(Exception):
    """Base class for all sf-guard errors."""


class IdentityUnavailable(GuardError):
    """The acting user's org identity could not be determined."""


class SessionUnavailable(GuardError):
    """No usable session to the org could be built."""


class RemoteQueryFailed(GuardError):
    """A query against the org failed.

    Args:
        message: Human-readable cause.
        auth_failure: ``True`` when the org rejected the session or no
            default org is configured, so cached sessions must be dropped.
    """

    def __init__(self, message: str, *, auth_failure: bool = False) -> None:
        super().__init__(message)
        self.auth_failure = auth_failure


class RemoteRecordNotFound(GuardError):
    """The query succeeded but matched no record."""


class RemoteFetchFailed(GuardError):
    """Remote content for an artifact or bundle member could not be fetched.

    ``auth_failure`` is carried over from the underlying query failure.
    """

    def __init__(self, message: str, *, auth_failure: bool = False) -> None:
        super().__init__(message)
        self.auth_failure = auth_failure


class LocalIOFailed(GuardError):
    """Reading or writing a local file failed."""


class NotAnArtifactError(GuardError, ValueError):
    """The local path does not map to a tracked org artifact."""
