"""Best-effort match between the acting user and an org record's modifier.

Used only when an artifact has never been synced from this workspace, so
there is no watermark to compare against.  The org reports the modifier
as a display name (``Jane Doe``) and a login (``jane.doe@acme.com``),
while the local CLI reports a login or an alias; the three are compared
case-insensitively:

* the modifier's login equals the acting user, or
* the modifier's display name contains the acting user, or
* the acting user contains the modifier's login.

Substring matches only count when the contained string is at least
``MIN_SUBSTRING_MATCH`` characters long, and empty strings never match,
so a short alias such as ``al`` does not match ``Alice Walker``.
"""

from __future__ import annotations

MIN_SUBSTRING_MATCH = 4


def _normalize(value: str | None) -> str:
    return (value or "").strip().casefold()


def _contains(haystack: str, needle: str) -> bool:
    return len(needle) >= MIN_SUBSTRING_MATCH and needle in haystack


def is_acting_user(
    acting_user: str | None,
    modified_by_name: str | None,
    modified_by_username: str | None,
) -> bool:
    """Return ``True`` if the org modifier appears to be *acting_user*."""
    me = _normalize(acting_user)
    if not me:
        return False

    login = _normalize(modified_by_username)
    display = _normalize(modified_by_name)

    if login and login == me:
        return True
    if display and _contains(display, me):
        return True
    return bool(login) and _contains(me, login)
