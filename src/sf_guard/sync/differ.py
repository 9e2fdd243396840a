"""Diffing utilities for comparing local files with org snapshots.

Equality is decided byte-for-byte; the unified diff is only rendered for
display.
"""

from __future__ import annotations

import difflib


def encode_remote(content: str) -> bytes:
    """Bytes a remote snapshot is written as (UTF-8, line endings untouched)."""
    return content.encode("utf-8")


class SyncDiffer:
    """Stateless helper for detecting and displaying differences between
    a local file and its org counterpart.
    """

    @staticmethod
    def is_identical(local_content: bytes, remote_content: str) -> bool:
        """``True`` if the local bytes equal the org content exactly."""
        return local_content == encode_remote(remote_content)

    @staticmethod
    def compute_diff(
        local_content: str,
        remote_content: str,
        *,
        label: str = "",
    ) -> str:
        """Generate a unified diff from the org version to the local one.

        Both inputs are normalized to ``\\n`` line endings so the rendered
        diff does not show spurious line-ending changes.

        Returns:
            A unified diff string, empty if the contents render identically.
        """
        local_lines = local_content.replace("\r\n", "\n").replace("\r", "\n").splitlines(keepends=True)
        remote_lines = remote_content.replace("\r\n", "\n").replace("\r", "\n").splitlines(keepends=True)

        suffix = f" {label}" if label else ""
        diff = difflib.unified_diff(
            remote_lines,
            local_lines,
            fromfile=f"org{suffix}",
            tofile=f"local{suffix}",
        )
        return "".join(diff)
