"""Map local source paths to the org artifacts they belong to.

Single-file metadata (Apex classes, triggers, Visualforce pages and
components) is identified by its file extension.  Lightning Web Component
files are only artifacts when they live below an ``lwc`` directory; every
file of a component bundle resolves to the bundle's name so that the whole
bundle shares one identity and one watermark.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path


class ArtifactKind(StrEnum):
    """Shape of an artifact on disk."""

    SINGLE_FILE = "single_file"
    BUNDLE = "bundle"


@dataclass(frozen=True)
class TypeSpec:
    """How an artifact type is stored and queried in the org."""

    type_tag: str
    content_field: str
    tooling: bool = False


@dataclass(frozen=True)
class ArtifactIdentity:
    """Logical identity of an org artifact."""

    kind: ArtifactKind
    type_tag: str
    name: str

    @property
    def spec(self) -> TypeSpec:
        return TYPE_SPECS[self.type_tag]

    def __str__(self) -> str:
        return f"{self.type_tag}:{self.name}"


SINGLE_FILE_TYPES: dict[str, TypeSpec] = {
    ".cls": TypeSpec("ApexClass", "Body"),
    ".trigger": TypeSpec("ApexTrigger", "Body"),
    ".page": TypeSpec("ApexPage", "Markup"),
    ".component": TypeSpec("ApexComponent", "Markup"),
}

BUNDLE_MARKER = "lwc"
BUNDLE_TYPE = TypeSpec("LightningComponentBundle", "Source", tooling=True)
BUNDLE_MEMBER_EXTENSIONS: tuple[str, ...] = (".js", ".html", ".css")

TYPE_SPECS: dict[str, TypeSpec] = {
    spec.type_tag: spec for spec in (*SINGLE_FILE_TYPES.values(), BUNDLE_TYPE)
}

_SEPARATORS = re.compile(r"[\\/]")


def _split(local_path: str | Path) -> list[str]:
    return [part for part in _SEPARATORS.split(str(local_path)) if part]


def _extension(file_name: str) -> str:
    dot = file_name.rfind(".")
    if dot <= 0:
        return ""
    return file_name[dot:].lower()


def _marker_index(parts: list[str]) -> int | None:
    """Index of the bundle marker segment, if a bundle directory follows it.

    The marker must be followed by at least the bundle directory and the
    file itself, so a file sitting directly in ``lwc/`` is not a member.
    """
    for index, part in enumerate(parts):
        if part == BUNDLE_MARKER and index < len(parts) - 2:
            return index
    return None


def resolve_artifact(local_path: str | Path) -> ArtifactIdentity | None:
    """Resolve a local path to its artifact identity.

    Pure string inspection; the file does not need to exist.

    Args:
        local_path: Absolute or relative path of a local source file.

    Returns:
        The ``ArtifactIdentity``, or ``None`` if the path is not an
        artifact this tool tracks.
    """
    parts = _split(local_path)
    if not parts:
        return None

    file_name = parts[-1]
    ext = _extension(file_name)

    spec = SINGLE_FILE_TYPES.get(ext)
    if spec is not None:
        return ArtifactIdentity(
            kind=ArtifactKind.SINGLE_FILE,
            type_tag=spec.type_tag,
            name=file_name[: -len(ext)],
        )

    if ext in BUNDLE_MEMBER_EXTENSIONS:
        index = _marker_index(parts)
        if index is not None:
            return ArtifactIdentity(
                kind=ArtifactKind.BUNDLE,
                type_tag=BUNDLE_TYPE.type_tag,
                name=parts[index + 1],
            )

    return None


def bundle_directory(local_path: str | Path) -> Path:
    """Return the bundle directory (``.../lwc/<bundle>``) of a member path.

    Raises:
        ValueError: If the path is not inside a bundle.
    """
    path = Path(local_path)
    parts = _split(local_path)
    index = _marker_index(parts)
    if index is None:
        raise ValueError(f"Not inside a component bundle: {local_path}")
    # Walk up from the file so the returned path keeps the caller's anchor.
    return path.parents[len(parts) - index - 3]


def artifact_source_path(local_path: str | Path, identity: ArtifactIdentity) -> Path:
    """Path that retrieve/deploy should operate on for *identity*."""
    if identity.kind is ArtifactKind.BUNDLE:
        return bundle_directory(local_path)
    return Path(local_path)


def bundle_members(directory: Path) -> list[Path]:
    """List the member files of a bundle directory, sorted by file name.

    Only direct children with a member extension are considered;
    metadata XML and test sub-directories are ignored.
    """
    return sorted(
        (
            entry
            for entry in directory.iterdir()
            if entry.is_file() and _extension(entry.name) in BUNDLE_MEMBER_EXTENSIONS
        ),
        key=lambda entry: entry.name,
    )
