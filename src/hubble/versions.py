"""Selection of the current snapshot version of a repository."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from hubble.models import VersionInfo


def resolve_current_version(versions: Iterable[VersionInfo]) -> VersionInfo | None:
    """Pick the most recently extracted version.

    The newest modification time wins; on a tie the first version seen
    is kept. An empty sequence means the repository has not been
    ingested yet, which is not an error.

    Args:
        versions: Version descriptors as listed by the snapshot store.

    Returns:
        The current version, or ``None`` when there are no versions.
    """
    current: VersionInfo | None = None
    for version in versions:
        if current is None or version.mtime > current.mtime:
            current = version
    return current
