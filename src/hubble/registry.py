"""In-memory registry of repository records.

The registry is an explicit object handed to every component; there is
no module-level store, so independent pipelines never share state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from hubble.models import RepoRecord

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


class RepoRegistry:
    """Mapping from repository name to its ``RepoRecord``.

    Records are created on first sighting and never removed; iteration
    follows creation order.
    """

    def __init__(self) -> None:
        self._repos: dict[str, RepoRecord] = {}

    def __iter__(self) -> Iterator[RepoRecord]:
        return iter(list(self._repos.values()))

    def __len__(self) -> int:
        return len(self._repos)

    def __contains__(self, name: object) -> bool:
        return name in self._repos

    def names(self) -> list[str]:
        return list(self._repos)

    def get(self, name: str) -> RepoRecord | None:
        return self._repos.get(name)

    def get_or_create(self, name: str) -> RepoRecord:
        repo = self._repos.get(name)
        if repo is None:
            repo = self._repos[name] = RepoRecord(name=name)
            logger.debug("repo_registered", repo=name)
        return repo

    def update_github(self, listing: Iterable[dict[str, Any]]) -> int:
        """Seed or refresh ``github`` facts from an org listing.

        Args:
            listing: Repository fact records, each with a ``name`` key.

        Returns:
            The number of records applied.
        """
        count = 0
        for facts in listing:
            name = facts.get("name")
            if not isinstance(name, str) or not name:
                logger.warning("listing_entry_without_name", entry=facts)
                continue
            self.get_or_create(name).github = facts
            count += 1
        return count
