"""Cross-repository aggregation of article metadata.

Four independent passes over a ``RepoRegistry``, each building its index
from scratch: contributors, tags, categories and difficulty buckets. A
repository without ``meta``, or without the field a pass reads, is
skipped by that pass only. Running the passes again over an unchanged
registry yields structurally equal indices.

Aggregation must only run once every loading task of the current cycle
has settled, since a record created mid-pass would change what the
pass iterates.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from hubble.difficulty import difficulty_label
from hubble.models import AggregateIndices, CategoryNode, Contributor

if TYPE_CHECKING:
    from collections.abc import Callable

    from hubble.models import RepoRecord
    from hubble.registry import RepoRegistry

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

CATEGORY_SEPARATOR = "-"


def reduce_contributors(registry: RepoRegistry) -> dict[str, Contributor]:
    """Group repositories by author name.

    The first sighting of a name defines the contributor's extra fields;
    later sightings only append repositories.
    """
    contributors: dict[str, Contributor] = {}
    for repo in registry:
        if repo.meta is None or not repo.meta.authors:
            continue
        for author in repo.meta.authors:
            contributor = contributors.get(author.name)
            if contributor is None:
                contributor = contributors[author.name] = Contributor(
                    name=author.name,
                    fields=author.model_dump(exclude={"name"}),
                )
            contributor.repos.append(repo)
    return contributors


def reduce_tags(registry: RepoRegistry) -> dict[str, list[RepoRecord]]:
    """Bucket repositories by tag, in registry order."""
    tags: dict[str, list[RepoRecord]] = {}
    for repo in registry:
        if repo.meta is None or not repo.meta.tags:
            continue
        for tag in repo.meta.tags:
            tags.setdefault(tag, []).append(repo)
    return tags


def reduce_categories(registry: RepoRegistry) -> dict[str, CategoryNode]:
    """Build the category forest from every repository's category chains.

    Each chain is a descent from the broadest category; chains sharing a
    prefix share nodes. Node ids are the chain so far joined by
    ``CATEGORY_SEPARATOR``. Repositories are not attached to nodes.

    Returns:
        Root nodes keyed by name.
    """
    roots: dict[str, CategoryNode] = {}
    for repo in registry:
        if repo.meta is None or not repo.meta.categories:
            continue
        for chain in repo.meta.categories:
            children = roots
            prefix: list[str] = []
            for category in chain:
                prefix.append(category)
                node = children.get(category)
                if node is None:
                    node = children[category] = CategoryNode(
                        id=CATEGORY_SEPARATOR.join(prefix),
                        name=category,
                    )
                children = node.children
    return roots


def reduce_difficulties(
    registry: RepoRegistry,
    classify: Callable[[int | float | str], str] = difficulty_label,
) -> dict[str, list[RepoRecord]]:
    """Bucket repositories by difficulty label.

    Writes the computed label back to ``meta.difficulty_label``. A falsy
    difficulty (missing, ``0``, empty string) means unrated and is skipped.
    """
    difficulties: dict[str, list[RepoRecord]] = {}
    for repo in registry:
        if repo.meta is None or not repo.meta.difficulty:
            continue
        label = classify(repo.meta.difficulty)
        repo.meta.difficulty_label = label
        difficulties.setdefault(label, []).append(repo)
    return difficulties


def aggregate(
    registry: RepoRegistry,
    classify: Callable[[int | float | str], str] = difficulty_label,
) -> AggregateIndices:
    """Run all four passes and return fresh indices."""
    indices = AggregateIndices(
        contributors=reduce_contributors(registry),
        tags=reduce_tags(registry),
        categories=reduce_categories(registry),
        difficulties=reduce_difficulties(registry, classify),
    )
    logger.info(
        "aggregation_done",
        repos=len(registry),
        contributors=len(indices.contributors),
        tags=len(indices.tags),
        category_roots=len(indices.categories),
        difficulties=len(indices.difficulties),
    )
    return indices
