"""Data models for repository records, metadata and aggregate indices.

Metadata authored inside external repositories is loosely shaped, so
``ArticleMeta`` normalizes it once at the ingestion boundary: categories
always become a list of chains, tags a list of strings, authors a list
of ``Author`` records. Everything downstream relies on that shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Metadata (parsed from article.json)
# ---------------------------------------------------------------------------


class Author(BaseModel):
    """One entry of ``meta.authors``; unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    name: str


class ArticleMeta(BaseModel):
    """Structured metadata authored in a repository's metadata file."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    title: str | None = None
    description: str | None = None
    authors: list[Author] | None = None
    tags: list[str] | None = None
    categories: list[list[str]] | None = None
    difficulty: int | float | str | None = None
    difficulty_label: str | None = Field(default=None, alias="difficultyLabel")

    @field_validator("authors", mode="before")
    @classmethod
    def _normalize_authors(cls, value: Any) -> Any:
        if isinstance(value, str | dict):
            value = [value]
        if isinstance(value, list):
            return [{"name": item} if isinstance(item, str) else item for item in value]
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("categories", mode="before")
    @classmethod
    def _normalize_categories(cls, value: Any) -> Any:
        """Accept a name, a single chain, or a list of chains."""
        if value is None:
            return None
        if isinstance(value, str):
            return [[value]]
        if not isinstance(value, list):
            raise ValueError("categories must be a string or a list")
        chains: list[list[Any]] = []
        for item in value:
            if isinstance(item, list):
                chains.append(item)
            else:
                chains.append([item])
        return chains


# ---------------------------------------------------------------------------
# Repository record
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class FileEntry:
    """Per-file cache for one content file inside a version directory."""

    meta: ArticleMeta | None = None
    markup: str | None = None


@dataclass(slots=True)
class RepoRecord:
    """In-memory aggregate for one repository.

    ``markup`` holds the raw markdown of the primary article while
    ``files[path].markup`` holds the rendered HTML of each file.
    """

    name: str
    github: dict[str, Any] = field(default_factory=dict)
    meta: ArticleMeta | None = None
    files: dict[str, FileEntry] = field(default_factory=dict)
    markup: str | None = None
    composed: str | None = None

    def file_entry(self, path: str) -> FileEntry:
        entry = self.files.get(path)
        if entry is None:
            entry = self.files[path] = FileEntry()
        return entry


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class VersionInfo:
    """One extracted version directory of a repository."""

    path: str
    mtime: float


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class CategoryNode:
    """A node of the category forest; ``id`` is the chain joined by ``-``."""

    id: str
    name: str
    children: dict[str, CategoryNode] = field(default_factory=dict)


@dataclass(slots=True)
class Contributor:
    """A contributor identity shared by every repository listing them."""

    name: str
    fields: dict[str, Any] = field(default_factory=dict)
    repos: list[RepoRecord] = field(default_factory=list)


@dataclass(slots=True)
class AggregateIndices:
    """The four derived indices produced by one aggregation run."""

    contributors: dict[str, Contributor] = field(default_factory=dict)
    tags: dict[str, list[RepoRecord]] = field(default_factory=dict)
    categories: dict[str, CategoryNode] = field(default_factory=dict)
    difficulties: dict[str, list[RepoRecord]] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Batch outcomes
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class IngestOutcome:
    """Result of one repository's ingestion task."""

    name: str
    ok: bool
    stage: str | None = None
    error: str | None = None
    file_errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class IngestReport:
    """Per-repository outcomes collected from one batch."""

    outcomes: list[IngestOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> list[IngestOutcome]:
        return [outcome for outcome in self.outcomes if outcome.ok]

    @property
    def failed(self) -> list[IngestOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    def get(self, name: str) -> IngestOutcome | None:
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome
        return None

    def merge(self, other: IngestReport) -> IngestReport:
        """Combine two stage reports; a repo that failed earlier stays failed."""
        later = {outcome.name for outcome in other.outcomes}
        failed = {outcome.name for outcome in self.failed}
        outcomes = [o for o in self.outcomes if not o.ok or o.name not in later]
        outcomes.extend(o for o in other.outcomes if o.name not in failed)
        return IngestReport(outcomes=outcomes)
