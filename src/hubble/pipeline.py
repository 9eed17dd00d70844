"""Ingestion and aggregation pipeline.

One ``ContentPipeline`` owns a registry, a snapshot store, the loaders
and the latest aggregate indices. A cycle runs in stages:

1. ``download_all``: refresh the org listing, then fetch and extract
   every repository's tarball concurrently.
2. ``load_all``: resolve each repository's current version and load its
   metadata and markup files.
3. ``aggregate``: rebuild the four indices, strictly after loading has
   settled.
4. ``compose``: render every article page and the index.

Per-repository failures never stop the batch; each stage settles all
tasks and reports an ``IngestOutcome`` per repository.
"""

from __future__ import annotations

import asyncio
import os
from typing import TYPE_CHECKING

import structlog

from hubble.aggregate import aggregate
from hubble.compose import Composer
from hubble.config import ContentSettings, SnapshotSettings
from hubble.exceptions import FilesystemError, HubbleError, OperationTimeoutError
from hubble.loaders import MarkupLoader, MetadataLoader
from hubble.logging import stage_logging_context
from hubble.models import AggregateIndices, IngestOutcome, IngestReport
from hubble.registry import RepoRegistry
from hubble.snapshots import SnapshotStore
from hubble.versions import resolve_current_version

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from hubble.github import GitHubClient
    from hubble.models import CategoryNode, Contributor, RepoRecord, VersionInfo

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_KINDS = frozenset({"meta", "markup"})


class ContentPipeline:
    """Batch orchestrator from GitHub snapshots to composed HTML."""

    def __init__(
        self,
        store: SnapshotStore,
        github: GitHubClient | None = None,
        registry: RepoRegistry | None = None,
        snapshot_settings: SnapshotSettings | None = None,
        content_settings: ContentSettings | None = None,
        composer: Composer | None = None,
    ) -> None:
        self.store = store
        self.registry = registry if registry is not None else RepoRegistry()
        self._github = github
        self._snapshots = snapshot_settings or SnapshotSettings(root=store.root)
        self._content = content_settings or ContentSettings()
        self._composer = composer or Composer(url_prefix=self._content.url_prefix)
        self._metadata = MetadataLoader(self.registry)
        self._markup = MarkupLoader(self.registry)
        self._indices = AggregateIndices()
        self._index_html = ""

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def contributors(self) -> dict[str, Contributor]:
        return self._indices.contributors

    @property
    def tags(self) -> dict[str, list[RepoRecord]]:
        return self._indices.tags

    @property
    def categories(self) -> dict[str, CategoryNode]:
        return self._indices.categories

    @property
    def difficulties(self) -> dict[str, list[RepoRecord]]:
        return self._indices.difficulties

    def get_article(self, name: str) -> str | None:
        """Last composed HTML for a repository, or ``None`` if there is none."""
        repo = self.registry.get(name)
        return repo.composed if repo is not None else None

    def get_index(self) -> str:
        """Last composed index HTML; empty before the first compose."""
        return self._index_html

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    def _require_github(self) -> GitHubClient:
        if self._github is None:
            raise RuntimeError("This pipeline was built without a GitHub client")
        return self._github

    async def refresh_listing(self) -> int:
        """Seed or refresh ``github`` facts from the org listing.

        Raises:
            NetworkError: If the listing cannot be fetched.
        """
        listing = await self._require_github().list_org_repos()
        count = self.registry.update_github(listing)
        logger.info("listing_applied", repos=count)
        return count

    async def download(self, name: str) -> list[VersionInfo]:
        """Fetch and extract one repository's tarball under a deadline.

        The deadline covers opening the tarball response as well as
        streaming and unpacking it.

        Raises:
            NetworkError: If the tarball cannot be fetched.
            ExtractionError: If the archive is invalid.
            OperationTimeoutError: If ``extract_timeout`` elapses first.
        """
        github = self._require_github()
        timeout = self._snapshots.extract_timeout
        try:
            async with asyncio.timeout(timeout):
                async with github.stream_tarball(name) as chunks:
                    return await self.store.extract(name, chunks)
        except OperationTimeoutError:
            raise
        except TimeoutError as exc:
            raise OperationTimeoutError(
                f"Download of {name!r} exceeded {timeout}s", name=name
            ) from exc

    async def _download_task(self, name: str) -> list[HubbleError]:
        await self.download(name)
        return []

    async def download_all(self) -> IngestReport:
        """Refresh the listing and download every known repository.

        Raises:
            NetworkError: If the listing itself fails; there is then
                nothing to iterate.
        """
        with stage_logging_context("download"):
            await self.refresh_listing()
            self.store.ensure_root()
            names = self.registry.names()
            logger.info("scanning_repos", count=len(names))
            return await self._settle(names, "download", self._download_task)

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def _classify(self, filename: str) -> str | None:
        if self._content.metadata_filename in filename:
            return "meta"
        if self._content.markup_filename in filename:
            return "markup"
        return None

    async def load_repo(self, name: str) -> list[HubbleError]:
        """Load the current version of one repository.

        Matching files load one at a time in path order, so the last
        path wins the record's canonical ``meta`` and ``markup``. Files
        cached from older version directories are then forgotten, except
        for a kind whose every file in the current version failed: the
        previous cycle's content of that kind stays in place.

        Args:
            name: Repository name.

        Returns:
            Errors of individual files that failed to load; other files
            of the repository are still loaded.

        Raises:
            FilesystemError: If the repository's snapshot directory or
                its current version cannot be read.
        """
        repo = self.registry.get_or_create(name)
        current = resolve_current_version(self.store.list_versions(name))
        if current is None:
            logger.info("repo_not_ingested", repo=name)
            return []

        try:
            filenames = sorted(os.listdir(current.path))
        except OSError as exc:
            raise FilesystemError(
                f"Cannot read version directory: {exc}", name=name, path=current.path
            ) from exc

        errors: list[HubbleError] = []
        present: set[str] = set()
        loaded: set[str] = set()
        for filename in filenames:
            kind = self._classify(filename)
            if kind is None:
                continue
            present.add(kind)
            path = os.path.join(current.path, filename)
            loader = self._metadata if kind == "meta" else self._markup
            try:
                await loader.load(name, path)
            except HubbleError as exc:
                logger.warning("file_load_failed", repo=name, path=path, error=str(exc))
                errors.append(exc)
            else:
                loaded.add(kind)

        self._forget_stale(repo, current.path, _KINDS - (present - loaded), present)
        return errors

    def _forget_stale(
        self,
        repo: RepoRecord,
        version_path: str,
        kinds: set[str] | frozenset[str],
        present: set[str],
    ) -> None:
        """Drop ``kinds`` cached from version directories other than ``version_path``."""
        changed = False
        for path, entry in list(repo.files.items()):
            if os.path.dirname(path) == version_path:
                continue
            if "meta" in kinds and entry.meta is not None:
                entry.meta = None
                changed = True
            if "markup" in kinds and entry.markup is not None:
                entry.markup = None
                changed = True
            if entry.meta is None and entry.markup is None:
                del repo.files[path]

        if "meta" in kinds and "meta" not in present and repo.meta is not None:
            repo.meta = None
            changed = True
        if "markup" in kinds and "markup" not in present and repo.markup is not None:
            repo.markup = None
            changed = True
        if changed:
            logger.info("stale_files_dropped", repo=repo.name, version=version_path)
            repo.composed = None

    async def load_all(
        self,
        names: Iterable[str] | None = None,
        skip: Iterable[str] = (),
    ) -> IngestReport:
        """Load every repository present in the snapshot cache.

        Repositories found on disk but absent from the registry are
        registered first.

        Args:
            names: Restrict loading to these repositories.
            skip: Repositories to leave out of this cycle.
        """
        with stage_logging_context("load"):
            if names is None:
                for name in self.store.list_repositories():
                    self.registry.get_or_create(name)
                names = [
                    repo.name
                    for repo in self.registry
                    if self.store.repo_dir(repo.name).is_dir()
                ]
            skipped = set(skip)
            selected = [name for name in names if name not in skipped]
            return await self._settle(selected, "load", self.load_repo)

    # ------------------------------------------------------------------
    # Aggregate and compose
    # ------------------------------------------------------------------

    def aggregate(self) -> AggregateIndices:
        """Rebuild all indices; call only after loading has settled.

        Composed article pages depend on the indices, so every record's
        ``composed`` is invalidated until the next ``compose``.
        """
        with stage_logging_context("aggregate"):
            self._indices = aggregate(self.registry)
            for repo in self.registry:
                repo.composed = None
        return self._indices

    def compose(self) -> str:
        """Compose every article that has content, then the index."""
        with stage_logging_context("compose"):
            for repo in self.registry:
                if repo.meta is None and repo.markup is None:
                    continue
                self._composer.compose_article(repo, self.categories)
            self._index_html = self._composer.compose_index(
                self.registry, self.contributors, self.tags, self.categories
            )
        return self._index_html

    async def ingest(self, download: bool = True) -> IngestReport:
        """Run a full cycle and return per-repository outcomes.

        When downloading, repositories whose download failed are not
        loaded this cycle and stay reported as failed. If the org listing
        itself fails, the failure is reported under the org's name at the
        ``listing`` stage and the cycle carries on from the snapshot cache.

        Args:
            download: Fetch fresh tarballs first; otherwise only the
                existing snapshot cache is used.
        """
        report = IngestReport()
        if download:
            try:
                report = await self.download_all()
            except HubbleError as exc:
                org = self._require_github().org
                logger.error("listing_failed", org=org, error=str(exc))
                report = IngestReport(
                    [IngestOutcome(name=org, ok=False, stage="listing", error=str(exc))]
                )
        failed = [
            outcome.name for outcome in report.failed if outcome.stage == "download"
        ]

        report = report.merge(await self.load_all(skip=failed))
        self.aggregate()
        self.compose()
        logger.info(
            "ingest_done",
            succeeded=len(report.succeeded),
            failed=len(report.failed),
        )
        return report

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def _settle(
        self,
        names: list[str],
        stage: str,
        task: Callable[[str], Awaitable[list[HubbleError]]],
    ) -> IngestReport:
        """Run ``task`` for every name, bounded, collecting every outcome."""
        semaphore = asyncio.Semaphore(self._snapshots.max_concurrent)

        async def _run(name: str) -> IngestOutcome:
            async with semaphore:
                try:
                    file_errors = await task(name)
                except HubbleError as exc:
                    logger.error(f"{stage}_failed", repo=name, error=str(exc))
                    return IngestOutcome(name=name, ok=False, stage=stage, error=str(exc))
            return IngestOutcome(
                name=name,
                ok=True,
                stage=stage,
                file_errors=[str(error) for error in file_errors],
            )

        outcomes = await asyncio.gather(*(_run(name) for name in names))
        return IngestReport(outcomes=list(outcomes))
