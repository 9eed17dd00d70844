"""On-disk snapshot cache of repository tarballs.

Layout: ``root/<repo>/<version>/...``. A version directory is whatever
top-level directory the tarball unpacks to (GitHub names it
``<org>-<repo>-<sha>``); only its modification time matters for
ordering, and it is stamped with the extraction time on promotion.

Extraction goes through a hidden staging directory so an aborted or
failed extraction never leaves a visible partial version behind.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import tarfile
import tempfile
import threading
import time
import zlib
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from hubble.exceptions import (
    ExtractionError,
    FilesystemError,
    HubbleError,
    OperationTimeoutError,
)
from hubble.models import VersionInfo

if TYPE_CHECKING:
    from collections.abc import AsyncIterable

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_STAGING_PREFIX = ".staging-"


class SnapshotStore:
    """Materializes tarball streams into versioned directories."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def repo_dir(self, name: str) -> Path:
        return self._root / name

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------

    def ensure_root(self) -> None:
        """Create the snapshot root if needed.

        Raises:
            FilesystemError: If the root cannot be created or is not a
                directory.
        """
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(
                f"Cannot create snapshot root: {exc}", path=str(self._root)
            ) from exc

    def list_repositories(self) -> list[str]:
        """Return the names of repositories with a snapshot directory."""
        try:
            entries = sorted(os.scandir(self._root), key=lambda e: e.name)
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise FilesystemError(
                f"Cannot read snapshot root: {exc}", path=str(self._root)
            ) from exc
        return [
            entry.name
            for entry in entries
            if not entry.name.startswith(".") and entry.is_dir()
        ]

    def list_versions(self, name: str) -> list[VersionInfo]:
        """List the extracted versions of a repository.

        Hidden entries (including in-progress staging directories) and
        plain files are ignored. Versions come back in name order.

        Args:
            name: Repository name.

        Returns:
            One ``VersionInfo`` per version directory, possibly empty.

        Raises:
            FilesystemError: If the repository has no snapshot directory
                or a version cannot be stat'ed.
        """
        repo_dir = self.repo_dir(name)
        try:
            entries = sorted(os.scandir(repo_dir), key=lambda e: e.name)
        except OSError as exc:
            raise FilesystemError(
                f"No snapshot directory for {name!r}: {exc}",
                name=name,
                path=str(repo_dir),
            ) from exc

        versions: list[VersionInfo] = []
        for entry in entries:
            if entry.name.startswith("."):
                continue
            try:
                if not entry.is_dir():
                    continue
                stat = entry.stat()
            except OSError as exc:
                raise FilesystemError(
                    f"Cannot stat version {entry.name!r}: {exc}",
                    name=name,
                    path=entry.path,
                ) from exc
            versions.append(VersionInfo(path=entry.path, mtime=stat.st_mtime))
        return versions

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    async def extract(
        self,
        name: str,
        stream: AsyncIterable[bytes],
        timeout: float | None = None,
    ) -> list[VersionInfo]:
        """Unpack a gzipped tar stream into ``root/<name>/``.

        The stream is spooled to a temporary file while it arrives, then
        decompressed and unpacked in a worker thread. Directory entries
        are created silently; each regular file is logged.

        Args:
            name: Repository name.
            stream: Async iterable of compressed archive bytes.
            timeout: Optional deadline in seconds for the whole operation.

        Returns:
            The version directories that were created or replaced.

        Raises:
            FilesystemError: If the repository directory cannot be created.
            ExtractionError: If the stream errors or the archive is invalid.
            OperationTimeoutError: If ``timeout`` elapses first.
        """
        self.ensure_root()
        repo_dir = self.repo_dir(name)
        try:
            repo_dir.mkdir(exist_ok=True)
            self._discard_staging(repo_dir)
            staging = Path(tempfile.mkdtemp(prefix=_STAGING_PREFIX, dir=repo_dir))
        except OSError as exc:
            raise FilesystemError(
                f"Cannot prepare snapshot directory: {exc}",
                name=name,
                path=str(repo_dir),
            ) from exc

        logger.info("snapshot_extract_start", repo=name, timeout=timeout)
        abort = threading.Event()
        try:
            async with asyncio.timeout(timeout):
                spool_path = await self._spool(name, stream)
                count = await asyncio.to_thread(
                    self._unpack, name, spool_path, staging, abort
                )
            versions = self._promote(name, staging, repo_dir)
        except OperationTimeoutError:
            raise
        except TimeoutError as exc:
            raise OperationTimeoutError(
                f"Extraction of {name!r} exceeded {timeout}s", name=name
            ) from exc
        finally:
            abort.set()
            shutil.rmtree(staging, ignore_errors=True)

        logger.info(
            "snapshot_extract_done",
            repo=name,
            files=count,
            versions=[Path(v.path).name for v in versions],
        )
        return versions

    async def _spool(self, name: str, stream: AsyncIterable[bytes]) -> str:
        """Write the archive stream to a temporary file and return its path.

        The file is removed again if the stream fails or is cancelled.
        """
        try:
            fd, path = tempfile.mkstemp(prefix="hubble-", suffix=".tar")
        except OSError as exc:
            raise FilesystemError(f"Cannot create spool file: {exc}", name=name) from exc
        try:
            with os.fdopen(fd, "wb") as spool:
                async for chunk in stream:
                    spool.write(chunk)
        except asyncio.CancelledError:
            Path(path).unlink(missing_ok=True)
            raise
        except Exception as exc:
            Path(path).unlink(missing_ok=True)
            if isinstance(exc, HubbleError):
                raise
            raise ExtractionError(
                f"Archive stream for {name!r} failed: {exc}", name=name
            ) from exc
        return path

    def _unpack(
        self, name: str, spool_path: str, staging: Path, abort: threading.Event
    ) -> int:
        """Unpack the spooled archive into ``staging`` (worker thread).

        The worker owns ``spool_path`` and deletes it. Once ``abort`` is
        set the caller has stopped waiting: the worker stops at the next
        member and removes ``staging`` itself.
        """
        count = 0
        try:
            with tarfile.open(spool_path, mode="r:*") as archive:
                for member in archive:
                    if abort.is_set():
                        logger.warning("snapshot_unpack_abandoned", repo=name)
                        break
                    if member.isfile():
                        logger.info("snapshot_unpacking", repo=name, path=member.name)
                        count += 1
                    archive.extract(member, staging, filter="data")
        except (tarfile.TarError, EOFError, zlib.error, OSError) as exc:
            if abort.is_set():
                logger.warning("snapshot_unpack_abandoned", repo=name, error=str(exc))
                return count
            raise ExtractionError(
                f"Cannot unpack archive for {name!r}: {exc}", name=name
            ) from exc
        finally:
            Path(spool_path).unlink(missing_ok=True)
            if abort.is_set():
                shutil.rmtree(staging, ignore_errors=True)
        return count

    def _promote(self, name: str, staging: Path, repo_dir: Path) -> list[VersionInfo]:
        """Move staged content into place as version directories."""
        entries = sorted(staging.iterdir())
        if not entries:
            raise ExtractionError(f"Archive for {name!r} was empty", name=name)

        if all(entry.is_dir() for entry in entries):
            sources = entries
        else:
            # No single top-level directory: the staged tree is the version
            wrapper = staging.with_name(_STAGING_PREFIX + "wrap")
            staging.rename(wrapper)
            staging.mkdir()
            target = staging / f"snapshot-{time.time_ns()}"
            wrapper.rename(target)
            sources = [target]

        versions: list[VersionInfo] = []
        try:
            for source in sources:
                target = repo_dir / source.name
                if target.exists():
                    shutil.rmtree(target)
                source.rename(target)
                # Stamp with extraction time; tar entries carry commit times
                os.utime(target)
                versions.append(
                    VersionInfo(path=str(target), mtime=target.stat().st_mtime)
                )
        except OSError as exc:
            raise FilesystemError(
                f"Cannot promote snapshot for {name!r}: {exc}",
                name=name,
                path=str(repo_dir),
            ) from exc
        return versions

    def _discard_staging(self, repo_dir: Path) -> None:
        for leftover in repo_dir.glob(_STAGING_PREFIX + "*"):
            logger.warning("discarding_partial_snapshot", path=str(leftover))
            shutil.rmtree(leftover, ignore_errors=True)
