"""Shared pytest fixtures for the hubble test suite."""

from __future__ import annotations

import io
import logging
import os
import tarfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest
import structlog

from hubble.models import ArticleMeta, RepoRecord
from hubble.registry import RepoRegistry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable


# ---------------------------------------------------------------------------
# Logging isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_structlog() -> None:
    """Reset structlog state between tests."""
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Archive helpers
# ---------------------------------------------------------------------------


def build_tarball(
    files: dict[str, str | bytes],
    top: str | None = "org-repo-abc123",
) -> bytes:
    """Build a gzipped tarball in memory, GitHub style.

    Args:
        files: Relative path -> content.
        top: Top-level directory the entries live under (``None`` for
            a flat archive).
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        if top:
            info = tarfile.TarInfo(top)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            archive.addfile(info)
        for rel_path, content in files.items():
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(f"{top}/{rel_path}" if top else rel_path)
            info.size = len(data)
            info.mode = 0o644
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


async def byte_stream(data: bytes, chunk_size: int = 512) -> AsyncIterator[bytes]:
    """Yield ``data`` in chunks as an async byte stream."""
    for start in range(0, len(data), chunk_size):
        yield data[start : start + chunk_size]


async def failing_stream(data: bytes) -> AsyncIterator[bytes]:
    """Yield part of ``data`` then break like a dropped connection."""
    yield data[: len(data) // 2]
    raise ConnectionResetError("connection reset by peer")


@pytest.fixture()
def tarball() -> Callable[..., bytes]:
    return build_tarball


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def snapshot_root(tmp_path: Path) -> Path:
    """Return a not-yet-created snapshot root inside ``tmp_path``."""
    return tmp_path / "snapshots"


def make_version(
    root: Path,
    repo: str,
    version: str,
    mtime: float,
    files: dict[str, str] | None = None,
) -> Path:
    """Create ``root/repo/version`` with ``files`` and set its mtime."""
    version_dir = root / repo / version
    version_dir.mkdir(parents=True, exist_ok=True)
    for rel_path, content in (files or {}).items():
        (version_dir / rel_path).write_text(content, encoding="utf-8")
    os.utime(version_dir, (mtime, mtime))
    return version_dir


# ---------------------------------------------------------------------------
# Registry fixtures
# ---------------------------------------------------------------------------


def add_repo(registry: RepoRegistry, name: str, **meta: Any) -> RepoRecord:
    """Register ``name`` with metadata built from ``meta`` (none if empty)."""
    repo = registry.get_or_create(name)
    if meta:
        repo.meta = ArticleMeta.model_validate(meta)
    return repo


@pytest.fixture()
def registry() -> RepoRegistry:
    return RepoRegistry()


@pytest.fixture()
def populated_registry() -> RepoRegistry:
    """Two articles sharing a tag and a difficulty, one with an author."""
    reg = RepoRegistry()
    add_repo(
        reg,
        "intro-to-go",
        title="Intro to Go",
        tags=["systems"],
        authors=[{"name": "Ada", "url": "https://ada.example"}],
        difficulty=2,
        categories=[["Languages", "Go"]],
    )
    add_repo(
        reg,
        "rust-ownership",
        title="Rust Ownership",
        tags=["systems"],
        difficulty=2,
        categories=[["Languages", "Rust"]],
    )
    return reg


@pytest.fixture()
def stream() -> Callable[..., AsyncIterator[bytes]]:
    return byte_stream


@pytest.fixture()
def broken_stream() -> Callable[[bytes], AsyncIterator[bytes]]:
    return failing_stream


@pytest.fixture()
def version_dir() -> Callable[..., Path]:
    return make_version


@pytest.fixture()
def repo_factory() -> Callable[..., RepoRecord]:
    return add_repo
