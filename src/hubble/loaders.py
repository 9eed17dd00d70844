"""Loaders that populate repository records from content files.

``MetadataLoader`` parses ``article.json`` files and ``MarkupLoader``
renders ``article.md`` files. Each touches its own fields of the record
(``meta`` vs ``markup``, plus its own ``files[path]`` slot), so loads of
different files can interleave safely. Errors are scoped to one file
and raised to the caller of that load.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from hubble.exceptions import FilesystemError, ParseError, RenderError
from hubble.markdown import markdown_to_html
from hubble.models import ArticleMeta

if TYPE_CHECKING:
    from collections.abc import Callable

    from hubble.models import RepoRecord
    from hubble.registry import RepoRegistry

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


async def _read_text(name: str, path: str) -> str:
    try:
        return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise FilesystemError(
            f"Cannot read {path}: {exc}", name=name, path=path
        ) from exc


def parse_metadata(text: str, *, name: str = "", path: str = "") -> ArticleMeta:
    """Parse metadata JSON into an ``ArticleMeta``.

    Raises:
        ParseError: If the text is not JSON, not an object, or has
            fields of the wrong shape.
    """
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(
            f"Invalid JSON in {path or 'metadata'}: {exc}", name=name, path=path
        ) from exc
    if not isinstance(payload, dict):
        raise ParseError(
            f"Metadata in {path or 'metadata'} must be a JSON object",
            name=name,
            path=path,
        )
    try:
        return ArticleMeta.model_validate(payload)
    except ValidationError as exc:
        raise ParseError(
            f"Malformed metadata in {path or 'metadata'}: {exc.error_count()} error(s)",
            name=name,
            path=path,
        ) from exc


class MetadataLoader:
    """Parses one metadata file and merges it into the owning record."""

    def __init__(self, registry: RepoRegistry) -> None:
        self._registry = registry

    async def load(self, name: str, path: str) -> RepoRecord:
        """Load ``path`` as metadata for repository ``name``.

        On success the record's composed page is invalidated; on failure
        the record keeps its previous ``meta``.

        Args:
            name: Repository name; the record is created if absent.
            path: Metadata file path.

        Returns:
            The updated repository record.

        Raises:
            FilesystemError: If the file cannot be read.
            ParseError: If the content is not valid metadata.
        """
        repo = self._registry.get_or_create(name)
        text = await _read_text(name, path)
        meta = parse_metadata(text, name=name, path=path)

        logger.info("caching_metadata", repo=name, path=path)
        repo.file_entry(path).meta = meta
        repo.meta = meta
        repo.composed = None
        return repo


class MarkupLoader:
    """Renders one markdown file and caches raw and rendered forms."""

    def __init__(
        self,
        registry: RepoRegistry,
        renderer: Callable[[str], str] = markdown_to_html,
    ) -> None:
        self._registry = registry
        self._renderer = renderer

    async def load(self, name: str, path: str) -> RepoRecord:
        """Load ``path`` as the article markup for repository ``name``.

        Args:
            name: Repository name; the record is created if absent.
            path: Markdown file path.

        Returns:
            The updated repository record.

        Raises:
            FilesystemError: If the file cannot be read.
            RenderError: If the renderer fails.
        """
        repo = self._registry.get_or_create(name)
        text = await _read_text(name, path)
        try:
            rendered = self._renderer(text)
        except Exception as exc:
            raise RenderError(
                f"Cannot render {path}: {exc}", name=name, path=path
            ) from exc

        logger.info("transforming_markdown", repo=name, path=path)
        repo.file_entry(path).markup = rendered
        repo.markup = text
        repo.composed = None
        return repo
