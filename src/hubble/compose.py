"""Render-ready HTML for article pages and the site index.

The composer is a pure function of the records and indices it is
given: no filesystem or network access. Its output is handed to the
site's template binder as opaque strings. Malformed view data (for
example a record without ``meta`` passed to ``article_summary``) raises;
callers treat that as fatal for the render.
"""

from __future__ import annotations

import html
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from urllib.parse import quote

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from hubble.models import CategoryNode, Contributor, RepoRecord
    from hubble.registry import RepoRegistry

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_MINUTE = 60
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR
_MONTH = 30 * _DAY
_YEAR = 365 * _DAY


def _esc(value: object) -> str:
    return html.escape("" if value is None else str(value))


def _url_part(value: str) -> str:
    return quote(value, safe="")


def time_ago(timestamp: str | None, now: datetime) -> str:
    """Describe an ISO-8601 timestamp relative to ``now`` ("3 days ago").

    Returns an empty string for a missing or unparseable timestamp.
    """
    if not timestamp:
        return ""
    try:
        then = datetime.fromisoformat(timestamp)
    except ValueError:
        return ""
    if then.tzinfo is None:
        then = then.replace(tzinfo=UTC)

    seconds = (now - then).total_seconds()
    future = seconds < 0
    seconds = abs(seconds)

    if seconds < 45:
        phrase = "a few seconds"
    elif seconds < 90:
        phrase = "a minute"
    elif seconds < 45 * _MINUTE:
        phrase = f"{round(seconds / _MINUTE)} minutes"
    elif seconds < 90 * _MINUTE:
        phrase = "an hour"
    elif seconds < 22 * _HOUR:
        phrase = f"{round(seconds / _HOUR)} hours"
    elif seconds < 36 * _HOUR:
        phrase = "a day"
    elif seconds < 26 * _DAY:
        phrase = f"{round(seconds / _DAY)} days"
    elif seconds < 45 * _DAY:
        phrase = "a month"
    elif seconds < 320 * _DAY:
        phrase = f"{round(seconds / _MONTH)} months"
    elif seconds < 548 * _DAY:
        phrase = "a year"
    else:
        phrase = f"{round(seconds / _YEAR)} years"

    return f"in {phrase}" if future else f"{phrase} ago"


class Composer:
    """Builds article and index HTML from records and aggregate indices."""

    def __init__(
        self,
        url_prefix: str = "",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._url_prefix = url_prefix.rstrip("/")
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def article_url(self, name: str) -> str:
        return f"{self._url_prefix}/guides/{_url_part(name)}"

    def contributor_url(self, name: str) -> str:
        return f"{self._url_prefix}/contributors/{_url_part(name)}"

    def tag_url(self, tag: str) -> str:
        return f"{self._url_prefix}/tags/{_url_part(tag)}"

    def category_url(self, category_id: str) -> str:
        return f"{self._url_prefix}/categories/{_url_part(category_id)}"

    # ------------------------------------------------------------------
    # Fragments
    # ------------------------------------------------------------------

    def author_anchor(self, name: str) -> str:
        return (
            f'<a class="author" href="{_esc(self.contributor_url(name))}">'
            f"{_esc(name)}</a>"
        )

    def author_anchors(self, names: Iterable[str]) -> str:
        return ", ".join(self.author_anchor(name) for name in names)

    def article_summary(self, repo: RepoRecord) -> str:
        """Short listing entry for one article."""
        meta = repo.meta
        if meta is None:
            raise ValueError(f"Repository {repo.name!r} has no metadata to summarize")
        url = self.article_url(repo.name)
        authors = self.author_anchors(author.name for author in meta.authors or [])
        when = time_ago(repo.github.get("created_at"), self._clock())
        return (
            '<div class="article-summary">'
            f'<a class="title" href="{_esc(url)}">{_esc(meta.title or repo.name)}</a>'
            f'<span class="authors">{authors}</span>'
            f'<span class="when">{_esc(when)}</span>'
            f'<p class="description">{_esc(meta.description)}</p>'
            f'<a class="rate" href="{_esc(url)}/like">Like</a>'
            "</div>"
        )

    def category_trail(
        self, chain: list[str], categories: dict[str, CategoryNode]
    ) -> str:
        """Breadcrumb links for one category chain."""
        links: list[str] = []
        children = categories
        for category in chain:
            node = children.get(category)
            if node is None:
                break
            links.append(
                f'<a href="{_esc(self.category_url(node.id))}">{_esc(node.name)}</a>'
            )
            children = node.children
        return " &raquo; ".join(links)

    def category_tree(self, nodes: dict[str, CategoryNode]) -> str:
        if not nodes:
            return ""
        items = []
        for node in nodes.values():
            link = f'<a href="{_esc(self.category_url(node.id))}">{_esc(node.name)}</a>'
            subtree = self.category_tree(node.children)
            items.append(f'<li id="category-{_esc(node.id)}">{link}{subtree}</li>')
        return "<ul>" + "".join(items) + "</ul>"

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def compose_article(
        self, repo: RepoRecord, categories: dict[str, CategoryNode]
    ) -> str:
        """Compose one repository's article page and store it on the record.

        Args:
            repo: The repository record.
            categories: The current category forest.

        Returns:
            The composed HTML, also assigned to ``repo.composed``.
        """
        meta = repo.meta
        parts: list[str] = [f'<article class="article" id="article-{_esc(repo.name)}">']
        title = meta.title if meta and meta.title else repo.name
        parts.append(f'<h1 class="title">{_esc(title)}</h1>')

        if meta is not None:
            if meta.authors:
                authors = self.author_anchors(author.name for author in meta.authors)
                parts.append(f'<p class="authors">{authors}</p>')
            when = time_ago(repo.github.get("created_at"), self._clock())
            if when:
                parts.append(f'<p class="when">{_esc(when)}</p>')
            if meta.difficulty_label:
                parts.append(f'<p class="difficulty">{_esc(meta.difficulty_label)}</p>')
            if meta.categories:
                trails = [
                    f"<li>{self.category_trail(chain, categories)}</li>"
                    for chain in meta.categories
                ]
                parts.append(f'<ul class="categories">{"".join(trails)}</ul>')
            if meta.tags:
                tags = "".join(
                    f'<li><a href="{_esc(self.tag_url(tag))}">{_esc(tag)}</a></li>'
                    for tag in meta.tags
                )
                parts.append(f'<ul class="tags">{tags}</ul>')
            if meta.description:
                parts.append(f'<p class="description">{_esc(meta.description)}</p>')

        parts.append(f'<div class="content">{primary_markup(repo)}</div>')

        github = repo.github
        if github:
            parts.append(
                '<p class="github">'
                f'<span class="watchers">{_esc(github.get("watchers", 0))}</span>'
                f'<span class="forks">{_esc(github.get("forks", 0))}</span>'
                "</p>"
            )
        parts.append(
            f'<a class="rate" href="{_esc(self.article_url(repo.name))}/like">Like</a>'
        )
        parts.append("</article>")

        composed = "\n".join(parts)
        repo.composed = composed
        return composed

    def compose_index(
        self,
        registry: RepoRegistry,
        contributors: dict[str, Contributor],
        tags: dict[str, list[RepoRecord]],
        categories: dict[str, CategoryNode],
    ) -> str:
        """Compose the site index page.

        Lists every repository with metadata, the category forest, tag
        counts and contributor counts.
        """
        summaries = [self.article_summary(repo) for repo in registry if repo.meta]
        tag_items = "".join(
            f'<li><a href="{_esc(self.tag_url(tag))}">{_esc(tag)}</a>'
            f' <span class="count">{len(repos)}</span></li>'
            for tag, repos in sorted(tags.items())
        )
        contributor_items = "".join(
            f"<li>{self.author_anchor(name)}"
            f' <span class="count">{len(contributor.repos)}</span></li>'
            for name, contributor in sorted(contributors.items())
        )

        parts = [
            '<section class="categories">',
            self.category_tree(categories),
            "</section>",
            '<section class="articles">',
            *summaries,
            "</section>",
            f'<section class="tags"><ul>{tag_items}</ul></section>',
            f'<section class="contributors"><ul>{contributor_items}</ul></section>',
        ]
        logger.debug("index_composed", articles=len(summaries))
        return "\n".join(parts)


def primary_markup(repo: RepoRecord) -> str:
    """Rendered HTML of the article file that owns ``repo.markup``.

    Files load in path order, so the last path with markup is the one
    whose raw text ended up in ``repo.markup``.
    """
    rendered = [
        entry.markup
        for _, entry in sorted(repo.files.items())
        if entry.markup is not None
    ]
    return rendered[-1] if rendered else ""
