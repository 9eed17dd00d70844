"""Centralized exception hierarchy for the hubble package.

All domain-specific exceptions inherit from ``HubbleError`` so callers
can catch the entire family with a single ``except`` clause.
"""

from __future__ import annotations


class HubbleError(Exception):
    """Base exception for all hubble errors.

    Args:
        message: Human-readable description.
        name: Repository the error belongs to, if any.
        path: File or directory the error belongs to, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        name: str | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.name = name
        self.path = path


# ---------------------------------------------------------------------------
# Network errors
# ---------------------------------------------------------------------------


class NetworkError(HubbleError):
    """Raised when the org listing or a repository tarball cannot be fetched."""


# ---------------------------------------------------------------------------
# Filesystem errors
# ---------------------------------------------------------------------------


class FilesystemError(HubbleError):
    """Raised when a stat, mkdir, readdir or read operation fails."""


class ExtractionError(HubbleError):
    """Raised when an archive stream cannot be decoded or unpacked."""


# ---------------------------------------------------------------------------
# Content errors
# ---------------------------------------------------------------------------


class ParseError(HubbleError):
    """Raised when a metadata file is not valid structured data."""


class RenderError(HubbleError):
    """Raised when markdown cannot be rendered to HTML."""


# ---------------------------------------------------------------------------
# Deadline errors
# ---------------------------------------------------------------------------


class OperationTimeoutError(HubbleError, TimeoutError):
    """Raised when a fetch or extraction exceeds its deadline."""
