"""hubble: ingest organization repositories into a browsable content site."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("hubble")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = ["__version__"]
