"""Unit tests for hubble.versions - current version selection."""

from __future__ import annotations

from hubble.models import VersionInfo
from hubble.versions import resolve_current_version


class TestResolveCurrentVersion:
    """The newest snapshot is current."""

    def test_empty_means_not_ingested(self) -> None:
        assert resolve_current_version([]) is None

    def test_single_version(self) -> None:
        only = VersionInfo(path="/s/a", mtime=10.0)
        assert resolve_current_version([only]) is only

    def test_picks_maximum_mtime(self) -> None:
        versions = [
            VersionInfo(path="/s/old", mtime=100.0),
            VersionInfo(path="/s/new", mtime=300.0),
            VersionInfo(path="/s/mid", mtime=200.0),
        ]
        assert resolve_current_version(versions).path == "/s/new"

    def test_order_does_not_matter(self) -> None:
        versions = [
            VersionInfo(path="/s/new", mtime=300.0),
            VersionInfo(path="/s/old", mtime=100.0),
        ]
        assert resolve_current_version(versions).path == "/s/new"

    def test_tie_keeps_first_seen(self) -> None:
        versions = [
            VersionInfo(path="/s/first", mtime=50.0),
            VersionInfo(path="/s/second", mtime=50.0),
        ]
        assert resolve_current_version(versions).path == "/s/first"

    def test_accepts_generator(self) -> None:
        versions = (VersionInfo(path=f"/s/{i}", mtime=float(i)) for i in range(5))
        assert resolve_current_version(versions).path == "/s/4"
