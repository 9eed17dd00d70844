"""Unit tests for hubble.models - metadata normalization and records."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from hubble.models import (
    ArticleMeta,
    FileEntry,
    IngestOutcome,
    IngestReport,
    RepoRecord,
)


class TestArticleMetaCategories:
    """Categories always normalize to a list of chains."""

    def test_plain_string_becomes_single_chain(self) -> None:
        meta = ArticleMeta.model_validate({"categories": "Languages"})
        assert meta.categories == [["Languages"]]

    def test_flat_list_becomes_one_chain_per_item(self) -> None:
        meta = ArticleMeta.model_validate({"categories": ["Languages", "Tools"]})
        assert meta.categories == [["Languages"], ["Tools"]]

    def test_list_of_chains_is_kept(self) -> None:
        chains = [["Languages", "Go"], ["Tools"]]
        meta = ArticleMeta.model_validate({"categories": chains})
        assert meta.categories == chains

    def test_mixed_items(self) -> None:
        meta = ArticleMeta.model_validate({"categories": ["Tools", ["Languages", "Go"]]})
        assert meta.categories == [["Tools"], ["Languages", "Go"]]

    def test_missing_is_none(self) -> None:
        assert ArticleMeta().categories is None

    def test_wrong_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ArticleMeta.model_validate({"categories": 42})


class TestArticleMetaFields:
    """Authors and tags accept the loose shapes authors write."""

    def test_author_strings_become_records(self) -> None:
        meta = ArticleMeta.model_validate({"authors": ["Ada", {"name": "Linus"}]})
        assert [author.name for author in meta.authors] == ["Ada", "Linus"]

    def test_single_author_object(self) -> None:
        meta = ArticleMeta.model_validate({"authors": {"name": "Ada", "url": "u"}})
        assert meta.authors[0].name == "Ada"
        assert meta.authors[0].model_dump() == {"name": "Ada", "url": "u"}

    def test_author_without_name_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ArticleMeta.model_validate({"authors": [{"url": "u"}]})

    def test_single_tag_string(self) -> None:
        assert ArticleMeta.model_validate({"tags": "go"}).tags == ["go"]

    def test_unknown_keys_are_kept(self) -> None:
        meta = ArticleMeta.model_validate({"title": "T", "license": "MIT"})
        assert meta.model_extra == {"license": "MIT"}

    def test_difficulty_label_alias(self) -> None:
        meta = ArticleMeta.model_validate({"difficultyLabel": "expert"})
        assert meta.difficulty_label == "expert"


class TestRepoRecord:
    """Per-file entries are created on demand."""

    def test_file_entry_created_once(self) -> None:
        repo = RepoRecord(name="guide")
        entry = repo.file_entry("/v/article.md")
        assert isinstance(entry, FileEntry)
        assert repo.file_entry("/v/article.md") is entry

    def test_defaults(self) -> None:
        repo = RepoRecord(name="guide")
        assert repo.github == {}
        assert repo.meta is None
        assert repo.markup is None
        assert repo.composed is None


class TestIngestReport:
    """Reports split outcomes and merge stages."""

    def test_succeeded_and_failed(self) -> None:
        report = IngestReport(
            outcomes=[
                IngestOutcome(name="a", ok=True),
                IngestOutcome(name="b", ok=False, error="boom"),
            ]
        )
        assert [o.name for o in report.succeeded] == ["a"]
        assert [o.name for o in report.failed] == ["b"]
        assert report.get("b").error == "boom"
        assert report.get("missing") is None

    def test_merge_replaces_earlier_success(self) -> None:
        download = IngestReport(outcomes=[IngestOutcome(name="a", ok=True, stage="download")])
        load = IngestReport(outcomes=[IngestOutcome(name="a", ok=True, stage="load")])
        merged = download.merge(load)
        assert len(merged.outcomes) == 1
        assert merged.get("a").stage == "load"

    def test_merge_keeps_earlier_failure(self) -> None:
        download = IngestReport(
            outcomes=[IngestOutcome(name="a", ok=False, stage="download", error="x")]
        )
        load = IngestReport(outcomes=[IngestOutcome(name="a", ok=True, stage="load")])
        merged = download.merge(load)
        assert len(merged.outcomes) == 1
        assert merged.get("a").stage == "download"
        assert not merged.get("a").ok

    def test_merge_adds_new_names(self) -> None:
        download = IngestReport(outcomes=[IngestOutcome(name="a", ok=True)])
        load = IngestReport(outcomes=[IngestOutcome(name="b", ok=True)])
        assert {o.name for o in download.merge(load).outcomes} == {"a", "b"}
