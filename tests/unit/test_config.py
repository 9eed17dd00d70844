"""Unit tests for hubble.config - Settings loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from hubble.config import (
    ContentSettings,
    GitHubSettings,
    LoggingSettings,
    Settings,
    SnapshotSettings,
    format_validation_error,
)


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's config.yaml, .env or HUBBLE_* vars out of the tests."""
    monkeypatch.chdir(tmp_path)
    for var in [
        "HUBBLE_GITHUB__ORG_NAME",
        "HUBBLE_GITHUB__TOKEN",
        "HUBBLE_SNAPSHOTS__ROOT",
        "HUBBLE_LOGGING__LEVEL",
    ]:
        monkeypatch.delenv(var, raising=False)


# ---- Sub-model defaults ------------------------------------------------------


class TestGitHubSettings:
    """GitHubSettings defaults and constraints."""

    def test_default_values(self) -> None:
        s = GitHubSettings()
        assert s.api_host == "https://api.github.com"
        assert s.org_name == "hubbleio"
        assert s.ref == "master"
        assert s.token is None
        assert s.retries == 3

    def test_zero_retries_rejected(self) -> None:
        with pytest.raises(ValidationError):
            GitHubSettings(retries=0)

    def test_per_page_capped(self) -> None:
        with pytest.raises(ValidationError):
            GitHubSettings(per_page=500)

    def test_non_positive_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            GitHubSettings(timeout=0)


class TestSnapshotSettings:
    """SnapshotSettings defaults and constraints."""

    def test_default_values(self) -> None:
        s = SnapshotSettings()
        assert s.root == Path("./data/snapshots")
        assert s.extract_timeout == 120.0
        assert s.max_concurrent == 4

    def test_zero_concurrency_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SnapshotSettings(max_concurrent=0)


class TestContentSettings:
    """Content file names default to the article pair."""

    def test_default_values(self) -> None:
        s = ContentSettings()
        assert s.metadata_filename == "article.json"
        assert s.markup_filename == "article.md"
        assert s.url_prefix == ""


class TestLoggingSettings:
    """LoggingSettings restricts level and format."""

    def test_default_values(self) -> None:
        s = LoggingSettings()
        assert s.level == "INFO"
        assert s.format == "console"
        assert s.file is None

    def test_invalid_level_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LoggingSettings(level="LOUD")


# ---- Settings resolution -----------------------------------------------------


class TestSettingsLoad:
    """Settings.load layers defaults, YAML, env and overrides."""

    def test_defaults_without_yaml(self) -> None:
        s = Settings.load()
        assert s.github.org_name == "hubbleio"
        assert s.content.markup_filename == "article.md"

    def test_load_from_custom_yaml(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "custom.yaml"
        yaml_file.write_text(
            "github:\n  org_name: acme\nsnapshots:\n  max_concurrent: 2\n"
        )
        s = Settings.load(config_path=yaml_file)
        assert s.github.org_name == "acme"
        assert s.snapshots.max_concurrent == 2
        assert s.github.ref == "master"

    def test_missing_yaml_uses_defaults(self, tmp_path: Path) -> None:
        s = Settings.load(config_path=tmp_path / "nonexistent.yaml")
        assert s.github.org_name == "hubbleio"

    def test_nested_env_var_override(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        yaml_file = tmp_path / "custom.yaml"
        yaml_file.write_text("github:\n  org_name: acme\n")
        monkeypatch.setenv("HUBBLE_GITHUB__ORG_NAME", "from-env")
        s = Settings.load(config_path=yaml_file)
        assert s.github.org_name == "from-env"

    def test_overrides_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HUBBLE_LOGGING__LEVEL", "ERROR")
        s = Settings.load(logging={"level": "DEBUG"})
        assert s.logging.level == "DEBUG"

    def test_override_path_is_reset(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "custom.yaml"
        yaml_file.write_text("github:\n  org_name: acme\n")
        Settings.load(config_path=yaml_file)
        assert Settings._config_path_override is None

    def test_invalid_yaml_value_raises(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "bad.yaml"
        yaml_file.write_text("snapshots:\n  max_concurrent: -1\n")
        with pytest.raises(ValidationError):
            Settings.load(config_path=yaml_file)


class TestFormatValidationError:
    """Validation errors render one line per problem."""

    def test_includes_location_and_input(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            GitHubSettings(retries=0)
        message = format_validation_error(exc_info.value)
        assert message.startswith("Configuration error:")
        assert "retries" in message
        assert "(got 0)" in message
