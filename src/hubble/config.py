"""Settings for hubble, resolved from several layers.

Precedence, highest first: keyword overrides passed to ``Settings.load``,
``HUBBLE_*`` environment variables (``__`` separates nested fields, e.g.
``HUBBLE_GITHUB__TOKEN``), a ``.env`` file, a YAML file, field defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class GitHubSettings(BaseModel):
    """Organization listing and tarball source configuration."""

    api_host: str = "https://api.github.com"
    web_host: str = "https://github.com"
    org_name: str = "hubbleio"
    ref: str = Field(default="master", description="Branch or tag to download.")
    token: str | None = None
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds.")
    retries: int = Field(default=3, ge=1)
    per_page: int = Field(default=100, ge=1, le=100)


class SnapshotSettings(BaseModel):
    """On-disk snapshot cache configuration."""

    root: Path = Path("./data/snapshots")
    extract_timeout: float = Field(
        default=120.0, gt=0, description="Deadline for fetching and unpacking one tarball."
    )
    max_concurrent: int = Field(default=4, gt=0)


class ContentSettings(BaseModel):
    """Content file recognition and URL layout."""

    metadata_filename: str = "article.json"
    markup_filename: str = "article.md"
    url_prefix: str = ""


class LoggingSettings(BaseModel):
    """Logging / observability configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json"] = "console"
    file: Path | None = None


class Settings(BaseSettings):
    """Application settings; see the module docstring for precedence."""

    model_config = SettingsConfigDict(
        env_prefix="HUBBLE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        yaml_file="config.yaml",
        yaml_file_encoding="utf-8",
        extra="ignore",
    )

    # Set only for the duration of ``load``
    _config_path_override: ClassVar[Path | None] = None

    github: GitHubSettings = Field(default_factory=GitHubSettings)
    snapshots: SnapshotSettings = Field(default_factory=SnapshotSettings)
    content: ContentSettings = Field(default_factory=ContentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        yaml_file = cls._config_path_override or settings_cls.model_config.get(
            "yaml_file", "config.yaml"
        )
        yaml_settings = YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file)
        return init_settings, env_settings, dotenv_settings, yaml_settings

    @classmethod
    def load(cls, config_path: Path | None = None, **overrides: Any) -> Settings:
        """Resolve settings, reading ``config_path`` instead of ``config.yaml``.

        Raises:
            ValidationError: If a resolved value is invalid.
        """
        cls._config_path_override = config_path
        try:
            return cls(**overrides)
        finally:
            cls._config_path_override = None


def format_validation_error(exc: ValidationError) -> str:
    """One line per invalid field, for the CLI error panel."""
    lines = ["Configuration error:"]
    for error in exc.errors():
        where = " -> ".join(str(part) for part in error["loc"])
        line = f"  {where}: {error['msg']}"
        if error.get("input") is not None:
            line += f" (got {error['input']!r})"
        lines.append(line)
    return "\n".join(lines)
