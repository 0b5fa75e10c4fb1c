"""App configuration loading helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

import tomllib

from pydantic import BaseModel, Field, ValidationError

from .credentials import DEFAULT_SEARCH_MARKERS, DeclarationFormat

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".config" / "versionprune" / "config.toml"

ReportMode = Literal["none", "text", "html"]


class AppConfig(BaseModel):
    """Shape of the application configuration file.

    Credentials never live here; they come from the declarations file the
    resolver discovers.
    """

    versions_to_keep: int = Field(default=1, ge=1)
    report: ReportMode = "none"
    declaration_format: DeclarationFormat = "dotenv"
    env_filename: str | None = None
    base_path: str | None = None
    search_markers: tuple[str, ...] = DEFAULT_SEARCH_MARKERS
    connect_timeout: float = Field(default=5.0, gt=0)

    def with_overrides(self, **updates: object) -> AppConfig:
        """Return a validated copy with every non-None update applied."""

        values = self.model_dump()
        values.update({key: value for key, value in updates.items() if value is not None})
        return AppConfig(**values)


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing or invalid."""

    config_path = path or CONFIG_FILE
    try:
        data = _read_config_file(config_path)
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError) as exc:
        LOG.warning("Ignoring unreadable config %s: %s", config_path, exc)
        return AppConfig()
    try:
        return AppConfig(**data)
    except ValidationError as exc:
        LOG.warning("Ignoring invalid config %s: %s", config_path, exc)
        return AppConfig()


def _read_config_file(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    for key in ("report", "declaration_format", "env_filename", "base_path"):
        value = raw.get(key)
        if isinstance(value, str):
            data[key] = value
    versions = raw.get("versions_to_keep")
    if isinstance(versions, int) and not isinstance(versions, bool):
        data["versions_to_keep"] = versions
    timeout = raw.get("connect_timeout")
    if isinstance(timeout, (int, float)) and not isinstance(timeout, bool):
        data["connect_timeout"] = float(timeout)
    markers = raw.get("search_markers")
    if isinstance(markers, list):
        data["search_markers"] = tuple(str(marker) for marker in markers)
    return data


__all__ = ["AppConfig", "CONFIG_FILE", "ReportMode", "load_config"]
