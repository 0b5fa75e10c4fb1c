"""Resolve database credentials from a SilverStripe-style declarations file."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Literal, Mapping, Sequence

from .connections import ConfigError

LOG = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent

DEFAULT_SEARCH_MARKERS: tuple[str, ...] = ("vendor", "site-packages", "src")

DeclarationFormat = Literal["dotenv", "php-define"]

DEFAULT_FILENAMES: Mapping[str, str] = {
    "dotenv": ".env",
    "php-define": "_ss_environment.php",
}


class Ignored(Enum):
    """Whitelist target for keys that are recognised but never consumed."""

    PRESENCE_ONLY = "presence-only"


KeyTarget = str | Ignored

DATABASE_CLASS_KEY = "SS_DATABASE_CLASS"


def build_whitelist(pairs: Iterable[tuple[str, KeyTarget]]) -> dict[str, KeyTarget]:
    """Build the external → internal key map, rejecting ambiguous entries."""

    whitelist: dict[str, KeyTarget] = {}
    claimed: dict[str, str] = {}
    for external, target in pairs:
        if external in whitelist:
            raise ValueError(f"Whitelist key '{external}' is declared twice")
        if isinstance(target, str):
            if target in claimed:
                raise ValueError(
                    f"Whitelist keys '{claimed[target]}' and '{external}' both map to '{target}'"
                )
            claimed[target] = external
        whitelist[external] = target
    return whitelist


KEY_WHITELIST: Mapping[str, KeyTarget] = build_whitelist(
    (
        (DATABASE_CLASS_KEY, Ignored.PRESENCE_ONLY),
        ("SS_DATABASE_SERVER", "host"),
        ("SS_DATABASE_PORT", "port"),
        ("SS_DATABASE_NAME", "dbname"),
        ("SS_DATABASE_USERNAME", "user"),
        ("SS_DATABASE_PASSWORD", "password"),
    )
)

# Older PHP declaration files only count when all of these are defined.
PHP_REQUIRED_KEYS: tuple[str, ...] = (
    DATABASE_CLASS_KEY,
    "SS_DATABASE_SERVER",
    "SS_DATABASE_NAME",
    "SS_DATABASE_USERNAME",
    "SS_DATABASE_PASSWORD",
)

# Only defines that open a line count; `//` and `#` comments never do.
_PHP_DEFINE = re.compile(
    r"""^\s*define\(\s*(['"])(?P<key>\w+)\1\s*,\s*(?P<value>'[^']*'|"[^"]*"|[^\s)]+)\s*\)""",
    re.MULTILINE,
)
_PHP_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)


@dataclass(frozen=True, slots=True)
class Resolution:
    """Everything learned while resolving a declarations file."""

    source: Path | None
    parameters: Mapping[str, str]
    database_class_declared: bool = False
    duplicates: tuple[str, ...] = ()

    @property
    def void(self) -> bool:
        return bool(self.duplicates)


class CredentialResolver:
    """Locates a declarations file near ``base_path`` and parses its credentials."""

    def __init__(
        self,
        base_path: Path | str = PACKAGE_DIR,
        *,
        filename: str | None = None,
        markers: Sequence[str] = DEFAULT_SEARCH_MARKERS,
        declaration_format: DeclarationFormat = "dotenv",
        whitelist: Mapping[str, KeyTarget] = KEY_WHITELIST,
    ) -> None:
        if declaration_format not in DEFAULT_FILENAMES:
            raise ValueError(f"Unknown declaration format '{declaration_format}'")
        self._base_path = Path(base_path)
        self._filename = filename or DEFAULT_FILENAMES[declaration_format]
        self._markers = tuple(markers)
        self._format = declaration_format
        self._whitelist = whitelist

    @property
    def filename(self) -> str:
        return self._filename

    def candidate_directories(self) -> tuple[Path, ...]:
        """Directories searched for the declarations file, in priority order."""

        parts = self._base_path.parts
        candidates: list[Path] = []
        for marker in self._markers:
            if marker not in parts:
                continue
            # Anchor-only prefixes (marker directly under /) are not searched.
            prefix = Path(*parts[: parts.index(marker)])
            if prefix.name:
                candidates.append(prefix)
        candidates.append(self._base_path)
        unique: list[Path] = []
        for candidate in candidates:
            if candidate not in unique:
                unique.append(candidate)
        return tuple(unique)

    def find_declarations_file(self) -> Path | None:
        for directory in self.candidate_directories():
            path = directory / self._filename
            if path.is_file() and os.access(path, os.R_OK):
                return path.resolve()
        return None

    def _read_first_candidate(self) -> tuple[Path, str] | None:
        """Read the first declarations file that exists and can actually be read."""

        for directory in self.candidate_directories():
            path = directory / self._filename
            if not (path.is_file() and os.access(path, os.R_OK)):
                continue
            try:
                return path.resolve(), path.read_text(encoding="utf-8")
            except UnicodeDecodeError as exc:
                raise ConfigError(f"{path} is not valid UTF-8: {exc.reason} at byte {exc.start}") from exc
            except OSError as exc:
                LOG.warning("Could not read %s: %s", path, exc)
        return None

    def resolve(self) -> dict[str, str]:
        """Return the internal parameter names found in the declarations file."""

        return dict(self.inspect().parameters)

    def inspect(self) -> Resolution:
        found = self._read_first_candidate()
        if found is None:
            LOG.info("No readable %s found near %s", self._filename, self._base_path)
            return Resolution(source=None, parameters={})
        path, text = found
        if self._format == "php-define":
            assignments = parse_php_defines(text)
        else:
            assignments = parse_dotenv_lines(text.splitlines())
        resolution = self._collect(path, assignments)
        if resolution.void:
            LOG.warning(
                "Ignoring %s: duplicated keys %s", path, ", ".join(resolution.duplicates)
            )
        return resolution

    def _collect(self, path: Path, assignments: Iterable[tuple[str, str]]) -> Resolution:
        seen: set[str] = set()
        duplicates: list[str] = []
        parameters: dict[str, str] = {}
        for key, value in assignments:
            target = self._whitelist.get(key)
            if target is None:
                continue
            if key in seen:
                if key not in duplicates:
                    duplicates.append(key)
                continue
            seen.add(key)
            if isinstance(target, str):
                parameters[target] = value
        class_declared = DATABASE_CLASS_KEY in seen
        if duplicates:
            return Resolution(
                source=path,
                parameters={},
                database_class_declared=class_declared,
                duplicates=tuple(duplicates),
            )
        if self._format == "php-define":
            missing = [key for key in PHP_REQUIRED_KEYS if key not in seen]
            if missing:
                LOG.info("Ignoring %s: missing defines %s", path, ", ".join(missing))
                parameters = {}
        return Resolution(
            source=path,
            parameters=parameters,
            database_class_declared=class_declared,
        )


def parse_dotenv_lines(lines: Iterable[str]) -> list[tuple[str, str]]:
    """Split ``KEY=VALUE`` lines on the first ``=``; lines without one are skipped."""

    pairs: list[tuple[str, str]] = []
    for line in lines:
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        pairs.append((key.strip(), _unquote(value.strip(), '"')))
    return pairs


def parse_php_defines(text: str) -> list[tuple[str, str]]:
    """Extract ``define('KEY', value)`` calls from a PHP environment file."""

    pairs: list[tuple[str, str]] = []
    for match in _PHP_DEFINE.finditer(_PHP_BLOCK_COMMENT.sub("", text)):
        value = match.group("value")
        if value[0] in "'\"":
            value = _unquote(value, value[0])
        pairs.append((match.group("key"), value))
    return pairs


def _unquote(value: str, quote: str) -> str:
    if len(value) >= 2 and value[0] == quote and value[-1] == quote:
        return value[1:-1]
    return value


__all__ = [
    "CredentialResolver",
    "DEFAULT_FILENAMES",
    "DEFAULT_SEARCH_MARKERS",
    "DeclarationFormat",
    "Ignored",
    "KEY_WHITELIST",
    "Resolution",
    "build_whitelist",
    "parse_dotenv_lines",
    "parse_php_defines",
]
