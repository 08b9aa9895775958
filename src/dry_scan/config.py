# DRY Scan - Index code elements and find near-duplicate code
# Copyright (C) 2025  Jonathan Louis
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
Configuration for the indexing service and the scanning client.

The service reads its settings from the environment. The scanner merges
defaults, the nearest dry-scan.toml and CLI options, in that order.
"""

import logging
import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigurationError, ValidationError
from .extractor import compile_patterns
from .languages import FALLBACK_PATTERNS, default_languages, get_patterns


logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "dry-scan.toml"

DEFAULT_SERVER_URL = "http://localhost:3000"
DEFAULT_EMBEDDING_URL = "http://embeddinggemma:8080/v1/embeddings"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_DB_PATH = "./.dry_cache/vectors.db"

DEFAULT_THRESHOLD = 0.8
DEFAULT_LIMIT = 10
DEFAULT_SEARCH_THRESHOLD = 0.5

DEFAULT_EXTENSIONS = ("ts", "tsx", "js", "jsx")
DEFAULT_IGNORE = ("node_modules/", ".git/", "dist/", "build/")
DEFAULT_IGNORE_FILES = (".gitignore", ".dockerignore", ".dryignore")

EXCEED_ACTIONS = ("warn", "fail")


# ---------------------------------------------------------------------------
# Service settings
# ---------------------------------------------------------------------------

def resolve_embedding_url(environ: Mapping[str, str]) -> str:
    """
    EMBEDDING_API_URL wins. Otherwise EMBEDDINGGEMMA_URL is treated as a
    base URL and /embeddings is appended. Otherwise the compose default.
    """
    explicit = environ.get("EMBEDDING_API_URL")
    if explicit:
        return explicit

    injected = environ.get("EMBEDDINGGEMMA_URL")
    if injected:
        return f"{injected.rstrip('/')}/embeddings"

    return DEFAULT_EMBEDDING_URL


def resolve_embedding_model(environ: Optional[Mapping[str, str]] = None) -> str:
    """Manual override, then the compose-injected model, then the default."""
    if environ is None:
        environ = os.environ
    return (
        environ.get("EMBEDDING_MODEL")
        or environ.get("EMBEDDINGGEMMA_MODEL")
        or DEFAULT_EMBEDDING_MODEL
    )


def _env_number(environ: Mapping[str, str], name: str, default, cast):
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class ServerSettings:
    """Indexing service settings, built once at startup."""

    embedding_api_url: Optional[str] = DEFAULT_EMBEDDING_URL
    embedding_api_key: str = ""
    embedding_chunk_size: int = 1000
    embedding_timeout: float = 30.0
    embedding_concurrency: int = 5
    db_path: str = DEFAULT_DB_PATH
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerSettings":
        """
        Build settings from environment variables.

        Raises:
            ConfigurationError: If a numeric variable does not parse or is out of range
        """
        if environ is None:
            environ = os.environ

        settings = cls(
            embedding_api_url=resolve_embedding_url(environ),
            embedding_api_key=environ.get("EMBEDDING_API_KEY", ""),
            embedding_chunk_size=_env_number(environ, "EMBEDDING_CHUNK_SIZE", 1000, int),
            embedding_timeout=_env_number(environ, "EMBEDDING_TIMEOUT", 30.0, float),
            embedding_concurrency=_env_number(environ, "EMBEDDING_CONCURRENCY", 5, int),
            db_path=environ.get("DRY_DB_PATH", DEFAULT_DB_PATH),
            host=environ.get("HOST", "0.0.0.0"),
            port=_env_number(environ, "PORT", 3000, int),
            log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.embedding_timeout <= 0:
            raise ConfigurationError("EMBEDDING_TIMEOUT must be positive")
        if self.embedding_concurrency < 1:
            raise ConfigurationError("EMBEDDING_CONCURRENCY must be at least 1")
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"PORT out of range: {self.port}")


# ---------------------------------------------------------------------------
# Scan configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PatternGroup:
    """A [[scan.patterns]] entry: patterns for a set of extensions."""

    extensions: Tuple[str, ...]
    include: Tuple[str, ...]
    exclude: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ScanConfig:
    """Resolved scanner configuration."""

    server_url: str = DEFAULT_SERVER_URL
    extensions: Tuple[str, ...] = DEFAULT_EXTENSIONS
    ignore: Tuple[str, ...] = DEFAULT_IGNORE
    use_ignore_files: Tuple[str, ...] = DEFAULT_IGNORE_FILES
    threshold: float = DEFAULT_THRESHOLD
    limit: int = DEFAULT_LIMIT
    on_exceed: str = "warn"
    languages: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    pattern_groups: Tuple[PatternGroup, ...] = ()
    config_path: Optional[Path] = None

    def patterns_for(self, extension: str) -> Tuple[List[str], List[str]]:
        """
        Include/exclude patterns for a file extension.

        Checks [[scan.patterns]] groups, then [scan.languages], then the
        built-in registry, then the fallback pattern.
        """
        ext = extension.lower().lstrip(".")

        for group in self.pattern_groups:
            if ext in group.extensions:
                return list(group.include), list(group.exclude)

        builtin = get_patterns(ext)

        if ext in self.languages:
            exclude = list(builtin.exclude) if builtin else []
            return list(self.languages[ext]), exclude

        if builtin:
            return list(builtin.include), list(builtin.exclude)

        return list(FALLBACK_PATTERNS), []

    def validate(self) -> "ScanConfig":
        """
        Raises:
            ConfigurationError: On out-of-range values or invalid patterns
        """
        if not 0.0 <= self.threshold <= 1.0:
            raise ConfigurationError(f"threshold must be within 0-1, got {self.threshold}")
        if self.limit < 1:
            raise ConfigurationError(f"limit must be at least 1, got {self.limit}")
        if self.on_exceed not in EXCEED_ACTIONS:
            raise ConfigurationError(
                f"on_exceed must be one of {', '.join(EXCEED_ACTIONS)}, got {self.on_exceed!r}"
            )

        try:
            for patterns in self.languages.values():
                compile_patterns(patterns)
            for group in self.pattern_groups:
                compile_patterns(group.include)
                compile_patterns(group.exclude)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

        return self


def find_config_file(start_path: Path) -> Optional[Path]:
    """
    Search for dry-scan.toml in start_path and its parents.

    Args:
        start_path: File or directory to start searching from

    Returns:
        Path to the config file if found, None otherwise
    """
    current = Path(start_path).resolve()
    if current.is_file():
        current = current.parent

    while True:
        config_path = current / CONFIG_FILE_NAME
        if config_path.is_file():
            return config_path

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def _as_tuple(value: Any, key: str) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    raise ConfigurationError(f"{key} must be a list of strings")


def _parse_config(data: Dict[str, Any], base: ScanConfig, config_path: Path) -> ScanConfig:
    server = data.get("server", {})
    scan = data.get("scan", {})
    similarity = scan.get("similarity", {})

    languages = dict(base.languages)
    for ext, patterns in scan.get("languages", {}).items():
        languages[ext.lower().lstrip(".")] = _as_tuple(patterns, f"scan.languages.{ext}")

    groups = tuple(
        PatternGroup(
            extensions=tuple(e.lower().lstrip(".") for e in _as_tuple(g.get("extensions", []), "extensions")),
            include=_as_tuple(g.get("include", []), "include"),
            exclude=_as_tuple(g.get("exclude", []), "exclude"),
        )
        for g in scan.get("patterns", [])
    )

    return replace(
        base,
        server_url=server.get("url", base.server_url),
        extensions=_as_tuple(scan["extensions"], "extensions") if "extensions" in scan else base.extensions,
        ignore=_as_tuple(scan["ignore"], "ignore") if "ignore" in scan else base.ignore,
        use_ignore_files=(
            _as_tuple(scan["use_ignore_files"], "use_ignore_files")
            if "use_ignore_files" in scan else base.use_ignore_files
        ),
        threshold=float(similarity.get("threshold", base.threshold)),
        limit=int(similarity.get("limit", base.limit)),
        on_exceed=similarity.get("on_exceed", similarity.get("onExceed", base.on_exceed)),
        languages=languages,
        pattern_groups=groups or base.pattern_groups,
        config_path=config_path,
    )


def default_scan_config() -> ScanConfig:
    languages = {ext: tuple(p) for ext, p in default_languages().items()}
    return ScanConfig(languages=languages)


def load_config(config_path: Path) -> ScanConfig:
    """
    Load a dry-scan.toml on top of the defaults.

    An unreadable or invalid file is reported and the defaults are used.
    """
    defaults = default_scan_config()
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
        return _parse_config(data, defaults, Path(config_path))
    except (OSError, tomllib.TOMLDecodeError, ConfigurationError, TypeError, ValueError) as e:
        logger.warning(f"Failed to load config from {config_path}: {e}")
        return defaults


def resolve_config(
    scan_path: Path,
    url: Optional[str] = None,
    extensions: Optional[Sequence[str]] = None,
    threshold: Optional[float] = None,
    limit: Optional[int] = None,
    on_exceed: Optional[str] = None,
) -> ScanConfig:
    """
    Merge defaults, the nearest config file and CLI options.

    CLI options left as None do not override anything.

    Raises:
        ConfigurationError: If the merged result is invalid
    """
    config_path = find_config_file(scan_path)
    config = load_config(config_path) if config_path else default_scan_config()

    overrides: Dict[str, Any] = {}
    if url:
        overrides["server_url"] = url
    if extensions:
        overrides["extensions"] = tuple(e.strip().lstrip(".") for e in extensions if e.strip())
    if threshold is not None:
        overrides["threshold"] = threshold
    if limit is not None:
        overrides["limit"] = limit
    if on_exceed is not None:
        overrides["on_exceed"] = on_exceed

    return replace(config, **overrides).validate()


def load_ignore_files(root_path: Path, ignore_files: Sequence[str]) -> List[str]:
    """
    Read glob patterns from ignore files such as .gitignore.

    Blank lines and # comments are skipped. Missing files are ignored.
    """
    patterns: List[str] = []
    for name in ignore_files:
        path = Path(root_path) / name
        if not path.is_file():
            continue
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.warning(f"Failed to read ignore file {path}: {e}")
            continue
        for line in lines:
            line = line.strip()
            if line and not line.startswith("#"):
                patterns.append(line)
    return patterns


def _toml_string(value: str) -> str:
    # Literal strings keep regex backslashes intact
    if "'" not in value and "\n" not in value:
        return f"'{value}'"
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _toml_list(values: Sequence[str], multiline: bool = False) -> str:
    if not values:
        return "[]"
    if not multiline:
        return "[" + ", ".join(_toml_string(v) for v in values) + "]"
    return "[\n" + ",\n".join(f"  {_toml_string(v)}" for v in values) + "\n]"


def write_config_file(config_path: Path, extensions: Sequence[str]) -> Path:
    """
    Write a starter dry-scan.toml.

    Language patterns are included for each detected extension that has
    built-in defaults.
    """
    extensions = list(extensions) or list(DEFAULT_EXTENSIONS)
    defaults = default_scan_config()

    lines = [
        "[server]",
        f"url = {_toml_string(defaults.server_url)}",
        "",
        "[scan]",
        f"extensions = {_toml_list(extensions)}",
        f"ignore = {_toml_list(defaults.ignore, multiline=True)}",
        f"use_ignore_files = {_toml_list(defaults.use_ignore_files)}",
        "",
        "[scan.similarity]",
        f"threshold = {defaults.threshold}",
        f"limit = {defaults.limit}",
        f"on_exceed = {_toml_string(defaults.on_exceed)}",
        "",
    ]

    languages = [(ext, defaults.languages[ext]) for ext in extensions if ext in defaults.languages]
    if languages:
        lines.append("[scan.languages]")
        for ext, patterns in languages:
            lines.append(f"{ext} = {_toml_list(patterns, multiline=True)}")
        lines.append("")

    config_path = Path(config_path)
    config_path.write_text("\n".join(lines), encoding="utf-8")
    return config_path
