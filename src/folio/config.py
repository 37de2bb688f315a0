"""Folio configuration loader.

Priority (high → low):
  1. CLI flags           (applied by the caller)
  2. Environment variables  (FOLIO_ARTICLES_DIR, FOLIO_NOTES_DIR,
                             FOLIO_LOG_LEVEL, FOLIO_SEARCH_ENABLED)
  3. Per-project folio.yaml
  4. Global ~/.folio/config.yaml
  5. Hardcoded defaults

Relative directories are resolved against the project directory.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import logging
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".folio"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "folio.yaml"

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["content", "search", "cache", "site", "log_level"]
)
_LOG_LEVELS: frozenset[str] = frozenset(
    ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
)
_TRUTHY: frozenset[str] = frozenset(["1", "true", "yes", "on"])

MIN_HEAP_SIZE = 1_000_000
LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class ContentCfg:
    """Content roots and stores (folio.yaml: content:)."""

    articles_dir: str = "article"
    notes_dir: str = "notes"
    articles_nested: bool = True
    notes_nested: bool = True
    data_dir: str = "data"
    body_cache_capacity: int = 512


@dataclass
class SearchCfg:
    """Full-text index (folio.yaml: search:).

    Attributes:
        enabled: Build and maintain the index; search requests fail when off.
        index_dir: Directory holding the index database.
        heap_size: Writer page-cache budget in bytes.
        content_search_limit: Characters of body scanned by the fallback search.
    """

    enabled: bool = False
    index_dir: str = "search_index"
    heap_size: int = 50_000_000
    content_search_limit: int = 10_000


@dataclass
class CacheCfg:
    """Response cache sizing for the API layer (folio.yaml: cache:)."""

    max_capacity: int = 1000
    ttl_seconds: int = 60


@dataclass
class SiteCfg:
    latest_articles_count: int = 5


@dataclass
class FolioConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    content: ContentCfg = field(default_factory=ContentCfg)
    search: SearchCfg = field(default_factory=SearchCfg)
    cache: CacheCfg = field(default_factory=CacheCfg)
    site: SiteCfg = field(default_factory=SiteCfg)
    log_level: str = "INFO"
    base_dir: Path = field(default_factory=Path.cwd)

    def resolve(self, path: str) -> Path:
        """Resolve a configured directory against ``base_dir``."""
        p = Path(path).expanduser()
        return p if p.is_absolute() else self.base_dir / p

    @property
    def articles_path(self) -> Path:
        return self.resolve(self.content.articles_dir)

    @property
    def notes_path(self) -> Path:
        return self.resolve(self.content.notes_dir)

    @property
    def data_path(self) -> Path:
        return self.resolve(self.content.data_dir)

    @property
    def index_path(self) -> Path:
        return self.resolve(self.search.index_dir)


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file '{path}' is not valid YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level.")
    return raw


def _as_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    raise ConfigError(f"'{name}' must be true or false, got {value!r}")


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"'{name}' must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"'{name}' must be an integer, got {value!r}") from exc


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    raw = data.get(name) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(raw).__name__}")
    return raw


def _cfg_from_dict(data: dict[str, Any]) -> FolioConfig:
    """Build a *FolioConfig* from a merged raw YAML dict."""
    cfg = FolioConfig()

    if "content" in data:
        c = _section(data, "content")
        d = cfg.content
        cfg.content = ContentCfg(
            articles_dir=str(c.get("articles_dir", d.articles_dir)),
            notes_dir=str(c.get("notes_dir", d.notes_dir)),
            articles_nested=_as_bool(
                c.get("articles_nested", d.articles_nested), "content.articles_nested"
            ),
            notes_nested=_as_bool(c.get("notes_nested", d.notes_nested), "content.notes_nested"),
            data_dir=str(c.get("data_dir", d.data_dir)),
            body_cache_capacity=_as_int(
                c.get("body_cache_capacity", d.body_cache_capacity),
                "content.body_cache_capacity",
            ),
        )

    if "search" in data:
        s = _section(data, "search")
        d = cfg.search
        cfg.search = SearchCfg(
            enabled=_as_bool(s.get("enabled", d.enabled), "search.enabled"),
            index_dir=str(s.get("index_dir", d.index_dir)),
            heap_size=_as_int(s.get("heap_size", d.heap_size), "search.heap_size"),
            content_search_limit=_as_int(
                s.get("content_search_limit", d.content_search_limit),
                "search.content_search_limit",
            ),
        )

    if "cache" in data:
        ca = _section(data, "cache")
        cfg.cache = CacheCfg(
            max_capacity=_as_int(ca.get("max_capacity", cfg.cache.max_capacity), "cache.max_capacity"),
            ttl_seconds=_as_int(ca.get("ttl_seconds", cfg.cache.ttl_seconds), "cache.ttl_seconds"),
        )

    if "site" in data:
        si = _section(data, "site")
        cfg.site = SiteCfg(
            latest_articles_count=_as_int(
                si.get("latest_articles_count", cfg.site.latest_articles_count),
                "site.latest_articles_count",
            ),
        )

    if "log_level" in data:
        cfg.log_level = str(data["log_level"]).upper()

    return cfg


def _apply_env_overrides(cfg: FolioConfig) -> FolioConfig:
    """Apply FOLIO_* environment variable overrides."""
    if path := os.environ.get("FOLIO_ARTICLES_DIR"):
        cfg.content.articles_dir = path
    if path := os.environ.get("FOLIO_NOTES_DIR"):
        cfg.content.notes_dir = path
    if level := os.environ.get("FOLIO_LOG_LEVEL"):
        cfg.log_level = level.upper()
    if enabled := os.environ.get("FOLIO_SEARCH_ENABLED"):
        cfg.search.enabled = enabled.strip().lower() in _TRUTHY
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> FolioConfig:
    """Load and return a merged *FolioConfig*.

    Applies layers in order: global → per-project → env vars.

    Args:
        project_dir: Directory holding *folio.yaml*; also the base for relative
            directories. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If a config file is malformed or a value has the wrong type.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    cfg.base_dir = search_dir
    return _apply_env_overrides(cfg)


def validate(cfg: FolioConfig) -> None:
    """Check that *cfg* describes a usable setup.

    Raises:
        ConfigError: naming the first problem found and how to fix it.
    """
    for label, path in (("articles", cfg.articles_path), ("notes", cfg.notes_path)):
        if not path.is_dir():
            raise ConfigError(
                f"{label} directory '{path}' does not exist.\n"
                f"  Create it or set content.{label}_dir in {_PROJECT_CONFIG_NAME}."
            )
    if cfg.search.heap_size < MIN_HEAP_SIZE:
        raise ConfigError(
            f"search.heap_size must be at least {MIN_HEAP_SIZE}, got {cfg.search.heap_size}"
        )
    positives = {
        "content.body_cache_capacity": cfg.content.body_cache_capacity,
        "search.content_search_limit": cfg.search.content_search_limit,
        "cache.max_capacity": cfg.cache.max_capacity,
        "cache.ttl_seconds": cfg.cache.ttl_seconds,
        "site.latest_articles_count": cfg.site.latest_articles_count,
    }
    for name, value in positives.items():
        if value <= 0:
            raise ConfigError(f"{name} must be positive, got {value}")
    if cfg.log_level not in _LOG_LEVELS:
        raise ConfigError(
            f"log_level must be one of {', '.join(sorted(_LOG_LEVELS))}, got '{cfg.log_level}'"
        )


def configure_logging(level: str = "INFO") -> None:
    """Install the root handler used by the CLI and the watcher threads."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)

