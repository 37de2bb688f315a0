"""Tests for folio config loader."""

from __future__ import annotations

import logging
import warnings
from pathlib import Path

import pytest
import yaml

from folio.config import (
    LOG_FORMAT,
    ConfigError,
    FolioConfig,
    configure_logging,
    load_config,
    validate,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "FOLIO_ARTICLES_DIR",
        "FOLIO_NOTES_DIR",
        "FOLIO_LOG_LEVEL",
        "FOLIO_SEARCH_ENABLED",
    ):
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


def _no_global(tmp_path: Path) -> Path:
    return tmp_path / "nonexistent" / "config.yaml"


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    """No config files → all hardcoded defaults."""
    cfg = load_config(project_dir=tmp_path, global_config_path=_no_global(tmp_path))

    assert cfg.content.articles_dir == "article"
    assert cfg.content.notes_dir == "notes"
    assert cfg.content.articles_nested is True
    assert cfg.content.body_cache_capacity == 512
    assert cfg.search.enabled is False
    assert cfg.search.heap_size == 50_000_000
    assert cfg.search.content_search_limit == 10_000
    assert cfg.cache.max_capacity == 1000
    assert cfg.cache.ttl_seconds == 60
    assert cfg.site.latest_articles_count == 5
    assert cfg.log_level == "INFO"


def test_paths_resolve_against_project_dir(tmp_path: Path) -> None:
    cfg = load_config(project_dir=tmp_path, global_config_path=_no_global(tmp_path))

    assert cfg.articles_path == tmp_path / "article"
    assert cfg.notes_path == tmp_path / "notes"
    assert cfg.data_path == tmp_path / "data"
    assert cfg.index_path == tmp_path / "search_index"


def test_absolute_paths_are_kept(tmp_path: Path) -> None:
    elsewhere = tmp_path / "elsewhere"
    cfg = FolioConfig(base_dir=tmp_path / "project")
    cfg.content.articles_dir = str(elsewhere)

    assert cfg.articles_path == elsewhere


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_global_overrides_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"search": {"enabled": True}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)

    assert cfg.search.enabled is True
    assert cfg.search.index_dir == "search_index"


def test_project_overrides_global(tmp_path: Path) -> None:
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"search": {"enabled": True, "heap_size": 2_000_000}})
    _write_yaml(tmp_path / "folio.yaml", {"search": {"heap_size": 3_000_000}, "log_level": "debug"})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)

    assert cfg.search.enabled is True
    assert cfg.search.heap_size == 3_000_000
    assert cfg.log_level == "DEBUG"


def test_empty_files_give_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("", encoding="utf-8")
    (tmp_path / "folio.yaml").write_text("", encoding="utf-8")

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)

    assert cfg.content.articles_dir == "article"


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def test_env_overrides_files(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_yaml(tmp_path / "folio.yaml", {"content": {"articles_dir": "posts"}, "search": {"enabled": True}})
    monkeypatch.setenv("FOLIO_ARTICLES_DIR", "from-env")
    monkeypatch.setenv("FOLIO_NOTES_DIR", "/abs/notes")
    monkeypatch.setenv("FOLIO_LOG_LEVEL", "warning")
    monkeypatch.setenv("FOLIO_SEARCH_ENABLED", "no")

    cfg = load_config(project_dir=tmp_path, global_config_path=_no_global(tmp_path))

    assert cfg.articles_path == tmp_path / "from-env"
    assert cfg.notes_path == Path("/abs/notes")
    assert cfg.log_level == "WARNING"
    assert cfg.search.enabled is False


@pytest.mark.parametrize("value", ["1", "true", "YES", "on"])
def test_env_enables_search(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
    monkeypatch.setenv("FOLIO_SEARCH_ENABLED", value)
    cfg = load_config(project_dir=tmp_path, global_config_path=_no_global(tmp_path))
    assert cfg.search.enabled is True


# ---------------------------------------------------------------------------
# Malformed files
# ---------------------------------------------------------------------------


def test_invalid_yaml_raises(tmp_path: Path) -> None:
    (tmp_path / "folio.yaml").write_text("search: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="not valid YAML"):
        load_config(project_dir=tmp_path, global_config_path=_no_global(tmp_path))


def test_top_level_list_raises(tmp_path: Path) -> None:
    (tmp_path / "folio.yaml").write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(project_dir=tmp_path, global_config_path=_no_global(tmp_path))


def test_bad_integer_raises(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "folio.yaml", {"search": {"heap_size": "lots"}})
    with pytest.raises(ConfigError, match="search.heap_size"):
        load_config(project_dir=tmp_path, global_config_path=_no_global(tmp_path))


def test_section_must_be_mapping(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "folio.yaml", {"cache": 5})
    with pytest.raises(ConfigError, match="'cache' must be a mapping"):
        load_config(project_dir=tmp_path, global_config_path=_no_global(tmp_path))


def test_unknown_key_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "folio.yaml", {"renderer": {"theme": "dark"}})
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        load_config(project_dir=tmp_path, global_config_path=_no_global(tmp_path))

    assert any("Unknown config key 'renderer'" in str(w.message) for w in caught)


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


def test_validate_accepts_project(project: FolioConfig) -> None:
    validate(project)


def test_validate_missing_articles_dir(tmp_path: Path) -> None:
    (tmp_path / "notes").mkdir()
    with pytest.raises(ConfigError, match="articles directory"):
        validate(FolioConfig(base_dir=tmp_path))


def test_validate_small_heap(project: FolioConfig) -> None:
    project.search.heap_size = 10
    with pytest.raises(ConfigError, match="heap_size"):
        validate(project)


def test_validate_non_positive_value(project: FolioConfig) -> None:
    project.site.latest_articles_count = 0
    with pytest.raises(ConfigError, match="site.latest_articles_count"):
        validate(project)


def test_validate_log_level(project: FolioConfig) -> None:
    project.log_level = "LOUD"
    with pytest.raises(ConfigError, match="log_level"):
        validate(project)


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


def test_configure_logging_installs_root_handler(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict] = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.append(kw))

    configure_logging("debug")

    assert calls == [{"level": "DEBUG", "format": LOG_FORMAT, "force": True}]
