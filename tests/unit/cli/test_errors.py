"""Tests for folio rich error messages."""

from __future__ import annotations

from folio.cli.errors import (
    err_app,
    err_config,
    err_content_dir_missing,
    err_index_failed,
    err_load_failed,
    err_no_content,
)
from folio.errors import ERR_ARTICLE_NOT_FOUND, NotFoundError


def _has_action(msg: str) -> bool:
    """Every setup error must tell the user what to do next."""
    lower = msg.lower()
    return any(kw in lower for kw in ["run:", "create it", "fix ", "pass ", "export "])


def test_err_config_includes_detail() -> None:
    msg = err_config("search.heap_size must be an integer")
    assert "search.heap_size" in msg
    assert _has_action(msg)


def test_err_content_dir_missing_names_path_and_env_var() -> None:
    msg = err_content_dir_missing("notes", "/srv/notes")
    assert "/srv/notes" in msg
    assert "mkdir -p /srv/notes" in msg
    assert "FOLIO_NOTES_DIR" in msg


def test_err_load_failed_mentions_front_matter() -> None:
    msg = err_load_failed("post.md: missing front matter block")
    assert "post.md" in msg
    assert "front matter" in msg
    assert _has_action(msg)


def test_err_index_failed_suggests_reindex() -> None:
    msg = err_index_failed("database is locked")
    assert "database is locked" in msg
    assert "folio reindex" in msg


def test_err_app_shows_code() -> None:
    msg = err_app(NotFoundError(ERR_ARTICLE_NOT_FOUND, "Article with slug x not found"))
    assert "Article with slug x not found" in msg
    assert ERR_ARTICLE_NOT_FOUND in msg


def test_err_no_content_names_options() -> None:
    msg = err_no_content("My post")
    assert "--content" in msg
    assert "--file" in msg
    assert _has_action(msg)
