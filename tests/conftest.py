"""Shared pytest fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from folio.config import FolioConfig


def write_entry(
    root: Path,
    name: str,
    *,
    title: str | None = None,
    date: str = "2024-01-01T00:00:00Z",
    tags: list[str] | None = None,
    draft: bool = False,
    category: str | None = None,
    description: str = "A description",
    body: str = "Body text.\n",
    mtime: float | None = None,
) -> Path:
    """Write ``root/name`` as a Markdown file with front matter.

    *name* may contain ``/`` for nested layouts; ``.md`` is appended if missing.
    """
    if not name.endswith(".md"):
        name = f"{name}.md"
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [
        "---",
        f"title: {title or Path(name).stem}",
        "author: tester",
        f"date: {date}",
        f"description: {description}",
        f"tags: [{', '.join(tags or [])}]",
        f"draft: {'true' if draft else 'false'}",
    ]
    if category is not None:
        lines.append(f"category: {category}")
    lines.append("---")
    path.write_text("\n".join(lines) + "\n\n" + body, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def bump_mtime(path: Path, seconds: float = 10.0) -> None:
    """Push *path*'s mtime forward so change detection sees it as modified."""
    st = path.stat()
    os.utime(path, (st.st_atime, st.st_mtime + seconds))


@pytest.fixture
def project(tmp_path: Path) -> FolioConfig:
    """A project directory with empty articles and notes roots."""
    (tmp_path / "article").mkdir()
    (tmp_path / "notes").mkdir()
    return FolioConfig(base_dir=tmp_path)


@pytest.fixture
def search_project(project: FolioConfig) -> FolioConfig:
    project.search.enabled = True
    return project


@pytest.fixture
def write_md():
    """The write_entry helper, as a fixture."""
    return write_entry


@pytest.fixture
def bump():
    """The bump_mtime helper, as a fixture."""
    return bump_mtime
