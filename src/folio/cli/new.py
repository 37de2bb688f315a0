"""folio new — create an article with generated slug, file and first snapshot."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from folio.cli.common import console, load_project_config, open_supervisor
from folio.cli.errors import err_app, err_no_content
from folio.errors import AppError
from folio.service import ContentService


def new_cmd(
    title: Annotated[str, typer.Argument(help="Article title; the slug is derived from it.")],
    content: Annotated[
        str | None, typer.Option("--content", help="Article body (Markdown).")
    ] = None,
    file: Annotated[
        Path | None,
        typer.Option("--file", exists=True, dir_okay=False, help="Read the body from a file."),
    ] = None,
    tag: Annotated[
        list[str] | None, typer.Option("--tag", "-t", help="Tag (repeatable).")
    ] = None,
    category: Annotated[str | None, typer.Option("--category", help="Category, e.g. rust/async.")] = None,
    description: Annotated[str, typer.Option("--description", help="Short summary.")] = "",
    author: Annotated[str, typer.Option("--author", help="Author name.")] = "system",
    draft: Annotated[bool, typer.Option("--draft", help="Create as a draft.")] = False,
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Directory holding folio.yaml and the content roots."),
    ] = Path("."),
) -> None:
    """Create a new article under the articles root."""
    if file is not None:
        content = file.read_text(encoding="utf-8")
    if content is None:
        console.print(err_no_content(title))
        raise typer.Exit(1)

    cfg = load_project_config(project_dir)
    supervisor = open_supervisor(cfg)
    try:
        entry = ContentService(supervisor).create_article(
            title,
            content,
            tags=tag or [],
            description=description,
            category=category,
            draft=draft,
            author=author,
        )
        supervisor.flush()
    except AppError as exc:
        console.print(err_app(exc))
        raise typer.Exit(1) from exc
    finally:
        supervisor.stop()

    console.print(f"[green]✓[/] Created '{entry.slug}' at {entry.file_path}")
