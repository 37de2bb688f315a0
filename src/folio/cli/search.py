"""folio search — query the full-text index from the terminal."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from folio.cli.common import console, load_project_config, open_supervisor
from folio.cli.errors import err_app, err_index_failed
from folio.errors import AppError, IndexerError
from folio.service import ContentService


def search_cmd(
    query: Annotated[str, typer.Argument(help="Free-text query.")],
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum results.")] = 20,
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Directory holding folio.yaml and the content roots."),
    ] = Path("."),
) -> None:
    """Search articles and notes; notes are shown with a notes/ prefix."""
    cfg = load_project_config(project_dir, search=True)
    supervisor = open_supervisor(cfg)
    try:
        supervisor.reindex_all()
        results = ContentService(supervisor).search(query, limit=limit, highlights=True)
    except AppError as exc:
        console.print(err_app(exc))
        raise typer.Exit(1) from exc
    except IndexerError as exc:
        console.print(err_index_failed(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        supervisor.stop()

    if not results:
        console.print(f"[yellow]No results for[/] '{query}'")
        return

    table = Table(title=f"{len(results)} result(s) for '{query}'")
    table.add_column("Score", justify="right", style="dim")
    table.add_column("Slug", style="bold")
    table.add_column("Title")
    table.add_column("Highlights", style="dim")
    for r in results:
        table.add_row(f"{r.score:.2f}", r.slug, r.title, "\n".join(r.highlights or []))
    console.print(table)
