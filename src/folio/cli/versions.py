"""folio versions — list, show and restore article snapshots."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from folio.cli.common import console, load_project_config, open_supervisor
from folio.cli.errors import err_app
from folio.errors import AppError
from folio.service import ContentService


def versions_cmd(
    slug: Annotated[str, typer.Argument(help="Article slug.")],
    show: Annotated[
        int | None, typer.Option("--show", help="Print the body of this version.")
    ] = None,
    restore: Annotated[
        int | None, typer.Option("--restore", help="Make this version the current body.")
    ] = None,
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Directory holding folio.yaml and the content roots."),
    ] = Path("."),
) -> None:
    """List the archived versions of an article (oldest first)."""
    cfg = load_project_config(project_dir)
    supervisor = open_supervisor(cfg)
    service = ContentService(supervisor)
    try:
        if restore is not None:
            record = service.restore_version(slug, restore)
            supervisor.flush()
            console.print(f"[green]✓[/] Restored version {record.version} of '{slug}'")
            return
        if show is not None:
            record = service.get_version(slug, show)
            console.print(record.content, markup=False, highlight=False)
            return
        records = service.list_versions(slug)
    except AppError as exc:
        console.print(err_app(exc))
        raise typer.Exit(1) from exc
    finally:
        supervisor.stop()

    if not records:
        console.print(f"[dim]No versions archived for '{slug}'.[/]")
        return
    table = Table(title=f"Versions of '{slug}'")
    table.add_column("Version", justify="right")
    table.add_column("Saved", style="dim")
    table.add_column("Size", justify="right")
    for r in records:
        table.add_row(str(r.version), f"{r.timestamp:%Y-%m-%d %H:%M:%S}", f"{len(r.content)} chars")
    console.print(table)
