"""folio reindex — rebuild the search index from the content on disk."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from folio.cli.common import console, load_project_config, open_supervisor
from folio.cli.errors import err_index_failed
from folio.errors import IndexerError


def reindex_cmd(
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Directory holding folio.yaml and the content roots."),
    ] = Path("."),
) -> None:
    """Drop and rebuild the full-text index (drafts are not indexed)."""
    cfg = load_project_config(project_dir, search=True)
    supervisor = open_supervisor(cfg)
    try:
        added = supervisor.reindex_all()
    except IndexerError as exc:
        console.print(err_index_failed(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        supervisor.stop()
    console.print(f"[green]✓[/] Indexed {added} documents into {cfg.index_path}")
