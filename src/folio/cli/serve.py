"""folio serve — keep the catalogs and search index live until interrupted."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Annotated

import typer

from folio.cli.common import console, load_project_config, open_supervisor
from folio.cli.errors import err_index_failed
from folio.errors import IndexerError
from folio.models import ContentKind

logger = logging.getLogger(__name__)


def serve_cmd(
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Directory holding folio.yaml and the content roots."),
    ] = Path("."),
    search: Annotated[
        bool | None,
        typer.Option("--search/--no-search", help="Override search.enabled."),
    ] = None,
    poll: Annotated[
        bool,
        typer.Option("--poll", help="Poll for changes instead of using inotify."),
    ] = False,
) -> None:
    """Load both collections, index them and hot-reload on file changes."""
    cfg = load_project_config(project_dir, search=search)
    supervisor = open_supervisor(cfg)
    if poll:
        supervisor.use_inotify = False

    try:
        supervisor.start(watch=True)
    except IndexerError as exc:
        supervisor.stop()
        console.print(err_index_failed(str(exc)))
        raise typer.Exit(1) from exc
    for kind in ContentKind:
        with supervisor.read(kind) as catalog:
            console.print(f"[green]✓[/] {kind.value}: {catalog.count()} entries from {catalog.root}")
    if supervisor.indexer is not None:
        console.print(f"[green]✓[/] search index: {supervisor.indexer.path}")
    console.print("[dim]Watching for changes. Press Ctrl+C to stop.[/]")

    stopped = threading.Event()
    try:
        while not stopped.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("interrupted, shutting down")
    finally:
        supervisor.stop()
