"""folio status command.

Shows both collections (entry counts, tags, categories) and the state of the
search index.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.panel import Panel

from folio.cli.common import console, load_project_config, open_supervisor
from folio.config import FolioConfig
from folio.db import Database
from folio.db.migrations import current_version
from folio.models import ContentKind
from folio.search import INDEX_FILENAME

if TYPE_CHECKING:
    from folio.supervisor import Supervisor


def status_cmd(
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Directory holding folio.yaml and the content roots."),
    ] = Path("."),
) -> None:
    """Show collection sizes, tags, categories and search index status."""
    cfg = load_project_config(project_dir, search=False)
    supervisor = open_supervisor(cfg)
    try:
        for kind in ContentKind:
            _show_collection_panel(supervisor, kind)
    finally:
        supervisor.stop()
    _show_index_panel(cfg)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_collection_panel(supervisor: Supervisor, kind: ContentKind) -> None:
    with supervisor.read(kind) as catalog:
        entries = catalog.entries
        live = [e for e in entries if not e.deleted]
        drafts = sum(1 for e in live if e.metadata.draft)
        tags = catalog.tags()
        categories = catalog.categories()
        root = catalog.root

    lines = [
        f"Root:       {root}",
        f"Entries:    [bold]{len(live)}[/]  |  Drafts: [bold]{drafts}[/]",
        f"Tags:       {', '.join(tags) if tags else '[dim](none)[/]'}",
        f"Categories: {', '.join(categories) if categories else '[dim](none)[/]'}",
    ]
    if live:
        newest = live[0]
        lines.append(f"Newest:     {newest.metadata.title} [dim]({newest.metadata.date:%Y-%m-%d})[/]")
    console.print(Panel("\n".join(lines), title=f"[bold]{kind.value.title()}[/]", expand=False))


def _show_index_panel(cfg: FolioConfig) -> None:
    db_path = cfg.index_path / INDEX_FILENAME
    enabled = "[green]enabled[/]" if cfg.search.enabled else "[yellow]disabled[/]"
    lines = [f"Search:   {enabled}"]
    if db_path.exists():
        with Database(db_path) as conn:
            docs = conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
            version = current_version(conn)
        size_mb = db_path.stat().st_size / (1024 * 1024)
        lines.append(f"Index:    {db_path} ({size_mb:.1f} MB)")
        lines.append(f"Documents: [bold]{docs}[/]  |  Schema: v{version}")
    else:
        lines.append("[dim]No index built yet.[/]")
        lines.append("  Run:  folio reindex")
    console.print(Panel("\n".join(lines), title="[bold]Search Index[/]", expand=False))
