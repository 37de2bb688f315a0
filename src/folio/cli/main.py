"""Folio CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from folio.cli.new import new_cmd
from folio.cli.reindex import reindex_cmd
from folio.cli.search import search_cmd
from folio.cli.serve import serve_cmd
from folio.cli.status import status_cmd
from folio.cli.versions import versions_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("folio")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"folio {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="folio",
    help=(
        "Folio — Markdown content catalogs with hot reload and full-text search.\n\n"
        "  folio serve     Keep catalogs and index in sync with disk until Ctrl+C.\n"
        "  folio reindex   Rebuild the search index from scratch."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Folio — Markdown content catalogs with hot reload and full-text search."""


app.command("serve")(serve_cmd)
app.command("reindex")(reindex_cmd)
app.command("search")(search_cmd)
app.command("status")(status_cmd)
app.command("versions")(versions_cmd)
app.command("new")(new_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed Folio version."""
    typer.echo(f"folio {_installed_version()}")


if __name__ == "__main__":
    app()
