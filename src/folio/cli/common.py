"""Shared setup for commands that open the content catalogs."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from folio.cli.errors import err_config, err_content_dir_missing, err_index_failed, err_load_failed
from folio.config import ConfigError, FolioConfig, configure_logging, load_config, validate
from folio.errors import IndexerError, LoadError
from folio.supervisor import Supervisor

console = Console()


def load_project_config(project_dir: Path, *, search: bool | None = None) -> FolioConfig:
    """Load, override and validate config, exiting with a readable error on failure."""
    try:
        cfg = load_config(project_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc

    if search is not None:
        cfg.search.enabled = search

    for label, path in (("articles", cfg.articles_path), ("notes", cfg.notes_path)):
        if not path.is_dir():
            console.print(err_content_dir_missing(label, str(path)))
            raise typer.Exit(1)
    try:
        validate(cfg)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc

    configure_logging(cfg.log_level)
    return cfg


def open_supervisor(cfg: FolioConfig) -> Supervisor:
    try:
        return Supervisor(cfg)
    except LoadError as exc:
        console.print(err_load_failed(str(exc)))
        raise typer.Exit(1) from exc
    except IndexerError as exc:
        console.print(err_index_failed(str(exc)))
        raise typer.Exit(1) from exc
