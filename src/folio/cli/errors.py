"""Folio rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from folio.cli.errors import err_config
    console.print(err_config(str(exc)))
    raise typer.Exit(1)
"""

from __future__ import annotations

from folio.errors import AppError


def err_config(message: str) -> str:
    """Config file or value is invalid."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix folio.yaml (or ~/.folio/config.yaml) and run the command again."
    )


def err_content_dir_missing(label: str, path: str) -> str:
    """A content root does not exist.

    Example:
        Error: articles directory not found: 'article'
          Create it:  mkdir -p article
    """
    return (
        f"[red]Error:[/] {label} directory not found: '{path}'\n"
        f"  Create it:  mkdir -p {path}\n"
        f"  Or point folio elsewhere:  export FOLIO_{label.upper()}_DIR=<path>"
    )


def err_load_failed(detail: str) -> str:
    """Initial catalog build failed on a source file."""
    return (
        f"[red]Error:[/] Could not load content.\n"
        f"  {detail}\n"
        "  Fix the front matter of the file above (it must start with a '---' block\n"
        "  containing title, author, date and description)."
    )


def err_index_failed(detail: str) -> str:
    """The search index could not be opened or written."""
    return (
        f"[red]Error:[/] Search index operation failed.\n"
        f"  {detail}\n"
        "  Remove the index directory and run:  folio reindex"
    )


def err_app(error: AppError) -> str:
    """An operation was rejected with an application error code."""
    return f"[red]Error:[/] {error.message} [dim]({error.code})[/]"


def err_no_content(source: str) -> str:
    """`folio new` called without a body."""
    return (
        f"[red]Error:[/] No content given for '{source}'.\n"
        "  Pass the body with --content TEXT or --file PATH."
    )
