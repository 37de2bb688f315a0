"""Folio search-index database layer."""

from folio.db.connection import Database
from folio.db.migrations import MIGRATIONS, run_migrations

__all__ = ["Database", "MIGRATIONS", "run_migrations"]
