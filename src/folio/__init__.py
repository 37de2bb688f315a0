"""Folio: Markdown content catalogs kept in sync with disk and a search index."""
