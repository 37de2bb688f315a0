"""Caller-facing operations over the supervised catalogs.

This is the surface an API layer consumes. Every method either returns plain
models or raises an ``AppError`` subclass carrying a stable error code:

    svc = ContentService(supervisor)
    page = svc.list_entries(ContentKind.ARTICLES, tag="python", page=2)
    doc = svc.get_article("hello-world")

Explicit writes (create, update, restore) hold the articles write lock from
slug selection to catalog update, so concurrent writers cannot pick the same
slug. The watcher's resync later sees no change for these files because the
catalog's mtime cache is updated in the same step.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Union

from folio.errors import (
    ERR_ARTICLE_NOT_FOUND,
    ERR_BAD_REQUEST,
    ERR_EMPTY_SEARCH_QUERY,
    ERR_FULLTEXT_DISABLED,
    ERR_INTERNAL_SERVER,
    ERR_NOTE_NOT_FOUND,
    ERR_VERSION_NOT_FOUND,
    BadRequestError,
    CapacityExceededError,
    IndexerError,
    InternalError,
    InvalidTitleError,
    LoadError,
    NotFoundError,
    VersionNotFoundError,
)
from folio.frontmatter import render
from folio.models import (
    ContentKind,
    Entry,
    EntryContent,
    Metadata,
    SearchResult,
    VersionRecord,
)
from folio.supervisor import UpsertJob, document_for

if TYPE_CHECKING:
    from collections.abc import Callable

    from folio.catalog import Catalog
    from folio.config import FolioConfig
    from folio.supervisor import Supervisor

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
DEFAULT_SEARCH_LIMIT = 20
# Upper bound on index hits used to filter listings by a query.
_LISTING_SEARCH_LIMIT = 1000


@dataclass
class Page:
    items: list[Union[Entry, EntryContent]]
    total_pages: int
    current_page: int


class ContentService:
    def __init__(self, supervisor: Supervisor, config: FolioConfig | None = None) -> None:
        self.supervisor = supervisor
        self.config = config if config is not None else supervisor.config

    # ------------------------------------------------------------------
    # Listing and lookup
    # ------------------------------------------------------------------

    def list_entries(
        self,
        kind: ContentKind = ContentKind.ARTICLES,
        *,
        tag: str | None = None,
        category: str | None = None,
        q: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        include_content: bool = False,
    ) -> Page:
        """One page of published entries matching every given filter.

        ``q`` narrows by the search index when one is available, otherwise by
        a case-insensitive substring of title or description. With
        ``include_content`` each item is an ``EntryContent``; a body that
        cannot be read is returned empty.
        """
        limit = limit if limit > 0 else DEFAULT_PAGE_SIZE
        page = page if page > 0 else 1
        offset = (page - 1) * limit
        predicate = self._listing_filter(kind, tag, category, q)

        with self.supervisor.read(kind) as catalog:
            entries = list(catalog.query(predicate, offset, limit))
            total = sum(1 for _ in catalog.query(predicate))
            items: list[Union[Entry, EntryContent]]
            if include_content:
                items = [
                    EntryContent(slug=e.slug, metadata=e.metadata, body=self._body_or_empty(catalog, e))
                    for e in entries
                ]
            else:
                items = list(entries)

        return Page(items=items, total_pages=math.ceil(total / limit), current_page=page)

    def get_article(self, slug: str) -> EntryContent:
        with self.supervisor.read(ContentKind.ARTICLES) as catalog:
            entry = catalog.get_by_slug(slug)
            if entry is None or entry.metadata.draft:
                raise _article_not_found(slug)
            body = self._load_body(catalog, entry)
        return EntryContent(slug=entry.slug, metadata=entry.metadata, body=body)

    def get_note(self, path: str) -> EntryContent:
        """Look up a note by ``category/slug`` (or bare ``slug`` when uncategorised)."""
        category, _, slug = path.rpartition("/")
        category = category or None

        with self.supervisor.read(ContentKind.NOTES) as catalog:
            note = next(
                catalog.query(
                    lambda e: e.slug == slug and e.metadata.category == category
                ),
                None,
            )
            if note is None or note.metadata.draft:
                raise NotFoundError(ERR_NOTE_NOT_FOUND, f"Note with slug {path} not found")
            body = self._load_body(catalog, note)
        return EntryContent(slug=note.slug_with_category(), metadata=note.metadata, body=body)

    def latest(self, kind: ContentKind = ContentKind.ARTICLES, count: int | None = None) -> list[Entry]:
        count = count if count is not None else self.config.site.latest_articles_count
        with self.supervisor.read(kind) as catalog:
            return list(catalog.query(lambda e: not e.metadata.draft, 0, count))

    def tags(self, kind: ContentKind = ContentKind.ARTICLES) -> list[str]:
        with self.supervisor.read(kind) as catalog:
            return catalog.tags()

    def categories(self, kind: ContentKind = ContentKind.ARTICLES) -> list[str]:
        with self.supervisor.read(kind) as catalog:
            return catalog.categories()

    # ------------------------------------------------------------------
    # Explicit writes
    # ------------------------------------------------------------------

    def create_article(
        self,
        title: str,
        content: str,
        *,
        tags: list[str] | None = None,
        description: str | None = None,
        category: str | None = None,
        draft: bool = False,
        author: str = "system",
    ) -> Entry:
        """Write a new article file and bring the catalog and index up to date.

        Raises:
            BadRequestError: empty title or content, a title with no usable
                slug, an exhausted slug space, or an unsafe category.
            InternalError: the file or its snapshot could not be written.
        """
        _require_text(title, content)
        category = _clean_category(category)

        with self.supervisor.write(ContentKind.ARTICLES) as catalog:
            try:
                slug = catalog.unique_slug(title)
            except (InvalidTitleError, CapacityExceededError) as exc:
                raise BadRequestError(ERR_BAD_REQUEST, str(exc)) from exc

            metadata = Metadata(
                title=title,
                author=author,
                date=datetime.now(timezone.utc),
                description=description or "",
                tags=list(tags or []),
                draft=draft,
                category=category,
            )
            path = self._article_path(catalog, slug, category)
            entry = self._commit(catalog, path, metadata, content)

        logger.info("created article %s", slug)
        self._publish(entry, content)
        return entry

    def update_article(
        self,
        slug: str,
        title: str,
        content: str,
        *,
        tags: list[str] | None = None,
        description: str | None = None,
        category: str | None = None,
        draft: bool | None = None,
    ) -> Entry:
        """Rewrite an article, keeping its author and date.

        Fields left as None keep their current values; ``last_updated`` is set
        to now.

        Raises:
            BadRequestError: empty title or content, or an unsafe category.
            NotFoundError: no live article has *slug*.
            InternalError: the file or its snapshot could not be written.
        """
        _require_text(title, content)
        category = _clean_category(category)

        with self.supervisor.write(ContentKind.ARTICLES) as catalog:
            existing = catalog.get_by_slug(slug)
            if existing is None:
                raise _article_not_found(slug)

            old = existing.metadata
            metadata = Metadata(
                title=title,
                author=old.author,
                date=old.date,
                description=description if description is not None else old.description,
                tags=list(tags) if tags is not None else list(old.tags),
                draft=draft if draft is not None else old.draft,
                category=category or old.category,
                last_updated=datetime.now(timezone.utc).isoformat(),
            )
            path = self._article_path(catalog, slug, metadata.category, existing)
            entry = self._commit(catalog, path, metadata, content)
            if entry.file_path != existing.file_path:
                # moved to another category directory
                _unlink(Path(existing.file_path))
                catalog.remove_by_path(existing.file_path)

        logger.info("updated article %s", slug)
        self._publish(entry, content)
        return entry

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def list_versions(self, slug: str) -> list[VersionRecord]:
        self._published_article(slug)
        try:
            return self.supervisor.archive.list_versions(slug)
        except OSError as exc:
            raise InternalError(ERR_INTERNAL_SERVER, str(exc)) from exc

    def get_version(self, slug: str, version: int) -> VersionRecord:
        self._published_article(slug)
        return self._archived(slug, version)

    def restore_version(self, slug: str, version: int) -> VersionRecord:
        """Make snapshot *version* the current body of *slug*.

        The restored state is itself archived as a new snapshot.
        """
        with self.supervisor.write(ContentKind.ARTICLES) as catalog:
            entry = catalog.get_by_slug(slug)
            if entry is None:
                raise _article_not_found(slug)
            record = self._archived(slug, version)
            metadata = replace(
                entry.metadata,
                tags=list(entry.metadata.tags),
                last_updated=datetime.now(timezone.utc).isoformat(),
            )
            restored = self._commit(catalog, Path(entry.file_path), metadata, record.content)

        logger.info("restored version %s of %s", version, slug)
        self._publish(restored, record.content)
        return VersionRecord(
            article_id=slug,
            version=version,
            content=record.content,
            timestamp=datetime.now(timezone.utc),
        )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self, q: str, limit: int = DEFAULT_SEARCH_LIMIT, highlights: bool = True
    ) -> list[SearchResult]:
        """Full-text search; degrades to a linear scan if the index fails.

        Raises:
            BadRequestError: empty query, or search is disabled.
        """
        if not q.strip():
            raise BadRequestError(ERR_EMPTY_SEARCH_QUERY, "Search query cannot be empty")
        indexer = self.supervisor.indexer
        if indexer is None:
            raise BadRequestError(ERR_FULLTEXT_DISABLED, "Full-text search is disabled")

        indexer.record_search(q)
        try:
            return indexer.search(q, limit, highlights)
        except IndexerError as exc:
            logger.warning("index search failed, falling back to scan: %s", exc)
            return self.fallback_search(q, limit)

    def fallback_search(self, q: str, limit: int = DEFAULT_SEARCH_LIMIT) -> list[SearchResult]:
        """Case-insensitive substring scan over titles, descriptions and bodies."""
        needle = q.lower()
        budget = self.config.search.content_search_limit
        results: list[SearchResult] = []
        for kind in ContentKind:
            with self.supervisor.read(kind) as catalog:
                for entry in catalog.query(lambda e: not e.metadata.draft):
                    if len(results) >= limit:
                        return results
                    meta = entry.metadata
                    hit = needle in meta.title.lower() or needle in meta.description.lower()
                    if not hit:
                        hit = needle in self._body_or_empty(catalog, entry)[:budget].lower()
                    if hit:
                        results.append(
                            SearchResult(
                                slug=kind.index_prefix + entry.slug,
                                title=meta.title,
                                description=meta.description,
                                score=1.0,
                            )
                        )
        return results

    def popular_searches(self, k: int = 10) -> list[tuple[str, int]]:
        indexer = self.supervisor.indexer
        return indexer.top_searches(k) if indexer is not None else []

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _listing_filter(
        self,
        kind: ContentKind,
        tag: str | None,
        category: str | None,
        q: str | None,
    ) -> Callable[[Entry], bool]:
        search_slugs: set[str] | None = None
        needle = q.lower() if q else None
        indexer = self.supervisor.indexer
        if q and indexer is not None:
            try:
                hits = indexer.search(q, _LISTING_SEARCH_LIMIT)
                search_slugs = {hit.slug for hit in hits}
            except IndexerError as exc:
                logger.warning("index search failed for listing filter: %s", exc)

        prefix = kind.index_prefix

        def _matches(entry: Entry) -> bool:
            meta = entry.metadata
            if meta.draft:
                return False
            if tag is not None and tag not in meta.tags:
                return False
            if category is not None and meta.category != category:
                return False
            if search_slugs is not None:
                return prefix + entry.slug in search_slugs
            if needle is not None:
                return needle in meta.title.lower() or needle in meta.description.lower()
            return True

        return _matches

    def _published_article(self, slug: str) -> Entry:
        with self.supervisor.read(ContentKind.ARTICLES) as catalog:
            entry = catalog.get_by_slug(slug)
        if entry is None or entry.metadata.draft:
            raise _article_not_found(slug)
        return entry

    def _archived(self, slug: str, version: int) -> VersionRecord:
        try:
            return self.supervisor.archive.get_version(slug, version)
        except VersionNotFoundError as exc:
            raise NotFoundError(ERR_VERSION_NOT_FOUND, "Version not found") from exc
        except OSError as exc:
            raise InternalError(ERR_INTERNAL_SERVER, str(exc)) from exc

    @staticmethod
    def _article_path(
        catalog: Catalog, slug: str, category: str | None, existing: Entry | None = None
    ) -> Path:
        if catalog.nested and category:
            return Path(catalog.root, *PurePosixPath(category).parts, f"{slug}.md")
        if existing is not None and not catalog.nested:
            return Path(existing.file_path)
        return Path(catalog.root, f"{slug}.md")

    def _commit(self, catalog: Catalog, path: Path, metadata: Metadata, body: str) -> Entry:
        """Write *path*, reload it into *catalog* and archive the new body."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(render(metadata, body), encoding="utf-8")
            catalog.update_single(path)
        except (OSError, LoadError) as exc:
            raise InternalError(ERR_INTERNAL_SERVER, str(exc)) from exc

        entry = catalog.get_by_slug(path.stem)
        if entry is None:
            raise InternalError(ERR_INTERNAL_SERVER, f"article {path.stem} missing after write")
        try:
            self.supervisor.archive.save_version(entry)
        except (OSError, LoadError) as exc:
            raise InternalError(ERR_INTERNAL_SERVER, str(exc)) from exc
        return entry

    def _publish(self, entry: Entry, body: str) -> None:
        self.supervisor.submit(UpsertJob(document_for(ContentKind.ARTICLES, entry, body)))
        self.supervisor.invalidate()

    @staticmethod
    def _load_body(catalog: Catalog, entry: Entry) -> str:
        try:
            return catalog.load_body(entry)
        except LoadError as exc:
            raise InternalError(ERR_INTERNAL_SERVER, str(exc)) from exc

    @staticmethod
    def _body_or_empty(catalog: Catalog, entry: Entry) -> str:
        try:
            return catalog.load_body(entry)
        except LoadError as exc:
            logger.warning("cannot load body of %s: %s", entry.slug, exc)
            return ""


def _article_not_found(slug: str) -> NotFoundError:
    return NotFoundError(ERR_ARTICLE_NOT_FOUND, f"Article with slug {slug} not found")


def _require_text(title: str, content: str) -> None:
    if not title.strip() or not content.strip():
        raise BadRequestError(ERR_BAD_REQUEST, "Title and content cannot be empty")


def _clean_category(category: str | None) -> str | None:
    """Normalise a category to ``a/b`` form, rejecting anything that escapes the root."""
    if category is None:
        return None
    parts = [p for p in category.strip().replace("\\", "/").split("/") if p]
    if any(p in (".", "..") for p in parts):
        raise BadRequestError(ERR_BAD_REQUEST, f"Invalid category: {category!r}")
    return "/".join(parts) or None


def _unlink(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        raise InternalError(ERR_INTERNAL_SERVER, str(exc)) from exc
