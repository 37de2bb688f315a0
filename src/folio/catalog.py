"""In-memory catalog of the Markdown entries under one content root.

The directory tree is the source of truth; the catalog is a derived, queryable
view of it:

    entries        dense list sorted by metadata.date (newest first); removed
                   files stay in the list as tombstones (deleted=True)
    slug index     slug -> position, live entries only
    tags/categories  unions over live, non-draft entries (drafts add category)
    mtime cache    file path -> mtime observed at the last scan
    body cache     file path -> body text, LRU-bounded

The catalog is not thread-safe. Callers serialise mutations (the supervisor
holds a read-write lock per catalog); only the body cache has its own mutex.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from collections import OrderedDict
from datetime import datetime, timezone
from itertools import islice
from pathlib import Path
from typing import TYPE_CHECKING

from folio.errors import (
    CapacityExceededError,
    ContentIOError,
    InvalidFileNameError,
    InvalidTitleError,
    LoadError,
)
from folio.frontmatter import is_readme, parse
from folio.models import ChangeKind, Entry, EntryContent, FileChange

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from folio.archive import VersionArchive

logger = logging.getLogger(__name__)

DEFAULT_BODY_CACHE_CAPACITY = 512
MAX_SLUG_CANDIDATES = 100

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to ``-``, strip edge dashes.

    Examples:
        "Hello World"        -> "hello-world"
        "  Rust & Python!! " -> "rust-python"
    """
    return _SLUG_RE.sub("-", title.lower()).strip("-")


def canonical_path(path: Path | str) -> str:
    return os.path.normpath(os.fspath(path))


# ---------------------------------------------------------------------------
# Body cache
# ---------------------------------------------------------------------------


class BodyCache:
    """Thread-safe LRU map of file path -> body text."""

    def __init__(self, capacity: int = DEFAULT_BODY_CACHE_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"body cache capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._data: OrderedDict[str, str] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, path: str) -> str | None:
        with self._lock:
            body = self._data.get(path)
            if body is not None:
                self._data.move_to_end(path)
            return body

    def put(self, path: str, body: str) -> None:
        with self._lock:
            self._data[path] = body
            self._data.move_to_end(path)
            while len(self._data) > self.capacity:
                self._data.popitem(last=False)

    def invalidate(self, path: str) -> None:
        with self._lock:
            self._data.pop(path, None)

    def retain(self, paths: set[str] | dict[str, float]) -> None:
        """Drop every cached body whose path is not in *paths*."""
        with self._lock:
            for path in [p for p in self._data if p not in paths]:
                del self._data[path]

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class Catalog:
    """Queryable, versioned view of the ``.md`` files under *root*.

    Args:
        root: Content root directory.
        nested: When True, descend into subdirectories and use the relative
            directory path (``/``-separated) as each entry's category.
        archive: Version archive used to compute ``Entry.version``.
        body_cache_capacity: Maximum number of bodies kept in memory.
    """

    def __init__(
        self,
        root: Path | str,
        nested: bool = False,
        *,
        archive: VersionArchive | None = None,
        body_cache_capacity: int = DEFAULT_BODY_CACHE_CAPACITY,
    ) -> None:
        self.root = canonical_path(root)
        self.nested = nested
        self.archive = archive
        self._entries: list[Entry] = []
        self._slug_index: dict[str, int] = {}
        self._tags: set[str] = set()
        self._categories: set[str] = set()
        self._mtime_cache: dict[str, float] = {}
        self._body_cache = BodyCache(body_cache_capacity)

    @classmethod
    def build(
        cls,
        root: Path | str,
        nested: bool = False,
        *,
        archive: VersionArchive | None = None,
        body_cache_capacity: int = DEFAULT_BODY_CACHE_CAPACITY,
    ) -> Catalog:
        """Scan *root* and return a fully populated catalog.

        Strict: the first file that fails to load fails the whole build.

        Raises:
            LoadError: on any listing, read or parse failure.
        """
        catalog = cls(root, nested, archive=archive, body_cache_capacity=body_cache_capacity)
        observed = catalog._enumerate(catalog.root, nested)
        for path in sorted(observed):
            if is_readme(path):
                continue
            entry = catalog._load_entry(path, catalog.root, nested)
            catalog._entries.append(entry)
            catalog._merge_sets(entry)
        catalog._reindex()
        catalog._mtime_cache = observed
        logger.info("loaded %d entries from %s", len(catalog._entries), catalog.root)
        return catalog

    # ------------------------------------------------------------------
    # Change detection and incremental update
    # ------------------------------------------------------------------

    def detect_changes(
        self, root: Path | str | None = None, nested: bool | None = None
    ) -> list[FileChange]:
        """Compare the files on disk against the mtime cache.

        Raises:
            ContentIOError: if the root cannot be listed.
        """
        root, nested = self._resolve(root, nested)
        current = self._enumerate(root, nested)
        changes: list[FileChange] = []
        for path, mtime in current.items():
            cached = self._mtime_cache.get(path)
            if cached is None:
                changes.append(FileChange(path, ChangeKind.ADDED))
            elif mtime > cached:
                changes.append(FileChange(path, ChangeKind.MODIFIED))
        for path in self._mtime_cache:
            if path not in current:
                changes.append(FileChange(path, ChangeKind.REMOVED))
        return changes

    def incremental_update(
        self, root: Path | str | None = None, nested: bool | None = None
    ) -> bool:
        """Apply every detected change; return True iff any entry changed.

        A file that fails to load is logged and skipped; the rest of the batch
        still applies.

        Raises:
            ContentIOError: if the root cannot be listed.
        """
        root, nested = self._resolve(root, nested)
        changes = self.detect_changes(root, nested)
        if not changes:
            return False

        logger.info("detected %d file changes in %s", len(changes), root)
        return self.apply_changes(changes, root, nested)

    def apply_changes(
        self,
        changes: list[FileChange],
        root: Path | str | None = None,
        nested: bool | None = None,
    ) -> bool:
        """Apply a change set produced by ``detect_changes`` (in order)."""
        root, nested = self._resolve(root, nested)
        applied = False
        for change in changes:
            if change.kind is ChangeKind.REMOVED:
                if self.remove_by_path(change.path):
                    applied = True
                continue
            try:
                if self._apply_file(change.path, root, nested):
                    applied = True
            except LoadError as exc:
                logger.warning("failed to update entry %s: %s", change.path, exc)

        self._reindex()
        self._mtime_cache = self._enumerate(root, nested)
        self._body_cache.retain(self._mtime_cache)
        return applied

    def update_single(
        self,
        path: Path | str,
        root: Path | str | None = None,
        nested: bool | None = None,
    ) -> None:
        """(Re)load one file into the catalog.

        On failure the previous entry for that slug is left untouched.

        Raises:
            LoadError: if the file cannot be read or parsed.
        """
        root, nested = self._resolve(root, nested)
        path = canonical_path(path)
        if not self._apply_file(path, root, nested):
            return
        self._reindex()
        entry = self.get_by_slug(Path(path).stem)
        if entry is not None:
            self._mtime_cache[path] = entry.last_modified

    def remove_by_path(self, path: Path | str) -> bool:
        """Tombstone the live entry loaded from *path*; True if one existed.

        Tags and categories are not narrowed; stale values remain until the
        next full build.
        """
        path = canonical_path(path)
        self._body_cache.invalidate(path)
        self._mtime_cache.pop(path, None)
        for idx, entry in enumerate(self._entries):
            if entry.file_path == path and not entry.deleted:
                entry.deleted = True
                entry.updated_at = datetime.now(timezone.utc)
                if self._slug_index.get(entry.slug) == idx:
                    del self._slug_index[entry.slug]
                logger.info("soft deleted entry: %s", entry.slug)
                return True
        return False

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_slug(self, slug: str) -> Entry | None:
        idx = self._slug_index.get(slug)
        if idx is None:
            return None
        entry = self._entries[idx]
        return None if entry.deleted else entry

    def query(
        self,
        predicate: Callable[[Entry], bool] | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> Iterator[Entry]:
        """Lazily yield live entries (newest first) that satisfy *predicate*.

        The predicate is applied before the ``offset``/``limit`` window. The
        iterator reads the live sequence; hold the catalog's read lock until
        it is exhausted.
        """
        matching = (
            e for e in self._entries
            if not e.deleted and (predicate is None or predicate(e))
        )
        stop = None if limit is None else offset + limit
        return islice(matching, offset, stop)

    def load_body(self, entry: Entry) -> str:
        """Return the body of *entry*, reading the file on a cache miss.

        Raises:
            LoadError: if the file cannot be read or parsed.
        """
        cached = self._body_cache.get(entry.file_path)
        if cached is not None:
            return cached
        raw = self._read(entry.file_path)
        _, body = parse(raw, entry.file_path)
        self._body_cache.put(entry.file_path, body)
        return body

    def snapshot_full(self) -> list[EntryContent]:
        """Every live, non-draft entry with its body (the indexer's feed)."""
        loaded: list[EntryContent] = []
        for entry in self._entries:
            if entry.deleted or entry.metadata.draft:
                continue
            try:
                body = self.load_body(entry)
            except LoadError as exc:
                logger.warning("failed to load content for entry %s: %s", entry.slug, exc)
                continue
            loaded.append(EntryContent(slug=entry.slug, metadata=entry.metadata, body=body))
        return loaded

    def unique_slug(self, title: str, max_candidates: int = MAX_SLUG_CANDIDATES) -> str:
        """Derive a slug from *title* that no live entry uses.

        Tries ``base``, ``base-1`` … ``base-{max_candidates - 1}``.

        Raises:
            InvalidTitleError: if the title has no alphanumeric characters.
            CapacityExceededError: if every candidate is taken.
        """
        base = slugify(title)
        if not base:
            raise InvalidTitleError(f"invalid title for slug generation: {title!r}")
        for n in range(max_candidates):
            candidate = base if n == 0 else f"{base}-{n}"
            if candidate not in self._slug_index:
                return candidate
        raise CapacityExceededError(
            f"exceeded maximum slug generation attempts ({max_candidates}) for {title!r}"
        )

    def tags(self) -> list[str]:
        return sorted(self._tags)

    def categories(self) -> list[str]:
        return sorted(self._categories)

    @property
    def entries(self) -> list[Entry]:
        """All entries in order, tombstones included."""
        return list(self._entries)

    def is_cached(self, path: Path | str) -> bool:
        return canonical_path(path) in self._body_cache

    def mtime_of(self, path: Path | str) -> float | None:
        return self._mtime_cache.get(canonical_path(path))

    def count(self) -> int:
        """Number of live (non-tombstoned) entries."""
        return len(self._slug_index)

    def __len__(self) -> int:
        return self.count()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _resolve(self, root: Path | str | None, nested: bool | None) -> tuple[str, bool]:
        return (
            self.root if root is None else canonical_path(root),
            self.nested if nested is None else nested,
        )

    def _apply_file(self, path: str, root: str, nested: bool) -> bool:
        self._body_cache.invalidate(path)
        if is_readme(path):
            return False
        entry = self._load_entry(path, root, nested)
        self._upsert(entry)
        self._merge_sets(entry)
        return True

    def _upsert(self, entry: Entry) -> None:
        idx = self._slug_index.get(entry.slug)
        if idx is None:
            # A tombstone with the same slug is replaced in place, not revived.
            idx = next(
                (i for i, e in enumerate(self._entries) if e.slug == entry.slug),
                None,
            )
        if idx is None:
            self._entries.append(entry)
            idx = len(self._entries) - 1
        else:
            self._entries[idx] = entry
        self._slug_index[entry.slug] = idx

    def _merge_sets(self, entry: Entry) -> None:
        if not entry.metadata.draft:
            self._tags.update(entry.metadata.tags)
        if entry.metadata.category:
            self._categories.add(entry.metadata.category)

    def _reindex(self) -> None:
        self._entries.sort(key=lambda e: e.metadata.date, reverse=True)
        self._slug_index = {
            e.slug: idx for idx, e in enumerate(self._entries) if not e.deleted
        }

    def _load_entry(self, path: str, root: str, nested: bool) -> Entry:
        slug = Path(path).stem
        try:
            slug.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise InvalidFileNameError(f"invalid file name: {path!r}") from exc
        if not slug:
            raise InvalidFileNameError(f"invalid file name: {path!r}")

        raw = self._read(path)
        metadata, _ = parse(raw, path)
        if nested:
            category = _category_for(path, root)
            if category is not None:
                metadata.category = category

        try:
            mtime = os.stat(path).st_mtime
        except OSError as exc:
            raise ContentIOError(f"cannot stat {path}: {exc}") from exc

        version = self.archive.count(slug) + 1 if self.archive is not None else 1
        return Entry(
            slug=slug,
            metadata=metadata,
            file_path=path,
            last_modified=mtime,
            updated_at=datetime.fromtimestamp(mtime, tz=timezone.utc),
            version=version,
        )

    @staticmethod
    def _read(path: str) -> bytes:
        try:
            return Path(path).read_bytes()
        except OSError as exc:
            raise ContentIOError(f"cannot read {path}: {exc}") from exc

    @staticmethod
    def _enumerate(root: str, nested: bool) -> dict[str, float]:
        """Map every ``.md`` file under *root* to its mtime."""
        found: dict[str, float] = {}
        if nested:
            if not os.path.isdir(root):
                raise ContentIOError(f"content directory does not exist: {root}")
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames.sort()
                for name in filenames:
                    if name.endswith(".md"):
                        _stat_into(found, os.path.join(dirpath, name))
            return found

        try:
            with os.scandir(root) as it:
                for item in it:
                    if item.name.endswith(".md") and item.is_file():
                        _stat_into(found, os.path.join(root, item.name))
        except OSError as exc:
            raise ContentIOError(f"cannot list {root}: {exc}") from exc
        return found


def _stat_into(found: dict[str, float], path: str) -> None:
    path = canonical_path(path)
    try:
        st = os.stat(path)
    except OSError:
        return  # vanished between listing and stat
    if os.path.isfile(path):
        found[path] = st.st_mtime


def _category_for(path: str, root: str) -> str | None:
    """Relative parent directory of *path* under *root*, ``/``-separated."""
    parent = os.path.dirname(path)
    rel = os.path.relpath(parent, root)
    if rel == os.curdir or rel.startswith(os.pardir):
        return None
    return rel.replace(os.sep, "/")
