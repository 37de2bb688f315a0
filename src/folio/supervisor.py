"""Supervisor: owns the catalogs, the search index and the background threads.

Threads:
    folio-indexer          single worker draining the index job queue
    folio-watch-<root>     one DirectoryWatcher per content root
    folio-resync-<kind>    one debounce loop per content root

Each catalog sits behind an RWLock. A resync takes the write lock for the
whole detect/apply step so readers never see a half-applied batch.

Per-root state machine:

    RUNNING -> DEBOUNCING -> UPDATING -> RUNNING
    UPDATING -> REBUILD_FALLBACK -> RUNNING    (incremental update failed)
    (any) -> STOPPED                           (stop())
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Union

from folio.archive import VersionArchive
from folio.catalog import Catalog, canonical_path
from folio.config import FolioConfig
from folio.errors import IndexerError, LoadError
from folio.locks import RWLock
from folio.models import (
    ChangeKind,
    ContentKind,
    Entry,
    EntryContent,
    SearchDocument,
)
from folio.search import SearchIndex
from folio.watcher import DirectoryWatcher

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.5

_SENTINEL = object()
_TOKEN = object()


class RootState(str, Enum):
    RUNNING = "running"
    DEBOUNCING = "debouncing"
    UPDATING = "updating"
    REBUILD_FALLBACK = "rebuild_fallback"
    STOPPED = "stopped"


@dataclass(frozen=True)
class UpsertJob:
    doc: SearchDocument

    @property
    def slug(self) -> str:
        return self.doc.slug


@dataclass(frozen=True)
class RemoveJob:
    slug: str


IndexJob = Union[UpsertJob, RemoveJob]


def split_jobs(jobs: list[IndexJob]) -> tuple[list[SearchDocument], list[str]]:
    """Split a run of jobs into (upserts, removes), each in arrival order.

    ``apply_batch`` runs every removal before the upserts, so within one batch
    an upsert survives a removal of the same slug and the last upsert wins.
    """
    upserts = [job.doc for job in jobs if isinstance(job, UpsertJob)]
    removes = [job.slug for job in jobs if isinstance(job, RemoveJob)]
    return upserts, removes


def document_for(kind: ContentKind, entry: Entry, body: str) -> SearchDocument:
    return SearchDocument.from_content(
        EntryContent(slug=entry.slug, metadata=entry.metadata, body=body),
        prefix=kind.index_prefix,
    )


@dataclass
class _Root:
    kind: ContentKind
    path: Path
    nested: bool
    catalog: Catalog
    lock: RWLock = field(default_factory=RWLock)
    state: RootState = RootState.RUNNING
    tokens: queue.Queue = field(default_factory=queue.Queue)
    watcher: DirectoryWatcher | None = None
    thread: threading.Thread | None = None


class Supervisor:
    """Keeps the two catalogs and the search index in step with the filesystem.

    Args:
        config: Loaded configuration.
        on_invalidate: Callbacks run after any content change (response caches).
        debounce: Seconds to wait after a filesystem event before resyncing.
        use_inotify: Passed to each DirectoryWatcher.

    Raises:
        LoadError: if either catalog fails its initial build.
        IndexerError: if search is enabled and the index cannot be opened.
    """

    def __init__(
        self,
        config: FolioConfig,
        *,
        on_invalidate: list[Callable[[], None]] | None = None,
        debounce: float = DEBOUNCE_SECONDS,
        use_inotify: bool | None = None,
    ) -> None:
        self.config = config
        self.debounce = debounce
        self.use_inotify = use_inotify
        self.archive = VersionArchive(config.data_path)
        self._invalidators: list[Callable[[], None]] = list(on_invalidate or [])
        self._jobs: queue.Queue = queue.Queue()
        self._worker: threading.Thread | None = None
        self._stopping = threading.Event()

        self._roots: dict[ContentKind, _Root] = {}
        for kind, path, nested, archive in (
            (ContentKind.ARTICLES, config.articles_path, config.content.articles_nested, self.archive),
            (ContentKind.NOTES, config.notes_path, config.content.notes_nested, None),
        ):
            self._roots[kind] = _Root(
                kind=kind,
                path=path,
                nested=nested,
                catalog=self._build(path, nested, archive),
            )

        self.indexer: SearchIndex | None = None
        if config.search.enabled:
            self.indexer = SearchIndex.open_or_create(config.index_path)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, watch: bool = True) -> None:
        """Index everything, start the worker and (optionally) the watchers."""
        self._stopping.clear()
        if self.indexer is not None:
            self.reindex_all()
            self._worker = threading.Thread(
                target=self._run_worker, name="folio-indexer", daemon=True
            )
            self._worker.start()

        if not watch:
            return
        for root in self._roots.values():
            root.watcher = DirectoryWatcher(
                root.path,
                lambda r=root: r.tokens.put(_TOKEN),
                recursive=root.nested,
                use_inotify=self.use_inotify,
            )
            root.thread = threading.Thread(
                target=self._run_resync_loop,
                args=(root,),
                name=f"folio-resync-{root.kind.value}",
                daemon=True,
            )
            root.thread.start()
            root.watcher.start()

    def stop(self) -> None:
        """Stop watchers and threads. Jobs still queued may be lost."""
        self._stopping.set()
        for root in self._roots.values():
            if root.watcher is not None:
                root.watcher.stop()
                root.watcher = None
            if root.thread is not None:
                root.tokens.put(_SENTINEL)
                root.thread.join()
                root.thread = None
            root.state = RootState.STOPPED

        if self._worker is not None:
            self._jobs.put(_SENTINEL)
            self._worker.join()
            self._worker = None
        if self.indexer is not None:
            self.indexer.close()
        logger.info("supervisor stopped")

    def __enter__(self) -> Supervisor:
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Catalog access
    # ------------------------------------------------------------------

    def catalog(self, kind: ContentKind) -> Catalog:
        """The current catalog for *kind*. Hold read() or write() while using it."""
        return self._roots[kind].catalog

    @contextmanager
    def read(self, kind: ContentKind) -> Iterator[Catalog]:
        root = self._roots[kind]
        with root.lock.read():
            yield root.catalog

    @contextmanager
    def write(self, kind: ContentKind) -> Iterator[Catalog]:
        root = self._roots[kind]
        with root.lock.write():
            yield root.catalog

    def state(self, kind: ContentKind) -> RootState:
        return self._roots[kind].state

    def root_path(self, kind: ContentKind) -> Path:
        return self._roots[kind].path

    # ------------------------------------------------------------------
    # Index jobs
    # ------------------------------------------------------------------

    def submit(self, job: IndexJob) -> None:
        """Queue an index job; a no-op when search is disabled."""
        if self.indexer is None:
            return
        self._jobs.put(job)

    def flush(self) -> None:
        """Block until every queued index job has been applied."""
        if self.indexer is None:
            return
        if self._worker is not None and self._worker.is_alive():
            self._jobs.join()
            return
        # No worker thread: apply inline.
        pending: list[IndexJob] = []
        while True:
            try:
                job = self._jobs.get_nowait()
            except queue.Empty:
                break
            if job is not _SENTINEL:
                pending.append(job)
            self._jobs.task_done()
        if pending:
            self._apply(pending)

    def reindex_all(self) -> int:
        """Rebuild the index from fresh snapshots of both catalogs.

        Raises:
            IndexerError: if the rebuild fails; the previous index stays.
        """
        if self.indexer is None:
            return 0
        docs: list[SearchDocument] = []
        for kind in ContentKind:
            with self.read(kind) as catalog:
                snapshot = catalog.snapshot_full()
            docs.extend(
                SearchDocument.from_content(item, prefix=kind.index_prefix)
                for item in snapshot
            )
        return self.indexer.rebuild(docs, self.config.search.heap_size)

    # ------------------------------------------------------------------
    # Cache invalidation
    # ------------------------------------------------------------------

    def add_invalidation_listener(self, callback: Callable[[], None]) -> None:
        self._invalidators.append(callback)

    def invalidate(self) -> None:
        for callback in self._invalidators:
            try:
                callback()
            except Exception:
                logger.exception("cache invalidation callback failed")

    # ------------------------------------------------------------------
    # Resync
    # ------------------------------------------------------------------

    def resync(self, kind: ContentKind) -> bool:
        """Bring the *kind* catalog (and the index) up to date with disk.

        Returns True if anything changed. Falls back to a full rebuild when
        incremental detection fails; if that fails too, the previous catalog
        is kept.
        """
        root = self._roots[kind]
        jobs: list[IndexJob] = []
        rebuilt = False

        with root.lock.write():
            root.state = RootState.UPDATING
            catalog = root.catalog
            try:
                changes = catalog.detect_changes()
                if not changes:
                    root.state = RootState.RUNNING
                    return False
                logger.info("detected %d file changes in %s", len(changes), root.path)
                removed = [Path(c.path).stem for c in changes if c.kind is ChangeKind.REMOVED]
                if not catalog.apply_changes(changes):
                    root.state = RootState.RUNNING
                    return False
            except LoadError as exc:
                logger.warning(
                    "incremental update failed for %s: %s; performing full reload",
                    root.path, exc,
                )
                root.state = RootState.REBUILD_FALLBACK
                try:
                    root.catalog = self._build(root.path, root.nested, catalog.archive)
                except LoadError as rebuild_exc:
                    logger.error("full reload of %s failed: %s", root.path, rebuild_exc)
                    root.state = RootState.RUNNING
                    return False
                rebuilt = True
                logger.info("full reload of %s completed", root.path)
            else:
                for change in changes:
                    if change.kind is ChangeKind.REMOVED:
                        continue
                    job = self._upsert_for(kind, catalog, change.path)
                    if job is not None:
                        jobs.append(job)
                # skip slugs now served by a file at another path
                jobs.extend(
                    RemoveJob(kind.index_prefix + slug)
                    for slug in dict.fromkeys(removed)
                    if catalog.get_by_slug(slug) is None
                )
                logger.info("incremental update applied to %s", root.path)
            root.state = RootState.RUNNING

        if rebuilt:
            try:
                self.reindex_all()
            except IndexerError as exc:
                logger.error("reindex after full reload failed: %s", exc)
        else:
            for job in jobs:
                self.submit(job)
        self.invalidate()
        return True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _build(self, path: Path, nested: bool, archive: VersionArchive | None) -> Catalog:
        return Catalog.build(
            path,
            nested,
            archive=archive,
            body_cache_capacity=self.config.content.body_cache_capacity,
        )

    @staticmethod
    def _upsert_for(kind: ContentKind, catalog: Catalog, path: str) -> UpsertJob | None:
        path = canonical_path(path)
        entry = catalog.get_by_slug(Path(path).stem)
        if entry is None or entry.file_path != path:
            return None
        try:
            body = catalog.load_body(entry)
        except LoadError as exc:
            logger.warning("cannot load body of %s for indexing: %s", entry.slug, exc)
            return None
        return UpsertJob(document_for(kind, entry, body))

    def _run_resync_loop(self, root: _Root) -> None:
        while True:
            token = root.tokens.get()
            if token is _SENTINEL:
                return
            root.state = RootState.DEBOUNCING
            if self._stopping.wait(self.debounce):
                return
            while True:
                try:
                    token = root.tokens.get_nowait()
                except queue.Empty:
                    break
                if token is _SENTINEL:
                    return
            try:
                self.resync(root.kind)
            except Exception:
                logger.exception("resync of %s failed", root.path)
                root.state = RootState.RUNNING

    def _run_worker(self) -> None:
        while True:
            batch = [self._jobs.get()]
            while True:
                try:
                    batch.append(self._jobs.get_nowait())
                except queue.Empty:
                    break
            stop = any(job is _SENTINEL for job in batch)
            try:
                jobs = [job for job in batch if job is not _SENTINEL]
                if jobs:
                    self._apply(jobs)
            finally:
                for _ in batch:
                    self._jobs.task_done()
            if stop:
                return

    def _apply(self, jobs: list[IndexJob]) -> None:
        upserts, removes = split_jobs(jobs)
        try:
            self.indexer.apply_batch(upserts, removes, self.config.search.heap_size)
        except IndexerError as exc:
            logger.warning("index batch of %d jobs failed: %s", len(jobs), exc)
