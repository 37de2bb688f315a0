"""Filesystem watcher for a content root.

Runs in a daemon thread and calls ``on_event()`` whenever something under the
root changes. It reports *that* something changed, not what: the catalog's
change detection works out the details.

On Linux it uses inotify (via inotify_simple) and adds a watch for each new
subdirectory as it appears. Elsewhere it polls an mtime snapshot of the tree
every ``poll_interval`` seconds.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

_INOTIFY_TIMEOUT_MS = 500
_POLL_INTERVAL = 1.0


def inotify_supported() -> bool:
    return sys.platform.startswith("linux")


def snapshot_tree(root: Path | str, recursive: bool) -> dict[str, float]:
    """Map every file (and, when recursive, directory) under *root* to its mtime."""
    snap: dict[str, float] = {}
    root = os.fspath(root)
    if not os.path.isdir(root):
        return snap
    if recursive:
        for dirpath, dirnames, filenames in os.walk(root):
            for name in dirnames + filenames:
                _stat_into(snap, os.path.join(dirpath, name))
    else:
        for name in os.listdir(root):
            _stat_into(snap, os.path.join(root, name))
    return snap


def _stat_into(snap: dict[str, float], path: str) -> None:
    try:
        snap[path] = os.stat(path).st_mtime
    except OSError:
        pass  # removed between listing and stat


class DirectoryWatcher:
    """Watch *root* and call *on_event* on every observed change.

    Args:
        root: Directory to watch.
        on_event: Zero-argument callback, invoked from the watcher thread.
        recursive: Also watch subdirectories.
        use_inotify: Force (True) or disable (False) inotify; defaults to
            inotify on Linux.
        poll_interval: Seconds between snapshots in polling mode.
    """

    def __init__(
        self,
        root: Path | str,
        on_event: Callable[[], None],
        recursive: bool = True,
        *,
        use_inotify: bool | None = None,
        poll_interval: float = _POLL_INTERVAL,
    ) -> None:
        self.root = Path(root)
        self.on_event = on_event
        self.recursive = recursive
        self.use_inotify = inotify_supported() if use_inotify is None else use_inotify
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._snapshot: dict[str, float] = {}

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._snapshot = snapshot_tree(self.root, self.recursive)
        target = self._run_inotify if self.use_inotify else self._run_poll
        self._thread = threading.Thread(
            target=target, name=f"folio-watch-{self.root.name}", daemon=True
        )
        self._thread.start()
        logger.info(
            "watching %s (%s)", self.root, "inotify" if self.use_inotify else "polling"
        )

    def stop(self, timeout: float | None = 2.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def poll_once(self) -> bool:
        """Compare the tree against the last snapshot; fire on_event on a difference."""
        current = snapshot_tree(self.root, self.recursive)
        changed = current != self._snapshot
        self._snapshot = current
        if changed:
            self._fire()
        return changed

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    def _run_poll(self) -> None:
        while not self._stop.wait(self.poll_interval):
            self.poll_once()

    def _run_inotify(self) -> None:
        import inotify_simple

        flags = inotify_simple.flags
        mask = (
            flags.CREATE
            | flags.CLOSE_WRITE
            | flags.MODIFY
            | flags.DELETE
            | flags.MOVED_FROM
            | flags.MOVED_TO
        )
        inotify = inotify_simple.INotify()
        watched: dict[int, Path] = {}

        def _add(directory: Path) -> None:
            try:
                watched[inotify.add_watch(str(directory), mask)] = directory
            except OSError as exc:
                logger.warning("cannot watch %s: %s", directory, exc)

        _add(self.root)
        if self.recursive:
            for sub in self.root.rglob("*"):
                if sub.is_dir():
                    _add(sub)

        try:
            while not self._stop.is_set():
                events = inotify.read(timeout=_INOTIFY_TIMEOUT_MS)
                if not events:
                    continue
                for event in events:
                    parent = watched.get(event.wd)
                    if (
                        self.recursive
                        and parent is not None
                        and event.mask & flags.ISDIR
                        and event.mask & (flags.CREATE | flags.MOVED_TO)
                    ):
                        _add(parent / event.name)
                self._fire()
        finally:
            inotify.close()

    def _fire(self) -> None:
        try:
            self.on_event()
        except Exception:
            logger.exception("watch callback failed for %s", self.root)
