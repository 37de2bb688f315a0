"""Append-only version archive for article bodies.

Layout:
    {data_dir}/articles/<slug>/versions/<N>.md    # body only, no front matter

N is the wall-clock time in milliseconds at save, bumped past any existing
number so names strictly increase within a slug. Files are created with
exclusive mode; a writer that loses the race for a name takes the next one.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from folio.errors import VersionNotFoundError
from folio.frontmatter import split
from folio.models import VersionRecord

if TYPE_CHECKING:
    from folio.models import Entry

logger = logging.getLogger(__name__)


class VersionArchive:
    """Filesystem-backed store of body snapshots keyed by slug."""

    def __init__(self, data_dir: Path | str) -> None:
        self.data_dir = Path(data_dir)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def version_dir(self, slug: str) -> Path:
        return self.data_dir / "articles" / slug / "versions"

    def version_path(self, slug: str, version: int) -> Path:
        return self.version_dir(slug) / f"{version}.md"

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save_version(self, entry: Entry) -> int:
        """Snapshot the current body of *entry* and return its version number.

        Only the body is stored; front matter is stripped.

        Raises:
            OSError: if the source file cannot be read or the snapshot written.
            MissingFrontMatterError: if the source has no front-matter block.
        """
        version_dir = self.version_dir(entry.slug)
        version_dir.mkdir(parents=True, exist_ok=True)
        text = Path(entry.file_path).read_text(encoding="utf-8-sig")
        _, content = split(text, entry.file_path)

        candidate = max(time.time_ns() // 1_000_000, self._highest(entry.slug) + 1)
        while True:
            path = version_dir / f"{candidate}.md"
            try:
                with path.open("x", encoding="utf-8") as f:
                    f.write(content)
            except FileExistsError:
                candidate += 1
                continue
            logger.debug("saved version %s of %s", candidate, entry.slug)
            return candidate

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def count(self, slug: str) -> int:
        """Number of snapshots stored for *slug*."""
        version_dir = self.version_dir(slug)
        if not version_dir.is_dir():
            return 0
        return sum(1 for p in version_dir.glob("*.md") if p.is_file())

    def list_versions(self, slug: str) -> list[VersionRecord]:
        """Return all snapshots for *slug*, oldest first."""
        records = [
            self._record(slug, number, path) for number, path in self._numbered(slug)
        ]
        records.sort(key=lambda r: r.version)
        return records

    def get_version(self, slug: str, version: int) -> VersionRecord:
        path = self.version_path(slug, version)
        if not path.is_file():
            raise VersionNotFoundError(f"version {version} of '{slug}' not found")
        return self._record(slug, version, path)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _numbered(self, slug: str) -> list[tuple[int, Path]]:
        version_dir = self.version_dir(slug)
        if not version_dir.is_dir():
            return []
        result: list[tuple[int, Path]] = []
        for path in version_dir.glob("*.md"):
            try:
                result.append((int(path.stem), path))
            except ValueError:
                continue
        return result

    def _highest(self, slug: str) -> int:
        return max((n for n, _ in self._numbered(slug)), default=0)

    @staticmethod
    def _record(slug: str, version: int, path: Path) -> VersionRecord:
        stat = path.stat()
        return VersionRecord(
            article_id=slug,
            version=version,
            content=path.read_text(encoding="utf-8"),
            timestamp=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )
