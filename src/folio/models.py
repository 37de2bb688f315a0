"""Domain models for the content catalog, version archive and search index."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass
class Metadata:
    """Front matter of a single Markdown source file."""

    title: str
    author: str
    date: datetime  # always timezone-aware UTC
    description: str
    tags: list[str] = field(default_factory=list)
    draft: bool = False
    category: str | None = None
    last_updated: str | None = None


@dataclass
class Entry:
    """One source file's parsed metadata plus catalog bookkeeping."""

    slug: str
    metadata: Metadata
    file_path: str
    last_modified: float
    updated_at: datetime
    version: int = 1
    deleted: bool = False  # tombstone: kept in the sequence, hidden from lookups

    def slug_with_category(self) -> str:
        """Return ``category/slug`` when the entry has a category, else the slug."""
        if self.metadata.category:
            return f"{self.metadata.category}/{self.slug}"
        return self.slug


@dataclass
class EntryContent:
    """An entry together with its body text."""

    slug: str
    metadata: Metadata
    body: str


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class FileChange:
    path: str
    kind: ChangeKind


@dataclass
class SearchDocument:
    """Row shape stored in the full-text index."""

    slug: str
    title: str
    content: str
    description: str
    tags: str  # space-joined
    category: str = ""
    draft: bool = False

    @classmethod
    def from_content(cls, item: EntryContent, *, prefix: str = "") -> SearchDocument:
        meta = item.metadata
        return cls(
            slug=f"{prefix}{item.slug}",
            title=meta.title,
            content=item.body,
            description=meta.description,
            tags=" ".join(meta.tags),
            category=meta.category or "",
            draft=meta.draft,
        )


@dataclass
class SearchResult:
    slug: str
    title: str
    description: str
    score: float
    highlights: list[str] | None = None


@dataclass
class SearchEvent:
    query: str
    timestamp: datetime
    count: int = 1


@dataclass
class VersionRecord:
    article_id: str
    version: int
    content: str
    timestamp: datetime
    editor: str = "system"


class ContentKind(str, Enum):
    """The two collections; the value doubles as the notes index prefix."""

    ARTICLES = "articles"
    NOTES = "notes"

    @property
    def index_prefix(self) -> str:
        return "notes/" if self is ContentKind.NOTES else ""
