"""Tests for folio.service.ContentService."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from folio.config import FolioConfig
from folio.errors import (
    ERR_ARTICLE_NOT_FOUND,
    ERR_BAD_REQUEST,
    ERR_EMPTY_SEARCH_QUERY,
    ERR_FULLTEXT_DISABLED,
    ERR_INTERNAL_SERVER,
    ERR_NOTE_NOT_FOUND,
    ERR_VERSION_NOT_FOUND,
    BadRequestError,
    IndexerError,
    InternalError,
    NotFoundError,
)
from folio.frontmatter import parse
from folio.models import ContentKind, EntryContent
from folio.service import ContentService
from folio.supervisor import Supervisor


@pytest.fixture
def svc(project: FolioConfig) -> Iterator[ContentService]:
    sup = Supervisor(project)
    yield ContentService(sup)
    sup.stop()


@pytest.fixture
def search_svc(search_project: FolioConfig) -> Iterator[ContentService]:
    sup = Supervisor(search_project)
    sup.start(watch=False)
    yield ContentService(sup)
    sup.stop()


def _resync(svc: ContentService, kind: ContentKind = ContentKind.ARTICLES) -> None:
    svc.supervisor.resync(kind)
    svc.supervisor.flush()


# ---------------------------------------------------------------------------
# listing
# ---------------------------------------------------------------------------


def test_list_entries_paginates_and_hides_drafts(svc: ContentService, write_md) -> None:
    root = svc.supervisor.root_path(ContentKind.ARTICLES)
    for day in range(1, 6):
        write_md(root, f"p{day}", date=f"2024-01-0{day}T00:00:00Z")
    write_md(root, "draft", date="2024-02-01T00:00:00Z", draft=True)
    _resync(svc)

    first = svc.list_entries(page=1, limit=2)
    last = svc.list_entries(page=3, limit=2)

    assert [e.slug for e in first.items] == ["p5", "p4"]
    assert first.total_pages == 3
    assert first.current_page == 1
    assert [e.slug for e in last.items] == ["p1"]


def test_list_entries_bad_paging_uses_defaults(svc: ContentService, write_md) -> None:
    write_md(svc.supervisor.root_path(ContentKind.ARTICLES), "a")
    _resync(svc)

    page = svc.list_entries(page=0, limit=0)

    assert page.current_page == 1
    assert page.total_pages == 1


def test_list_entries_filters(svc: ContentService, write_md) -> None:
    root = svc.supervisor.root_path(ContentKind.ARTICLES)
    write_md(root, "rust/a", tags=["async"], title="Tokio tour")
    write_md(root, "rust/b", tags=["sync"], description="Mutex basics")
    write_md(root, "python/c", tags=["async"])
    _resync(svc)

    assert sorted(e.slug for e in svc.list_entries(tag="async").items) == ["a", "c"]
    assert sorted(e.slug for e in svc.list_entries(category="rust").items) == ["a", "b"]
    assert [e.slug for e in svc.list_entries(q="tokio").items] == ["a"]
    assert [e.slug for e in svc.list_entries(q="MUTEX").items] == ["b"]
    assert svc.list_entries(tag="async", category="rust").total_pages == 1


def test_list_entries_with_content(svc: ContentService, write_md) -> None:
    write_md(svc.supervisor.root_path(ContentKind.ARTICLES), "a", body="full body\n")
    _resync(svc)

    item = svc.list_entries(include_content=True).items[0]

    assert isinstance(item, EntryContent)
    assert item.body == "full body\n"


def test_list_entries_query_uses_index(search_svc: ContentService, write_md) -> None:
    root = search_svc.supervisor.root_path(ContentKind.ARTICLES)
    write_md(root, "a", body="the word lychee lives in the body only\n")
    write_md(root, "b", body="nothing\n")
    _resync(search_svc)

    assert [e.slug for e in search_svc.list_entries(q="lychee").items] == ["a"]


def test_latest_tags_categories(svc: ContentService, write_md) -> None:
    root = svc.supervisor.root_path(ContentKind.ARTICLES)
    for day in range(1, 8):
        write_md(root, f"cat{day % 2}/p{day}", date=f"2024-01-0{day}T00:00:00Z", tags=[f"t{day % 3}"])
    _resync(svc)

    assert [e.slug for e in svc.latest()] == ["p7", "p6", "p5", "p4", "p3"]
    assert [e.slug for e in svc.latest(count=1)] == ["p7"]
    assert svc.tags() == ["t0", "t1", "t2"]
    assert svc.categories() == ["cat0", "cat1"]


# ---------------------------------------------------------------------------
# lookups
# ---------------------------------------------------------------------------


def test_get_article(svc: ContentService, write_md) -> None:
    write_md(svc.supervisor.root_path(ContentKind.ARTICLES), "a", body="hello\n")
    _resync(svc)

    doc = svc.get_article("a")

    assert doc.slug == "a"
    assert doc.body == "hello\n"


@pytest.mark.parametrize("slug", ["missing", "wip"])
def test_get_article_not_found(svc: ContentService, write_md, slug: str) -> None:
    write_md(svc.supervisor.root_path(ContentKind.ARTICLES), "wip", draft=True)
    _resync(svc)

    with pytest.raises(NotFoundError) as exc_info:
        svc.get_article(slug)
    assert exc_info.value.code == ERR_ARTICLE_NOT_FOUND


def test_get_article_unreadable_body_is_internal_error(project: FolioConfig, write_md) -> None:
    path = write_md(project.articles_path, "a")
    sup = Supervisor(project)
    path.unlink()

    with pytest.raises(InternalError) as exc_info:
        ContentService(sup).get_article("a")
    sup.stop()
    assert exc_info.value.code == ERR_INTERNAL_SERVER
    assert exc_info.value.to_dict()["error_code"] == ERR_INTERNAL_SERVER


def test_get_note_by_category_path(svc: ContentService, write_md) -> None:
    root = svc.supervisor.root_path(ContentKind.NOTES)
    write_md(root, "rust/ownership", body="borrow\n")
    write_md(root, "loose", body="free\n")
    _resync(svc, ContentKind.NOTES)

    note = svc.get_note("rust/ownership")
    loose = svc.get_note("loose")

    assert note.slug == "rust/ownership"
    assert note.body == "borrow\n"
    assert loose.slug == "loose"


@pytest.mark.parametrize("path", ["ownership", "python/ownership", "nope"])
def test_get_note_not_found(svc: ContentService, write_md, path: str) -> None:
    write_md(svc.supervisor.root_path(ContentKind.NOTES), "rust/ownership")
    _resync(svc, ContentKind.NOTES)

    with pytest.raises(NotFoundError) as exc_info:
        svc.get_note(path)
    assert exc_info.value.code == ERR_NOTE_NOT_FOUND


# ---------------------------------------------------------------------------
# create / update
# ---------------------------------------------------------------------------


def test_create_article_writes_file_and_snapshot(svc: ContentService) -> None:
    entry = svc.create_article(
        "Hello World", "Body here\n", tags=["intro"], description="first", category="news"
    )

    path = Path(entry.file_path)
    assert entry.slug == "hello-world"
    assert path == svc.supervisor.root_path(ContentKind.ARTICLES) / "news" / "hello-world.md"
    meta, body = parse(path.read_bytes())
    assert meta.title == "Hello World"
    assert meta.author == "system"
    assert meta.category == "news"
    assert body == "Body here\n"
    assert svc.get_article("hello-world").body == "Body here\n"
    versions = svc.list_versions("hello-world")
    assert [v.content for v in versions] == ["Body here\n"]


def test_create_article_is_not_seen_again_by_resync(svc: ContentService) -> None:
    svc.create_article("Quiet", "x")
    assert svc.supervisor.resync(ContentKind.ARTICLES) is False


def test_create_duplicate_titles_get_suffixes(svc: ContentService) -> None:
    slugs = [svc.create_article("Hello World", f"body {i}").slug for i in range(3)]
    assert slugs == ["hello-world", "hello-world-1", "hello-world-2"]


def test_create_101st_duplicate_fails(svc: ContentService) -> None:
    for i in range(100):
        svc.create_article("Hello World", f"body {i}")

    with pytest.raises(BadRequestError) as exc_info:
        svc.create_article("Hello World", "one too many")
    assert exc_info.value.code == ERR_BAD_REQUEST


@pytest.mark.parametrize(
    "title, content",
    [("", "body"), ("   ", "body"), ("Title", ""), ("Title", "  \n")],
)
def test_create_rejects_empty_input(svc: ContentService, title: str, content: str) -> None:
    with pytest.raises(BadRequestError) as exc_info:
        svc.create_article(title, content)
    assert exc_info.value.code == ERR_BAD_REQUEST


@pytest.mark.parametrize("title", ["???", "!!!"])
def test_create_rejects_unsluggable_title(svc: ContentService, title: str) -> None:
    with pytest.raises(BadRequestError):
        svc.create_article(title, "body")


def test_create_rejects_escaping_category(svc: ContentService) -> None:
    with pytest.raises(BadRequestError):
        svc.create_article("Sneaky", "body", category="../outside")


def test_create_queues_index_update(search_svc: ContentService) -> None:
    search_svc.create_article("Durian facts", "pungent fruit")
    search_svc.supervisor.flush()

    assert [r.slug for r in search_svc.search("pungent")] == ["durian-facts"]


def test_update_article_keeps_author_and_date(svc: ContentService, write_md) -> None:
    write_md(svc.supervisor.root_path(ContentKind.ARTICLES), "post", tags=["old"])
    _resync(svc)
    before = svc.get_article("post")

    entry = svc.update_article("post", "New title", "New body\n", tags=["new"])

    meta, body = parse(Path(entry.file_path).read_bytes())
    assert meta.title == "New title"
    assert meta.author == before.metadata.author
    assert meta.date == before.metadata.date
    assert meta.tags == ["new"]
    assert meta.description == before.metadata.description
    assert meta.last_updated is not None
    assert body == "New body\n"
    assert svc.get_article("post").metadata.title == "New title"


def test_update_moves_file_when_category_changes(svc: ContentService) -> None:
    created = svc.create_article("Mover", "body", category="old")

    moved = svc.update_article("mover", "Mover", "body", category="new")

    assert not Path(created.file_path).exists()
    assert Path(moved.file_path).parent.name == "new"
    assert svc.get_article("mover").metadata.category == "new"
    assert svc.supervisor.resync(ContentKind.ARTICLES) is False


def test_update_missing_article(svc: ContentService) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        svc.update_article("ghost", "t", "c")
    assert exc_info.value.code == ERR_ARTICLE_NOT_FOUND


# ---------------------------------------------------------------------------
# versions
# ---------------------------------------------------------------------------


def test_versions_list_get_restore(svc: ContentService) -> None:
    svc.create_article("Doc", "v1 body\n")
    svc.update_article("doc", "Doc", "v2 body\n")

    versions = svc.list_versions("doc")
    assert [v.content for v in versions] == ["v1 body\n", "v2 body\n"]
    first = versions[0].version
    assert svc.get_version("doc", first).content == "v1 body\n"

    restored = svc.restore_version("doc", first)

    assert restored.version == first
    assert svc.get_article("doc").body == "v1 body\n"
    assert [v.content for v in svc.list_versions("doc")] == ["v1 body\n", "v2 body\n", "v1 body\n"]
    assert svc.supervisor.catalog(ContentKind.ARTICLES).get_by_slug("doc").version == 3


def test_get_unknown_version(svc: ContentService) -> None:
    svc.create_article("Doc", "body")
    with pytest.raises(NotFoundError) as exc_info:
        svc.get_version("doc", 1)
    assert exc_info.value.code == ERR_VERSION_NOT_FOUND


def test_versions_of_unknown_article(svc: ContentService) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        svc.list_versions("ghost")
    assert exc_info.value.code == ERR_ARTICLE_NOT_FOUND


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


def test_search_requires_query(search_svc: ContentService) -> None:
    with pytest.raises(BadRequestError) as exc_info:
        search_svc.search("   ")
    assert exc_info.value.code == ERR_EMPTY_SEARCH_QUERY


def test_search_disabled(svc: ContentService) -> None:
    with pytest.raises(BadRequestError) as exc_info:
        svc.search("anything")
    assert exc_info.value.code == ERR_FULLTEXT_DISABLED
    assert svc.popular_searches() == []


def test_search_records_popular_queries(search_svc: ContentService, write_md) -> None:
    write_md(search_svc.supervisor.root_path(ContentKind.ARTICLES), "a", body="guava\n")
    _resync(search_svc)

    for q in ["guava", "guava", "papaya"]:
        search_svc.search(q)

    assert search_svc.popular_searches(1) == [("guava", 2)]


def test_search_falls_back_to_scan(search_svc: ContentService, write_md, monkeypatch) -> None:
    root = search_svc.supervisor.root_path(ContentKind.ARTICLES)
    write_md(root, "a", body="feijoa in the body\n")
    write_md(root, "b", title="Feijoa season")
    write_md(root, "hidden", body="feijoa\n", draft=True)
    write_md(search_svc.supervisor.root_path(ContentKind.NOTES), "n", description="about feijoa")
    _resync(search_svc)
    _resync(search_svc, ContentKind.NOTES)

    def _broken(*args, **kwargs):
        raise IndexerError("index unavailable")

    monkeypatch.setattr(search_svc.supervisor.indexer, "search", _broken)

    results = search_svc.search("FEIJOA")

    assert sorted(r.slug for r in results) == ["a", "b", "notes/n"]
    assert all(r.score == 1.0 for r in results)


def test_fallback_scan_respects_content_limit(svc: ContentService, write_md) -> None:
    svc.config.search.content_search_limit = 10
    write_md(svc.supervisor.root_path(ContentKind.ARTICLES), "a", body="x" * 50 + " jackfruit\n")
    _resync(svc)

    assert svc.fallback_search("jackfruit") == []
    assert [r.slug for r in svc.fallback_search("xxxx")] == ["a"]
