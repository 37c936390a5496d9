"""Tests for the Open Library client against a mocked transport."""
import asyncio

import httpx

from readtrack.async_client import AsyncOpenLibraryClient, FALLBACK_QUERY
from readtrack.models import Book


def run_with_client(handler, scenario, **kwargs):
    """Run ``scenario(client)`` with a client whose HTTP goes to ``handler``."""
    async def main():
        async with AsyncOpenLibraryClient(transport=httpx.MockTransport(handler), **kwargs) as client:
            return await scenario(client)
    return asyncio.run(main())


def test_search_maps_docs():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"docs": [{"key": "/works/OL1W", "title": "Dune"}]})

    books = run_with_client(handler, lambda c: c.search("  dune ", max_results=5))

    assert [b.id for b in books] == ["OL1W"]
    assert seen["params"]["q"] == "dune"
    assert seen["params"]["limit"] == "5"
    assert seen["params"]["lang"] == "es"


def test_blank_search_uses_fallback_query():
    seen = {}

    def handler(request):
        seen["q"] = request.url.params["q"]
        return httpx.Response(200, json={"docs": []})

    run_with_client(handler, lambda c: c.search("   "))

    assert seen["q"] == FALLBACK_QUERY


def test_empty_lang_hint_sends_no_lang():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"docs": []})

    run_with_client(handler, lambda c: c.recommended(10, lang=""))

    assert "lang" not in seen["params"]


def test_search_fails_soft_on_server_error():
    def handler(request):
        return httpx.Response(503, text="unavailable")

    assert run_with_client(handler, lambda c: c.search("dune")) == []


def test_search_fails_soft_on_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    assert run_with_client(handler, lambda c: c.search("dune")) == []


def test_search_fails_soft_on_malformed_json():
    def handler(request):
        return httpx.Response(200, text="<html>oops</html>")

    assert run_with_client(handler, lambda c: c.search("dune")) == []


def test_get_by_id_combines_work_editions_and_authors():
    author_calls = []

    def handler(request):
        path = request.url.path
        if path == "/works/OL7W.json":
            return httpx.Response(200, json={
                "title": "Cien años de soledad",
                "authors": [
                    {"author": {"key": "/authors/OL1A"}},
                    {"author": {"key": "/authors/OL1A"}},
                    {"author": {"key": "/authors/OL2A"}},
                    {"author": {"key": "/authors/OL3A"}},
                    {"author": {"key": "/authors/OL4A"}},
                ],
                "covers": [99],
            })
        if path == "/works/OL7W/editions.json":
            return httpx.Response(200, json={"entries": [
                {"languages": [{"key": "/languages/spa"}]},
                {"number_of_pages": 417},
            ]})
        if path.startswith("/authors/"):
            author_id = path.split("/")[-1].replace(".json", "")
            author_calls.append(author_id)
            if author_id == "OL2A":
                return httpx.Response(404)
            return httpx.Response(200, json={"name": f" Name {author_id} "})
        return httpx.Response(404)

    book = run_with_client(handler, lambda c: c.get_by_id("OL7W"))

    assert book.title == "Cien años de soledad"
    assert book.page_count == 417
    assert book.language == "es"
    assert book.authors == ["Name OL1A", "Name OL3A"]
    assert sorted(author_calls) == ["OL1A", "OL2A", "OL3A"]
    assert book.thumbnail.endswith("/99-L.jpg")


def test_get_by_id_returns_none_when_work_missing():
    def handler(request):
        if request.url.path.endswith("editions.json"):
            return httpx.Response(200, json={"entries": []})
        return httpx.Response(404)

    assert run_with_client(handler, lambda c: c.get_by_id("OL0W")) is None


def _subject_handler(works_by_slug, requested):
    def handler(request):
        slug = request.url.path.split("/")[-1].replace(".json", "")
        requested.append(slug)
        works = [{"key": f"/works/{w}", "title": w} for w in works_by_slug.get(slug, [])]
        return httpx.Response(200, json={"works": works})
    return handler


def test_search_by_subject_slugs_pools_and_dedupes():
    requested = []
    handler = _subject_handler({"mystery": ["A", "B"], "crime": ["B", "C"]}, requested)

    books = run_with_client(handler, lambda c: c.search_by_subject_slugs(["mystery", "crime", "empty"], 10))

    assert [b.id for b in books] == ["A", "B", "C"]
    assert sorted(requested) == ["crime", "empty", "mystery"]


def test_search_by_subject_slugs_stops_at_target_pool():
    requested = []
    handler = _subject_handler({"a": ["1", "2"], "b": ["3"], "c": ["4"]}, requested)

    books = run_with_client(
        handler,
        lambda c: c.search_by_subject_slugs(["a", "b", "c"], 10, target_pool=2),
        max_concurrent=1
    )

    assert [b.id for b in books] == ["1", "2"]
    assert requested == ["a"]


def test_enrich_only_looks_up_the_head():
    requested = []

    def handler(request):
        work_id = request.url.path.split("/")[2]
        requested.append(work_id)
        if work_id == "W1":
            return httpx.Response(500)
        return httpx.Response(200, json={"entries": [
            {"number_of_pages": 150, "languages": [{"key": "/languages/eng"}]}
        ]})

    books = [Book(f"W{i}", f"Title {i}", page_count=99 if i == 1 else None) for i in range(6)]

    enriched = run_with_client(handler, lambda c: c.enrich(books, take_count=3, batch_size=2))

    assert [b.id for b in enriched] == [b.id for b in books]
    assert sorted(requested) == ["W0", "W1", "W2"]
    assert enriched[0].page_count == 150
    assert enriched[0].language == "en"
    assert enriched[1] == books[1]
    assert enriched[3] is books[3]
