"""Async HTTP client for the Open Library catalog."""
import asyncio
import dataclasses
import httpx
from typing import List, Optional, Dict, Any
import logging

from readtrack.config import Config
from readtrack.models import Book
from readtrack.parse import (
    author_ids_from_work,
    deduplicate_books,
    parse_search_response,
    parse_subject_response,
    parse_work_detail,
    pick_edition_language,
    pick_edition_pages,
    subject_query,
)

logger = logging.getLogger(__name__)

SEARCH_FIELDS = (
    "key,title,author_name,cover_i,first_publish_year,language,subject,"
    "number_of_pages_median,edition_count"
)
FALLBACK_QUERY = "popular OR recommended OR classics"


class AsyncOpenLibraryClient:
    """Async client for Open Library search, works, editions, subjects and authors.

    Every public method fails soft: HTTP errors, non-200 responses and bad JSON
    are logged and turned into empty results.
    """

    def __init__(
        self,
        base_url: str = Config.OPENLIBRARY_URL,
        lang: Optional[str] = Config.DEFAULT_LANG,
        timeout: int = Config.DEFAULT_TIMEOUT,
        max_concurrent: int = Config.MAX_CONCURRENT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize async client.

        Args:
            base_url: Catalog root URL
            lang: Language hint sent with searches (None sends no hint)
            timeout: Request timeout
            max_concurrent: Maximum concurrent requests
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.lang = lang
        self.timeout = timeout
        self.max_concurrent = max(1, max_concurrent)
        self.semaphore = asyncio.Semaphore(self.max_concurrent)

        # Create async HTTP client
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """
        GET a URL and decode its JSON body.

        Returns:
            Decoded JSON or None on any failure
        """
        async with self.semaphore:
            try:
                response = await self.client.get(url, params=params)

                if response.status_code == 200:
                    return response.json()
                else:
                    logger.warning(f"Status {response.status_code} for {url}: {response.text[:200]}")
                    return None

            except httpx.HTTPError as e:
                logger.error(f"Request failed for {url}: {e}")
                return None
            except ValueError as e:
                logger.error(f"Malformed JSON from {url}: {e}")
                return None

    async def search(self, query: str, max_results: int = 20, lang: Optional[str] = None) -> List[Book]:
        """
        Search for books by free text.

        Args:
            query: Search query; blank falls back to the generic recommendation query
            max_results: Max results
            lang: Language hint; None uses the client default, "" sends none

        Returns:
            List of books (empty on failure)
        """
        if not query.strip():
            return await self.recommended(max_results, lang=lang)
        return await self._search_query(query.strip(), max_results, lang)

    async def recommended(
        self,
        max_results: int = 10,
        genre: Optional[str] = None,
        lang: Optional[str] = None
    ) -> List[Book]:
        """Generic recommendations, optionally restricted to one subject."""
        query = subject_query(genre) if genre else FALLBACK_QUERY
        return await self._search_query(query or FALLBACK_QUERY, max_results, lang)

    async def _search_query(self, query: str, max_results: int, lang: Optional[str] = None) -> List[Book]:
        params = {
            "q": query,
            "limit": max_results,
            "fields": SEARCH_FIELDS,
        }
        # lang influences ranking but does not exclude
        lang = self.lang if lang is None else lang
        if lang:
            params["lang"] = lang

        logger.info(f"Async search: {query} (limit={max_results})")
        data = await self._get_json(f"{self.base_url}/search.json", params)
        if data is None:
            return []
        return parse_search_response(data)

    async def fetch_work(self, work_id: str) -> Optional[Dict[str, Any]]:
        data = await self._get_json(f"{self.base_url}/works/{work_id}.json")
        return data if isinstance(data, dict) else None

    async def fetch_editions(self, work_id: str, limit: int = 15) -> List[Dict[str, Any]]:
        data = await self._get_json(
            f"{self.base_url}/works/{work_id}/editions.json",
            {"limit": limit}
        )
        entries = data.get("entries") if isinstance(data, dict) else None
        return entries if isinstance(entries, list) else []

    async def fetch_author_name(self, author_id: str) -> Optional[str]:
        clean = str(author_id or "").strip()
        if not clean:
            return None
        data = await self._get_json(f"{self.base_url}/authors/{clean}.json")
        name = data.get("name") if isinstance(data, dict) else None
        if isinstance(name, str) and name.strip():
            return name.strip()
        return None

    async def get_by_id(self, work_id: str, max_authors: int = 3) -> Optional[Book]:
        """
        Fetch full details for one work.

        Work metadata and the edition list are requested together; page count
        and language come from the first edition that reports them, and author
        names are resolved one lookup per author.

        Returns:
            Book or None if the work lookup failed
        """
        work, editions = await asyncio.gather(
            self.fetch_work(work_id),
            self.fetch_editions(work_id, 15)
        )
        if not work:
            logger.warning(f"Work lookup failed: {work_id}")
            return None

        author_ids = author_ids_from_work(work, max_authors)
        names = await asyncio.gather(*(self.fetch_author_name(a) for a in author_ids))

        return parse_work_detail(work_id, work, editions, [n for n in names if n])

    async def fetch_subject(self, slug: str, limit: int = 40) -> List[Book]:
        """Works listed under one subject slug."""
        clean = str(slug or "").strip()
        if not clean:
            return []
        data = await self._get_json(
            f"{self.base_url}/subjects/{clean}.json",
            {"limit": limit, "details": "true"}
        )
        if data is None:
            return []
        return parse_subject_response(data)

    async def search_by_subject_slugs(
        self,
        slugs: List[str],
        limit_per_slug: int = 40,
        target_pool: Optional[int] = None
    ) -> List[Book]:
        """
        Pool works from several subjects, de-duplicated by id.

        Slugs are requested in batches of ``max_concurrent``; once the pool
        reaches ``target_pool`` no further batches are sent.

        Args:
            slugs: Subject slugs
            limit_per_slug: Max works per subject
            target_pool: Stop early at this pool size (None fetches all)

        Returns:
            Pooled, de-duplicated books
        """
        pool: List[Book] = []

        for start in range(0, len(slugs), self.max_concurrent):
            batch = slugs[start:start + self.max_concurrent]
            results = await asyncio.gather(*(self.fetch_subject(s, limit_per_slug) for s in batch))
            for books in results:
                pool = deduplicate_books(pool + books)

            if target_pool is not None and len(pool) >= target_pool:
                break

        return pool

    async def _enrich_one(self, book: Book) -> Book:
        try:
            editions = await self.fetch_editions(book.id, 12)
            pages = pick_edition_pages(editions)
            lang = pick_edition_language(editions)
        except Exception as e:
            logger.warning(f"Enrichment failed for {book.id}: {e}")
            return book

        return dataclasses.replace(
            book,
            page_count=pages if pages is not None else book.page_count,
            language=lang or book.language,
        )

    async def enrich(self, books: List[Book], take_count: int = 14, batch_size: int = 4) -> List[Book]:
        """
        Backfill page count and language from edition data.

        Only the first ``take_count`` books are looked up, ``batch_size`` at a
        time; the rest pass through unchanged.
        """
        head = books[:take_count]
        tail = books[take_count:]

        enriched: List[Book] = []
        for start in range(0, len(head), batch_size):
            batch = head[start:start + batch_size]
            enriched.extend(await asyncio.gather(*(self._enrich_one(b) for b in batch)))

        return enriched + tail

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
