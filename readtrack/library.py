"""Reading lists (reading now / to read / finished) and page progress."""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from readtrack.models import Book
from readtrack.parse import deduplicate_books
from readtrack.storage import (
    PreferenceStore,
    READING_NOW_KEY,
    TO_READ_KEY,
    FINISHED_KEY,
    PROGRESS_PERCENT_KEY,
    PROGRESS_PAGES_KEY,
)

logger = logging.getLogger(__name__)

ProgressMap = Dict[str, int]


def clamp_int(value: Any, low: int, high: Optional[int] = None) -> int:
    """Round half up and clamp; non-numbers count as 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        value = 0
    rounded = int(math.floor(value + 0.5))
    if high is not None:
        rounded = min(high, rounded)
    return max(low, rounded)


def _total_or_none(total_pages: Optional[int]) -> Optional[int]:
    if isinstance(total_pages, int) and total_pages > 0:
        return total_pages
    return None


def decode_book_list(raw: Any) -> Tuple[List[Book], bool]:
    """
    Decode a stored reading list.

    Current format is a list of book objects. The first version of
    ``reading_now_v1`` held a single book object instead.

    Returns:
        (books, needs_rewrite) where needs_rewrite is True for the old shape
    """
    if isinstance(raw, list):
        books = [Book.from_dict(item) for item in raw]
        return [b for b in books if b], False

    single = Book.from_dict(raw)
    if single:
        return [single], True

    return [], False


def decode_progress(raw: Any) -> ProgressMap:
    if not isinstance(raw, dict):
        return {}
    return {
        str(k): clamp_int(v, 0)
        for k, v in raw.items()
        if isinstance(v, (int, float)) and not isinstance(v, bool)
    }


def migrate_percent_progress(legacy: Dict[str, Any], books: List[Book]) -> ProgressMap:
    """
    Convert legacy percentage progress to pages read.

    Books whose page count is unknown migrate to 0 pages.
    """
    by_id = {b.id: b for b in books}
    migrated: ProgressMap = {}

    for book_id, percent in legacy.items():
        book = by_id.get(book_id)
        total = book.known_page_count if book else 0
        if total <= 0:
            migrated[book_id] = 0
            continue
        pct = clamp_int(percent, 0, 100)
        migrated[book_id] = clamp_int(pct / 100 * total, 0, total)

    return migrated


def _without_id(books: List[Book], book_id: str) -> List[Book]:
    return [b for b in books if b.id != book_id]


@dataclass
class LibrarySnapshot:
    """Everything the library view shows at once."""
    reading_now: List[Book] = field(default_factory=list)
    to_read: List[Book] = field(default_factory=list)
    finished: List[Book] = field(default_factory=list)
    progress: ProgressMap = field(default_factory=dict)

    def pages_read(self, book_id: str) -> int:
        return self.progress.get(book_id, 0)


class LibraryManager:
    """
    Manages the three reading lists and the pages-read map.

    A book id is kept in at most one list: every operation that adds a book
    to a list first removes it from the other two. Each operation is a plain
    read-modify-write against the store; overlapping calls are not serialized.
    """

    def __init__(self, store: PreferenceStore):
        self.store = store

    # Lists

    async def _get_list(self, key: str) -> List[Book]:
        books, needs_rewrite = decode_book_list(await self.store.get_json(key, None))
        if needs_rewrite:
            logger.info(f"Migrating single-book value under {key} to a list")
            await self._set_list(key, books)
        return books

    async def _set_list(self, key: str, books: List[Book]) -> None:
        await self.store.set_json(key, [b.to_dict() for b in deduplicate_books(books)])

    async def get_reading_now(self) -> List[Book]:
        return await self._get_list(READING_NOW_KEY)

    async def get_to_read(self) -> List[Book]:
        return await self._get_list(TO_READ_KEY)

    async def get_finished(self) -> List[Book]:
        return await self._get_list(FINISHED_KEY)

    async def _move_to(self, target_key: str, book: Book) -> None:
        """Put ``book`` at the front of the target list and out of the other two."""
        for key in (READING_NOW_KEY, TO_READ_KEY, FINISHED_KEY):
            books = _without_id(await self._get_list(key), book.id)
            if key == target_key:
                books = [book] + books
            await self._set_list(key, books)

    async def start_reading(self, book: Book) -> None:
        """Move a book to "reading now"; progress starts at 0 if none recorded."""
        await self._move_to(READING_NOW_KEY, book)

        progress = await self.get_progress_pages()
        if book.id not in progress:
            progress[book.id] = 0
            await self._set_progress_pages(progress)

    async def add_to_read(self, book: Book) -> None:
        await self._move_to(TO_READ_KEY, book)

    async def mark_finished(self, book: Book) -> None:
        """Move a book to "finished" and set progress to its page count when known."""
        await self._move_to(FINISHED_KEY, book)

        progress = await self.get_progress_pages()
        total = book.known_page_count
        progress[book.id] = total if total > 0 else progress.get(book.id, 0)
        await self._set_progress_pages(progress)

    async def _remove_from(self, key: str, book_id: str) -> None:
        await self._set_list(key, _without_id(await self._get_list(key), book_id))

    async def remove_from_now(self, book_id: str) -> None:
        await self._remove_from(READING_NOW_KEY, book_id)

    async def remove_from_to_read(self, book_id: str) -> None:
        await self._remove_from(TO_READ_KEY, book_id)

    async def remove_from_finished(self, book_id: str) -> None:
        await self._remove_from(FINISHED_KEY, book_id)

    # Progress

    async def get_progress_pages(self) -> ProgressMap:
        return decode_progress(await self.store.get_json(PROGRESS_PAGES_KEY, {}))

    async def _set_progress_pages(self, progress: ProgressMap) -> None:
        await self.store.set_json(PROGRESS_PAGES_KEY, progress)

    async def update_progress(self, book_id: str, delta_pages: int, total_pages: Optional[int] = None) -> int:
        """
        Add ``delta_pages`` (may be negative) to the pages read.

        Returns:
            The stored value, clamped to [0, total_pages] when total is known
        """
        progress = await self.get_progress_pages()
        value = clamp_int(progress.get(book_id, 0) + delta_pages, 0, _total_or_none(total_pages))
        progress[book_id] = value
        await self._set_progress_pages(progress)
        return value

    async def set_progress_exact(self, book_id: str, pages: int, total_pages: Optional[int] = None) -> int:
        progress = await self.get_progress_pages()
        value = clamp_int(pages, 0, _total_or_none(total_pages))
        progress[book_id] = value
        await self._set_progress_pages(progress)
        return value

    async def ensure_progress_pages_from_legacy(self, books: List[Book]) -> ProgressMap:
        """
        One-time conversion of percentage progress into pages.

        Runs only while the pages map is empty, so repeated calls never
        overwrite progress recorded in the new format.

        Args:
            books: Every book currently known, used for page counts
        """
        pages = await self.get_progress_pages()
        if pages:
            return pages

        legacy = await self.store.get_json(PROGRESS_PERCENT_KEY, {})
        if not isinstance(legacy, dict) or not legacy:
            return pages

        migrated = migrate_percent_progress(legacy, books)
        await self._set_progress_pages(migrated)
        logger.info(f"Migrated {len(migrated)} legacy progress entries to pages")
        return migrated

    # Views

    async def snapshot(self) -> LibrarySnapshot:
        now = await self.get_reading_now()
        to_read = await self.get_to_read()
        finished = await self.get_finished()
        await self.ensure_progress_pages_from_legacy(now + to_read + finished)

        return LibrarySnapshot(
            reading_now=now,
            to_read=to_read,
            finished=finished,
            progress=await self.get_progress_pages(),
        )

    async def counts(self) -> Dict[str, int]:
        return {
            "now": len(await self.get_reading_now()),
            "to_read": len(await self.get_to_read()),
            "done": len(await self.get_finished()),
        }
