"""Parse and normalize Open Library API responses."""
import logging
import math
from typing import Dict, Any, List, Optional, Iterable

from readtrack.config import Config
from readtrack.models import Book, UserPrefs, LEVEL_NEW, LEVEL_EXPERIENCED

logger = logging.getLogger(__name__)

UNTITLED = "Sin título"
MAX_LIST_SUBJECTS = 10
MAX_DETAIL_CATEGORIES = 80

PAGES_PER_HOUR = {LEVEL_NEW: 28, LEVEL_EXPERIENCED: 40}
DEFAULT_PAGES_PER_HOUR = 35

_LANGUAGE_CODES = {"spa": "es", "es": "es", "eng": "en", "en": "en"}


def to_app_language(code: Optional[str]) -> Optional[str]:
    """Map a catalog language code ("spa", "eng", ...) to "es"/"en"."""
    return _LANGUAGE_CODES.get(str(code or "").strip().lower())


def cover_url(cover_id: Any, size: str = "M", base_url: str = Config.COVERS_URL) -> Optional[str]:
    """Build a cover image URL from a numeric cover id."""
    if not isinstance(cover_id, int) or isinstance(cover_id, bool) or cover_id <= 0:
        return None
    return f"{base_url}/{cover_id}-{size}.jpg"


def id_from_key(key: Any) -> str:
    """Strip the path prefix from keys like "/works/OL123W"."""
    if not key:
        return ""
    return str(key).rstrip("/").split("/")[-1]


def unique_strings(values: Iterable[Any]) -> List[str]:
    """Trim, drop empties and de-duplicate preserving first occurrence."""
    seen = []
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text and text not in seen:
            seen.append(text)
    return seen


def normalize_subjects(subjects: Any, limit: int = MAX_LIST_SUBJECTS) -> List[str]:
    if not isinstance(subjects, list):
        return []
    return unique_strings(subjects)[:limit]


def normalize_categories(categories: Optional[List[str]]) -> List[str]:
    """Split compound "A / B" categories for display."""
    parts = []
    for category in categories or []:
        parts.extend(str(category).split("/"))
    return unique_strings(parts)[:MAX_DETAIL_CATEGORIES]


def normalize_description(desc: Any) -> Optional[str]:
    """Work descriptions come either as plain text or as {"type": ..., "value": ...}."""
    if isinstance(desc, str):
        return desc or None
    if isinstance(desc, dict) and isinstance(desc.get("value"), str):
        return desc["value"] or None
    return None


def subject_query(subject: str) -> str:
    """Search query restricted to one subject."""
    s = subject.strip()
    if not s:
        return ""
    if " " in s:
        return f'subject:"{s}"'
    return f"subject:{s}"


def _title(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return UNTITLED


def _preview_link(work_id: str) -> Optional[str]:
    return f"{Config.OPENLIBRARY_URL}/works/{work_id}" if work_id else None


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return None


def parse_search_doc(doc: Dict[str, Any]) -> Optional[Book]:
    """
    Parse a single document from the search endpoint.

    Args:
        doc: One entry of the "docs" array

    Returns:
        Book object or None if the document has no work key
    """
    try:
        work_id = id_from_key(doc.get("key"))
        if not work_id:
            return None

        languages = doc.get("language")
        first_lang = languages[0] if isinstance(languages, list) and languages else None
        authors = doc.get("author_name")
        year = doc.get("first_publish_year")

        return Book(
            id=work_id,
            title=_title(doc.get("title")),
            authors=list(authors) if isinstance(authors, list) else None,
            page_count=_positive_int(doc.get("number_of_pages_median")),
            language=to_app_language(first_lang),
            categories=normalize_subjects(doc.get("subject")),
            thumbnail=cover_url(doc.get("cover_i"), "M"),
            preview_link=_preview_link(work_id),
            published_date=str(year) if year else None,
            edition_count=_positive_int(doc.get("edition_count")),
        )
    except (AttributeError, TypeError) as e:
        # APIs can be unpredictable
        logger.warning(f"Failed to parse search doc: {e}")
        return None


def parse_search_response(response_json: Dict[str, Any]) -> List[Book]:
    """
    Parse a full search response.

    Args:
        response_json: Complete API response JSON

    Returns:
        List of Book objects (empty if no docs found)
    """
    docs = response_json.get("docs") if isinstance(response_json, dict) else None
    if not isinstance(docs, list):
        return []

    books = []
    for doc in docs:
        book = parse_search_doc(doc) if isinstance(doc, dict) else None
        if book:
            books.append(book)
    return books


def parse_subject_work(work: Dict[str, Any]) -> Optional[Book]:
    """Parse one work from the subject browse endpoint (no page counts there)."""
    work_id = id_from_key(work.get("key"))
    if not work_id:
        return None

    authors = work.get("authors")
    names = None
    if isinstance(authors, list):
        names = [a["name"] for a in authors if isinstance(a, dict) and a.get("name")] or None

    subjects = work.get("subject")
    if not isinstance(subjects, list):
        subjects = work.get("subjects")
    year = work.get("first_publish_year")

    return Book(
        id=work_id,
        title=_title(work.get("title")),
        authors=names,
        categories=normalize_subjects(subjects),
        thumbnail=cover_url(work.get("cover_id"), "M"),
        preview_link=_preview_link(work_id),
        published_date=str(year) if year else None,
        edition_count=_positive_int(work.get("edition_count")),
    )


def parse_subject_response(response_json: Dict[str, Any]) -> List[Book]:
    works = response_json.get("works") if isinstance(response_json, dict) else None
    if not isinstance(works, list):
        return []
    books = [parse_subject_work(w) for w in works if isinstance(w, dict)]
    return [b for b in books if b]


def pick_edition_pages(editions: Any) -> Optional[int]:
    """First edition reporting a page count wins."""
    if not isinstance(editions, list):
        return None
    for edition in editions:
        if isinstance(edition, dict):
            pages = _positive_int(edition.get("number_of_pages"))
            if pages:
                return pages
    return None


def pick_edition_language(editions: Any) -> Optional[str]:
    """First edition whose first language maps to es/en wins."""
    if not isinstance(editions, list):
        return None
    for edition in editions:
        if not isinstance(edition, dict):
            continue
        langs = edition.get("languages")
        if isinstance(langs, list) and langs and isinstance(langs[0], dict):
            lang = to_app_language(id_from_key(langs[0].get("key")))
            if lang:
                return lang
    return None


def author_ids_from_work(work: Dict[str, Any], limit: int = 3) -> List[str]:
    """Author ids referenced by a work record, de-duplicated and capped."""
    entries = work.get("authors")
    if not isinstance(entries, list):
        return []
    ids = []
    for entry in entries:
        author = entry.get("author") if isinstance(entry, dict) else None
        key = author.get("key") if isinstance(author, dict) else None
        ids.append(id_from_key(key))
    return unique_strings(ids)[:limit]


def parse_work_detail(
    work_id: str,
    work: Dict[str, Any],
    editions: Any,
    authors: Optional[List[str]] = None
) -> Book:
    """Combine a work record with its edition list into a Book."""
    covers = work.get("covers")
    cover_id = covers[0] if isinstance(covers, list) and covers else None
    created = work.get("created")
    created_value = created.get("value") if isinstance(created, dict) else None

    return Book(
        id=work_id,
        title=_title(work.get("title")),
        authors=authors or None,
        description=normalize_description(work.get("description")),
        page_count=pick_edition_pages(editions),
        language=pick_edition_language(editions),
        categories=normalize_subjects(work.get("subjects")),
        thumbnail=cover_url(cover_id, "L") or cover_url(cover_id, "M"),
        preview_link=_preview_link(work_id),
        published_date=str(created_value)[:10] if created_value else None,
    )


def deduplicate_books(books: List[Book]) -> List[Book]:
    """
    Remove duplicate books by ID.

    Args:
        books: List of Book objects

    Returns:
        Deduplicated list of books, first occurrence kept
    """
    seen_ids = set()
    unique_books = []

    for book in books:
        if book.id not in seen_ids:
            seen_ids.add(book.id)
            unique_books.append(book)

    return unique_books


def merge_books(base: Book, incoming: Book) -> Book:
    """
    Merge a detail record into a book that is already on screen.

    Fields the caller already shows win; holes are filled from ``incoming``
    and categories are unioned.
    """
    categories = unique_strings((base.categories or []) + (incoming.categories or []))
    categories = categories[:MAX_DETAIL_CATEGORIES]

    return Book(
        id=base.id or incoming.id,
        title=base.title or incoming.title,
        authors=base.authors if base.authors else incoming.authors,
        description=base.description if base.description is not None else incoming.description,
        page_count=base.page_count if base.page_count is not None else incoming.page_count,
        language=base.language or incoming.language,
        categories=categories or base.categories or incoming.categories,
        thumbnail=base.thumbnail or incoming.thumbnail,
        preview_link=base.preview_link or incoming.preview_link,
        published_date=base.published_date or incoming.published_date,
        edition_count=base.edition_count if base.edition_count is not None else incoming.edition_count,
    )


def pages_per_hour_for(prefs: Optional[UserPrefs]) -> int:
    if prefs is None:
        return DEFAULT_PAGES_PER_HOUR
    return PAGES_PER_HOUR.get(prefs.level, DEFAULT_PAGES_PER_HOUR)


def estimate_hours(page_count: Optional[int], pages_per_hour: int = DEFAULT_PAGES_PER_HOUR) -> Optional[float]:
    """Reading time in hours rounded to one decimal, never below 1."""
    if not page_count or page_count <= 0:
        return None
    return max(1.0, math.floor(page_count / pages_per_hour * 10 + 0.5) / 10)


def estimate_days(hours: Optional[float], daily_minutes: Optional[int]) -> Optional[int]:
    """Days needed to finish at ``daily_minutes`` per day."""
    if not hours or not daily_minutes:
        return None
    total_minutes = math.floor(hours * 60 + 0.5)
    return max(1, math.ceil(total_minutes / daily_minutes))
