"""Personalized recommendations with a daily cache and refresh budget."""
import logging
import random
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional

from readtrack.config import Config
from readtrack.models import Book, UserPrefs, LEVEL_NEW
from readtrack.parse import deduplicate_books, estimate_hours, pages_per_hour_for
from readtrack.storage import (
    PreferenceStore,
    HOME_RECS_CACHE_KEY,
    HOME_REFRESH_KEY,
    RECENT_RECS_KEY,
)

logger = logging.getLogger(__name__)

# Genre names as shown at onboarding -> catalog subject slugs
GENRE_SUBJECT_SLUGS = {
    "Romance": ["romance", "love", "love_stories"],
    "Misterio": ["mystery", "detective_and_mystery_stories", "crime"],
    "Fantasía": ["fantasy", "epic_fantasy", "magic"],
    "Ciencia Ficción": ["science_fiction", "sci-fi", "space_opera"],
    "Thriller": ["thriller", "suspense", "psychological_thriller"],
    "Terror": ["horror", "ghost_stories", "supernatural"],
    "Aventura": ["adventure", "action", "sea_stories"],
    "Juvenil": ["young_adult", "juvenile_fiction", "teen_fiction", "coming_of_age"],
    "Historia": ["history", "historical_fiction", "world_history"],
    "Biografía": ["biography", "biographies", "memoir"],
    "No Ficción": ["nonfiction", "essays", "journalism"],
    "Filosofía": ["philosophy", "ethics", "metaphysics"],
    "Autoayuda": ["self-help", "personal_development", "motivation"],
    "Psicología": ["psychology", "mental_health", "cognitive_psychology"],
    "Negocios": ["business", "entrepreneurship", "management"],
    "Tecnología": ["technology", "computer_science", "programming"],
    "Poesía": ["poetry", "poems", "verse"],
    "Cómics": ["comics", "graphic_novels", "manga"],
}

MAX_PAGES_BY_LEVEL = {LEVEL_NEW: 320}
DEFAULT_MAX_PAGES = 900
MAX_HOURS_BY_GOAL = {5: 6, 10: 9}
DEFAULT_MAX_HOURS = 14

RECENT_YEAR = 1990
PER_SLUG_LIMIT = 40
ENRICH_COUNT = 14
EMPTY_MESSAGE = "No se pudieron cargar recomendaciones. Intenta de nuevo más tarde."

Perturb = Callable[[List[Book]], List[Book]]


def subjects_from_genres(genres: List[str]) -> List[str]:
    """Subject slugs for the selected genres; unknown genres contribute nothing."""
    slugs = []
    for genre in genres:
        for slug in GENRE_SUBJECT_SLUGS.get(genre, []):
            slug = slug.strip()
            if slug and slug not in slugs:
                slugs.append(slug)
    return slugs


def max_pages_for(prefs: Optional[UserPrefs]) -> int:
    return MAX_PAGES_BY_LEVEL.get(prefs.level if prefs else None, DEFAULT_MAX_PAGES)


def max_hours_for(prefs: Optional[UserPrefs]) -> int:
    goal = prefs.daily_minutes_goal if prefs else 10
    return MAX_HOURS_BY_GOAL.get(goal, DEFAULT_MAX_HOURS)


def filter_for_prefs(books: List[Book], prefs: Optional[UserPrefs]) -> List[Book]:
    """
    Drop books too long for the reader.

    Books without a known page count always pass.
    """
    max_pages = max_pages_for(prefs)
    max_hours = max_hours_for(prefs)
    pph = pages_per_hour_for(prefs)

    kept = []
    for book in books:
        pages = book.known_page_count
        if pages > max_pages:
            continue
        hours = estimate_hours(pages, pph)
        if hours is not None and hours > max_hours:
            continue
        kept.append(book)
    return kept


def sort_for_prefs(books: List[Book], prefs: Optional[UserPrefs]) -> List[Book]:
    """
    Rank candidates.

    Order: published since 1990 first, newer year, more editions, shorter
    reading time (new readers only), then title.
    """
    pph = pages_per_hour_for(prefs)
    shorter_first = prefs is not None and prefs.level == LEVEL_NEW

    def key(book: Book):
        year = book.published_year
        hours = estimate_hours(book.known_page_count, pph) if shorter_first else None
        return (
            0 if year is not None and year >= RECENT_YEAR else 1,
            -(year or 0),
            -(book.edition_count or 0),
            hours if hours is not None else 999,
            book.title.lower(),
        )

    return sorted(books, key=key)


def perturb(books: List[Book], rng: Optional[random.Random] = None, fraction: float = 0.25) -> List[Book]:
    """Swap a bounded number of adjacent pairs so identical inputs don't always show the same top."""
    rng = rng or random.Random()
    result = list(books)
    if len(result) < 2:
        return result

    for _ in range(max(1, int(len(result) * fraction))):
        i = rng.randrange(len(result) - 1)
        result[i], result[i + 1] = result[i + 1], result[i]
    return result


def prefs_signature(prefs: Optional[UserPrefs]) -> str:
    """Cache key part covering the preferences that change recommendation content."""
    if prefs is None:
        return "NO_PREFS"
    return "::".join([
        prefs.level,
        str(prefs.daily_minutes_goal),
        "|".join(sorted(set(prefs.genres))),
    ])


def language_hint(prefs: Optional[UserPrefs]) -> Optional[str]:
    """Search language hint: "" for bilingual readers, client default otherwise."""
    if prefs is not None and prefs.language_mode == "BILINGUAL":
        return ""
    return None


class RecommendationEngine:
    """
    Builds a ranked, de-duplicated recommendation list for a user.

    Args:
        client: Catalog client (AsyncOpenLibraryClient or compatible)
        store: Preference store holding the recently-shown window
        shuffle: Perturbation applied after ranking; pass an identity or a
            seeded function for reproducible output
        recent_window: How many recently shown ids to remember
    """

    def __init__(
        self,
        client,
        store: PreferenceStore,
        shuffle: Optional[Perturb] = None,
        recent_window: int = Config.RECENT_RECS_WINDOW
    ):
        self.client = client
        self.store = store
        self.shuffle = shuffle or perturb
        self.recent_window = recent_window

    async def recent_ids(self) -> List[str]:
        raw = await self.store.get_json(RECENT_RECS_KEY, [])
        if not isinstance(raw, list):
            return []
        return [i for i in raw if isinstance(i, str)]

    async def remember_shown(self, ids: List[str]) -> None:
        """Append ids to the recently-shown window, evicting the oldest."""
        recent = [i for i in await self.recent_ids() if i not in ids] + list(ids)
        await self.store.set_json(RECENT_RECS_KEY, recent[-self.recent_window:] if self.recent_window > 0 else [])

    async def get_recommendations_for_user(self, prefs: Optional[UserPrefs], max_results: int = 6) -> List[Book]:
        """
        Recommend up to ``max_results`` books.

        Never raises on catalog failures; an empty list is a valid result.
        """
        slugs = subjects_from_genres(prefs.genres if prefs else [])
        lang = language_hint(prefs)
        pool: List[Book] = []

        if slugs:
            target_pool = max(36, max_results * 8)
            pool = await self.client.search_by_subject_slugs(slugs, PER_SLUG_LIMIT, target_pool)
            pool = await self.client.enrich(pool, ENRICH_COUNT)
            pool = sort_for_prefs(filter_for_prefs(pool, prefs), prefs)
            logger.info(f"Subject pool: {len(pool)} candidates from {len(slugs)} subjects")

        if len(pool) < max_results:
            fallback = await self.client.recommended(max(60, max_results * 12), lang=lang)
            pool = deduplicate_books(pool + fallback)
            pool = sort_for_prefs(filter_for_prefs(pool, prefs), prefs)
            logger.info(f"Topped up with fallback query: {len(pool)} candidates")

        pool = self.shuffle(pool)

        recent = set(await self.recent_ids())
        fresh = [b for b in pool if b.id not in recent]
        if len(fresh) >= max(10, max_results * 3):
            pool = fresh
        else:
            pool = fresh + [b for b in pool if b.id in recent]

        chosen = pool[:max_results]
        if chosen:
            await self.remember_shown([b.id for b in chosen])
        else:
            logger.warning("No recommendations available")
        return chosen


@dataclass
class HomeRecommendations:
    """What the home screen shows."""
    books: List[Book] = field(default_factory=list)
    refreshes_used: int = 0
    refreshes_left: int = 0
    message: Optional[str] = None


class DailyRecommendations:
    """
    Daily cache in front of the engine.

    The cache and the refresh budget are keyed by local calendar day and
    preference signature; a new day or changed preferences start over.
    """

    def __init__(
        self,
        engine: RecommendationEngine,
        store: PreferenceStore,
        today: Callable[[], date] = date.today,
        max_refresh_per_day: int = Config.MAX_REFRESH_PER_DAY,
        max_results: int = Config.HOME_RECS_COUNT
    ):
        self.engine = engine
        self.store = store
        self.today = today
        self.max_refresh_per_day = max_refresh_per_day
        self.max_results = max_results

    def _result(self, books: List[Book], used: int) -> HomeRecommendations:
        return HomeRecommendations(
            books=books,
            refreshes_used=used,
            refreshes_left=max(0, self.max_refresh_per_day - used),
            message=None if books else EMPTY_MESSAGE,
        )

    async def _cached(self, day: str, sig: str) -> Optional[List[Book]]:
        cache = await self.store.get_json(HOME_RECS_CACHE_KEY, None)
        if not isinstance(cache, dict):
            return None
        if cache.get("date") != day or cache.get("prefsSignature") != sig:
            return None
        raw = cache.get("books")
        if not isinstance(raw, list):
            return None
        books = [b for b in (Book.from_dict(item) for item in raw) if b]
        return books or None

    async def _budget_used(self, day: str, sig: str) -> Optional[int]:
        """Refreshes used today under ``sig``, or None if the budget is stale."""
        budget = await self.store.get_json(HOME_REFRESH_KEY, None)
        if not isinstance(budget, dict):
            return None
        if budget.get("date") != day or budget.get("prefsSignature") != sig:
            return None
        used = budget.get("used")
        return used if isinstance(used, int) and used >= 0 else 0

    async def _set_budget(self, day: str, sig: str, used: int) -> None:
        await self.store.set_json(HOME_REFRESH_KEY, {"date": day, "used": used, "prefsSignature": sig})

    async def _generate(self, prefs: Optional[UserPrefs], day: str, sig: str) -> List[Book]:
        books = await self.engine.get_recommendations_for_user(prefs, self.max_results)
        await self.store.set_json(HOME_RECS_CACHE_KEY, {
            "date": day,
            "prefsSignature": sig,
            "books": [b.to_dict() for b in books],
        })
        return books

    async def load(self, prefs: Optional[UserPrefs]) -> HomeRecommendations:
        """Today's recommendations; only hits the network when the cache is unusable."""
        day = self.today().isoformat()
        sig = prefs_signature(prefs)

        used = await self._budget_used(day, sig)
        if used is None:
            used = 0
            await self._set_budget(day, sig, used)

        cached = await self._cached(day, sig)
        if cached is not None:
            logger.info(f"Recommendation cache hit for {day}")
            return self._result(cached, used)

        logger.info(f"Recommendation cache miss for {day}")
        return self._result(await self._generate(prefs, day, sig), used)

    async def refresh(self, prefs: Optional[UserPrefs]) -> HomeRecommendations:
        """
        User-requested refresh.

        Allowed ``max_refresh_per_day`` times per day and signature; past the
        limit the cached list is returned unchanged.
        """
        day = self.today().isoformat()
        sig = prefs_signature(prefs)

        used = await self._budget_used(day, sig)
        if used is None:
            # New day or new preferences: start over without spending budget
            await self._set_budget(day, sig, 0)
            return self._result(await self._generate(prefs, day, sig), 0)

        if used >= self.max_refresh_per_day:
            logger.info("Refresh budget exhausted")
            return self._result(await self._cached(day, sig) or [], used)

        books = await self._generate(prefs, day, sig)
        used += 1
        await self._set_budget(day, sig, used)
        return self._result(books, used)
