"""Tests for recommendation ranking, filtering and the daily cache."""
import asyncio
import json
import random
from datetime import date

from readtrack.models import Book, UserPrefs
from readtrack.parse import estimate_hours
from readtrack.recommend import (
    DailyRecommendations,
    RecommendationEngine,
    filter_for_prefs,
    perturb,
    prefs_signature,
    sort_for_prefs,
    subjects_from_genres,
)
from readtrack.storage import HOME_REFRESH_KEY, MemoryPreferenceStore, RECENT_RECS_KEY


def identity(books):
    return list(books)


class FakeCatalog:
    """Catalog double recording calls."""

    def __init__(self, subject_books=None, fallback_books=None):
        self.subject_books = subject_books or []
        self.fallback_books = fallback_books or []
        self.calls = []

    async def search_by_subject_slugs(self, slugs, limit_per_slug=40, target_pool=None):
        self.calls.append(("subjects", tuple(slugs), target_pool))
        return list(self.subject_books)

    async def enrich(self, books, take_count=14):
        self.calls.append(("enrich", take_count))
        return list(books)

    async def recommended(self, max_results=10, genre=None, lang=None):
        self.calls.append(("fallback", max_results, lang))
        return list(self.fallback_books)


class Clock:

    def __init__(self, day):
        self.day = day

    def __call__(self):
        return self.day


def books(n, prefix="W", **fields):
    return [Book(f"{prefix}{i}", f"Title {i:03d}", **fields) for i in range(n)]


NEW_READER = UserPrefs(onboarded=True, level="NEW", genres=["Misterio"], daily_minutes_goal=5)
EXPERIENCED = UserPrefs(onboarded=True, level="EXPERIENCED", genres=["Misterio"], daily_minutes_goal=20)


def test_subjects_from_genres():
    slugs = subjects_from_genres(["Misterio", "Desconocido", "Misterio"])

    assert slugs == ["mystery", "detective_and_mystery_stories", "crime"]
    assert subjects_from_genres([]) == []


def test_filter_never_drops_unknown_page_counts():
    unknown = [Book("U1", "No pages"), Book("U2", "Zero pages", page_count=0)]

    for level in ("NEW", "EXPERIENCED"):
        for goal in (5, 10, 20):
            prefs = UserPrefs(level=level, daily_minutes_goal=goal)
            assert filter_for_prefs(unknown, prefs) == unknown
    assert filter_for_prefs(unknown, None) == unknown


def test_filter_scenario_new_reader_five_minutes():
    """50 candidates with mixed page counts, new reader with a 5-minute goal."""
    rng = random.Random(7)
    candidates = []
    for i in range(50):
        pages = None if i % 5 == 0 else rng.randint(40, 1200)
        candidates.append(Book(f"W{i}", f"Title {i}", page_count=pages))

    kept = filter_for_prefs(candidates, NEW_READER)

    assert kept
    for book in kept:
        if book.page_count:
            assert book.page_count <= 320
            assert estimate_hours(book.page_count, 28) <= 6
    assert {b.id for b in candidates if b.page_count is None} <= {b.id for b in kept}


def test_filter_experienced_limits():
    long_book = Book("L", "Long", page_count=901)
    ok_book = Book("O", "Ok", page_count=560)

    assert filter_for_prefs([long_book, ok_book], EXPERIENCED) == [ok_book]


def test_sort_order():
    old_popular = Book("A", "Old", published_date="1950", edition_count=500)
    new_short = Book("B", "Beta", published_date="2010", page_count=100)
    new_long = Book("C", "Alpha", published_date="2010", page_count=300)
    newest = Book("D", "Newest", published_date="2020")
    new_popular = Book("E", "Zeta", published_date="2010", edition_count=3)
    undated = Book("F", "Undated")

    ranked = sort_for_prefs([old_popular, new_long, undated, new_short, newest, new_popular], NEW_READER)
    assert [b.id for b in ranked] == ["D", "E", "B", "C", "A", "F"]

    ranked = sort_for_prefs([new_short, new_long], EXPERIENCED)
    assert [b.id for b in ranked] == ["C", "B"]


def test_perturb_is_bounded_and_deterministic_with_seed():
    items = books(20)

    first = perturb(items, random.Random(3))
    second = perturb(items, random.Random(3))

    assert first == second
    assert sorted(b.id for b in first) == sorted(b.id for b in items)
    assert perturb([], random.Random(1)) == []


def test_prefs_signature():
    a = UserPrefs(onboarded=True, level="NEW", genres=["Terror", "Romance"], daily_minutes_goal=5)
    b = UserPrefs(onboarded=False, level="NEW", genres=["Romance", "Terror"], daily_minutes_goal=5)

    assert prefs_signature(a) == prefs_signature(b) == "NEW::5::Romance|Terror"
    assert prefs_signature(None) == "NO_PREFS"


def test_engine_uses_subjects_and_skips_fallback_when_enough():
    catalog = FakeCatalog(subject_books=books(30, published_date="2001"))
    engine = RecommendationEngine(catalog, MemoryPreferenceStore(), shuffle=identity)

    recs = asyncio.run(engine.get_recommendations_for_user(NEW_READER, 6))

    assert [b.id for b in recs] == ["W0", "W1", "W2", "W3", "W4", "W5"]
    assert catalog.calls[0] == ("subjects", ("mystery", "detective_and_mystery_stories", "crime"), 48)
    assert catalog.calls[1] == ("enrich", 14)
    assert all(call[0] != "fallback" for call in catalog.calls)


def test_engine_tops_up_with_fallback():
    catalog = FakeCatalog(subject_books=books(2, prefix="S"), fallback_books=books(10, prefix="F"))
    engine = RecommendationEngine(catalog, MemoryPreferenceStore(), shuffle=identity)

    recs = asyncio.run(engine.get_recommendations_for_user(NEW_READER, 6))

    assert len(recs) == 6
    assert ("fallback", 72, None) in catalog.calls


def test_engine_without_genres_goes_straight_to_fallback():
    catalog = FakeCatalog(fallback_books=books(8))
    engine = RecommendationEngine(catalog, MemoryPreferenceStore(), shuffle=identity)
    prefs = UserPrefs(level="NEW", genres=["Desconocido"], language_mode="BILINGUAL")

    recs = asyncio.run(engine.get_recommendations_for_user(prefs, 4))

    assert len(recs) == 4
    assert catalog.calls == [("fallback", 60, "")]


def test_engine_empty_result_is_not_an_error():
    engine = RecommendationEngine(FakeCatalog(), MemoryPreferenceStore(), shuffle=identity)

    assert asyncio.run(engine.get_recommendations_for_user(NEW_READER, 6)) == []


def test_engine_avoids_recently_shown_books():
    store = MemoryPreferenceStore()
    catalog = FakeCatalog(subject_books=books(40, published_date="2001"))
    engine = RecommendationEngine(catalog, store, shuffle=identity)

    first = asyncio.run(engine.get_recommendations_for_user(NEW_READER, 6))
    second = asyncio.run(engine.get_recommendations_for_user(NEW_READER, 6))

    assert not {b.id for b in first} & {b.id for b in second}
    assert json.loads(store.data[RECENT_RECS_KEY]) == [b.id for b in first + second]


def test_engine_keeps_recent_books_when_pool_would_starve():
    store = MemoryPreferenceStore({RECENT_RECS_KEY: json.dumps(["W0", "W1"])})
    catalog = FakeCatalog(subject_books=books(8, published_date="2001"))
    engine = RecommendationEngine(catalog, store, shuffle=identity)

    recs = asyncio.run(engine.get_recommendations_for_user(NEW_READER, 8))

    assert [b.id for b in recs] == ["W2", "W3", "W4", "W5", "W6", "W7", "W0", "W1"]


def test_recent_window_evicts_oldest():
    store = MemoryPreferenceStore()
    engine = RecommendationEngine(FakeCatalog(), store, shuffle=identity, recent_window=4)

    async def scenario():
        await engine.remember_shown(["a", "b", "c"])
        await engine.remember_shown(["d", "e"])
        return await engine.recent_ids()

    assert asyncio.run(scenario()) == ["b", "c", "d", "e"]


def test_zero_recent_window_remembers_nothing():
    store = MemoryPreferenceStore()
    engine = RecommendationEngine(FakeCatalog(), store, shuffle=identity, recent_window=0)

    async def scenario():
        await engine.remember_shown(["a", "b"])
        return await engine.recent_ids()

    assert asyncio.run(scenario()) == []


def make_daily(day=date(2024, 5, 10), catalog=None):
    store = MemoryPreferenceStore()
    catalog = catalog or FakeCatalog(subject_books=books(200, published_date="2001"))
    engine = RecommendationEngine(catalog, store, shuffle=identity)
    clock = Clock(day)
    return store, catalog, clock, DailyRecommendations(engine, store, today=clock)


def subject_calls(catalog):
    return sum(1 for call in catalog.calls if call[0] == "subjects")


def test_load_uses_same_day_cache_without_network():
    store, catalog, clock, daily = make_daily()

    first = asyncio.run(daily.load(NEW_READER))
    second = asyncio.run(daily.load(NEW_READER))

    assert len(first.books) == 6
    assert second.books == first.books
    assert subject_calls(catalog) == 1
    assert second.refreshes_left == 3


def test_load_regenerates_on_new_day_or_new_prefs():
    store, catalog, clock, daily = make_daily()

    asyncio.run(daily.load(NEW_READER))
    asyncio.run(daily.load(EXPERIENCED))
    clock.day = date(2024, 5, 11)
    asyncio.run(daily.load(EXPERIENCED))

    assert subject_calls(catalog) == 3


def test_refresh_budget_is_three_per_day():
    store, catalog, clock, daily = make_daily()

    asyncio.run(daily.load(NEW_READER))
    results = [asyncio.run(daily.refresh(NEW_READER)) for _ in range(3)]
    fourth = asyncio.run(daily.refresh(NEW_READER))

    assert [r.refreshes_used for r in results] == [1, 2, 3]
    assert fourth.refreshes_used == 3
    assert fourth.refreshes_left == 0
    assert fourth.books == results[-1].books
    assert subject_calls(catalog) == 4
    assert json.loads(store.data[HOME_REFRESH_KEY])["used"] == 3


def test_refresh_budget_resets_on_new_day_and_new_prefs():
    store, catalog, clock, daily = make_daily()

    for _ in range(4):
        asyncio.run(daily.refresh(NEW_READER))
    changed = asyncio.run(daily.refresh(EXPERIENCED))
    clock.day = date(2024, 5, 11)
    next_day = asyncio.run(daily.refresh(EXPERIENCED))

    assert changed.refreshes_used == 0
    assert next_day.refreshes_used == 0
    assert json.loads(store.data[HOME_REFRESH_KEY]) == {
        "date": "2024-05-11", "used": 0, "prefsSignature": prefs_signature(EXPERIENCED)
    }


def test_empty_recommendations_carry_a_message():
    store, catalog, clock, daily = make_daily(catalog=FakeCatalog())

    result = asyncio.run(daily.load(NEW_READER))

    assert result.books == []
    assert result.message
