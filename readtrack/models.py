"""Data models for books, user preferences and streaks."""
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

LEVEL_NEW = "NEW"
LEVEL_EXPERIENCED = "EXPERIENCED"
READING_LEVELS = (LEVEL_NEW, LEVEL_EXPERIENCED)

DAILY_GOALS = (5, 10, 20)
DEFAULT_DAILY_GOAL = 10

LANGUAGE_MODES = ("ES", "BILINGUAL")
BOOK_LANGUAGES = ("es", "en")


@dataclass(frozen=True)
class Book:
    """Normalized book representation.

    Only ``id`` and ``title`` are guaranteed; everything else is best-effort
    because the catalog rarely returns complete records.
    """
    id: str
    title: str
    authors: Optional[List[str]] = None
    description: Optional[str] = None
    page_count: Optional[int] = None
    language: Optional[str] = None
    categories: Optional[List[str]] = None
    thumbnail: Optional[str] = None
    preview_link: Optional[str] = None
    published_date: Optional[str] = None
    edition_count: Optional[int] = None

    @property
    def authors_str(self) -> str:
        """Format authors as comma-separated string."""
        return ", ".join(self.authors) if self.authors else "Unknown"

    @property
    def categories_str(self) -> str:
        """Format categories as comma-separated string."""
        return ", ".join(self.categories) if self.categories else "None"

    @property
    def known_page_count(self) -> int:
        """Page count when it is a positive number, otherwise 0."""
        if isinstance(self.page_count, int) and self.page_count > 0:
            return self.page_count
        return 0

    @property
    def published_year(self) -> Optional[int]:
        """Leading four-digit year of ``published_date``, if any."""
        raw = (self.published_date or "").strip()
        if len(raw) >= 4 and raw[:4].isdigit():
            return int(raw[:4])
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON shape kept in the preference store."""
        data = {
            "id": self.id,
            "title": self.title,
            "authors": self.authors,
            "description": self.description,
            "pageCount": self.page_count,
            "language": self.language,
            "categories": self.categories,
            "thumbnail": self.thumbnail,
            "previewLink": self.preview_link,
            "publishedDate": self.published_date,
            "editionCount": self.edition_count,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Book"]:
        """Build a Book from stored JSON; returns None for anything without a string id."""
        if not isinstance(data, dict) or not isinstance(data.get("id"), str) or not data["id"]:
            return None

        page_count = data.get("pageCount")
        edition_count = data.get("editionCount")
        authors = data.get("authors")
        categories = data.get("categories")
        language = data.get("language")

        return cls(
            id=data["id"],
            title=str(data.get("title") or ""),
            authors=list(authors) if isinstance(authors, list) else None,
            description=data.get("description"),
            page_count=page_count if isinstance(page_count, int) and not isinstance(page_count, bool) else None,
            language=language if language in BOOK_LANGUAGES else None,
            categories=list(categories) if isinstance(categories, list) else None,
            thumbnail=data.get("thumbnail"),
            preview_link=data.get("previewLink"),
            published_date=data.get("publishedDate"),
            edition_count=edition_count if isinstance(edition_count, int) else None,
        )


@dataclass
class UserPrefs:
    """Preferences captured at onboarding."""
    onboarded: bool = False
    level: str = LEVEL_NEW
    genres: List[str] = field(default_factory=list)
    daily_minutes_goal: int = DEFAULT_DAILY_GOAL
    language_mode: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "onboarded": self.onboarded,
            "level": self.level,
            "genres": list(self.genres),
            "dailyMinutesGoal": self.daily_minutes_goal,
        }
        if self.language_mode:
            data["languageMode"] = self.language_mode
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Optional["UserPrefs"]:
        if not isinstance(data, dict):
            return None

        level = data.get("level")
        goal = data.get("dailyMinutesGoal")
        mode = data.get("languageMode")

        genres = []
        raw_genres = data.get("genres")
        for genre in raw_genres if isinstance(raw_genres, list) else []:
            genre = str(genre).strip()
            if genre and genre not in genres:
                genres.append(genre)

        return cls(
            onboarded=bool(data.get("onboarded")),
            level=level if level in READING_LEVELS else LEVEL_NEW,
            genres=genres,
            daily_minutes_goal=goal if goal in DAILY_GOALS else DEFAULT_DAILY_GOAL,
            language_mode=mode if mode in LANGUAGE_MODES else None,
        )


@dataclass(frozen=True)
class StreakState:
    """Consecutive reading days ending at ``last_read_iso``."""
    streak_count: int = 0
    last_read_iso: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"streakCount": self.streak_count, "lastReadISO": self.last_read_iso}

    @classmethod
    def from_dict(cls, data: Any) -> "StreakState":
        if not isinstance(data, dict):
            return cls()
        count = data.get("streakCount")
        last = data.get("lastReadISO")
        return cls(
            streak_count=count if isinstance(count, int) and count > 0 else 0,
            last_read_iso=last if isinstance(last, str) and last else None,
        )
