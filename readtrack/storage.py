"""Async key/value preference store holding JSON values."""
import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Keys
USER_PREFS_KEY = "user_prefs_v1"
READING_NOW_KEY = "reading_now_v1"
TO_READ_KEY = "to_read_v1"
FINISHED_KEY = "finished_v1"
PROGRESS_PERCENT_KEY = "reading_progress_v1"  # legacy, 0-100
PROGRESS_PAGES_KEY = "reading_progress_pages_v1"
STREAK_KEY = "streak_state_v1"
HOME_RECS_CACHE_KEY = "home_recs_cache_v1"
HOME_REFRESH_KEY = "home_rec_refresh_v1"
RECENT_RECS_KEY = "recent_recs_v1"


class PreferenceStore:
    """
    Base class for string key/value stores.

    Subclasses implement the raw ``_read``/``_write``/``_delete`` coroutines;
    JSON encoding and the fallback-on-corruption rule live here.
    """

    async def _read(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def _write(self, key: str, value: str) -> None:
        raise NotImplementedError

    async def _delete(self, key: str) -> None:
        raise NotImplementedError

    async def get_json(self, key: str, fallback: Any = None) -> Any:
        """
        Read and decode a value.

        Args:
            key: Store key
            fallback: Returned when the key is missing, empty or not valid JSON

        Returns:
            Decoded value or fallback
        """
        raw = await self._read(key)
        if not raw:
            return fallback
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning(f"Corrupt JSON under {key}: {e}")
            return fallback

    async def set_json(self, key: str, value: Any) -> None:
        await self._write(key, json.dumps(value, ensure_ascii=False))

    async def remove(self, key: str) -> None:
        await self._delete(key)


class MemoryPreferenceStore(PreferenceStore):
    """In-process store; lost on exit. Used in tests and as a default."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    async def _read(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def _write(self, key: str, value: str) -> None:
        self.data[key] = value

    async def _delete(self, key: str) -> None:
        self.data.pop(key, None)
