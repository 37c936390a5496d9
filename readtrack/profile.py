"""User preference persistence (onboarding result)."""
import logging
from typing import Optional

from readtrack.models import UserPrefs
from readtrack.storage import PreferenceStore, USER_PREFS_KEY

logger = logging.getLogger(__name__)


async def load_user_prefs(store: PreferenceStore) -> Optional[UserPrefs]:
    """Stored preferences, or None before onboarding."""
    return UserPrefs.from_dict(await store.get_json(USER_PREFS_KEY, None))


async def save_user_prefs(store: PreferenceStore, prefs: UserPrefs) -> None:
    """Overwrite the stored preferences as a single blob."""
    await store.set_json(USER_PREFS_KEY, prefs.to_dict())
    logger.info(f"Saved preferences: level={prefs.level} goal={prefs.daily_minutes_goal} genres={len(prefs.genres)}")


async def clear_user_prefs(store: PreferenceStore) -> None:
    """Forget preferences so onboarding runs again."""
    await store.remove(USER_PREFS_KEY)
