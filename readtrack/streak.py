"""Daily reading streak."""
import logging
from datetime import date
from typing import Callable, Optional

from readtrack.models import StreakState
from readtrack.storage import PreferenceStore, STREAK_KEY

logger = logging.getLogger(__name__)


def _parse_iso(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        logger.warning(f"Ignoring bad streak date: {value!r}")
        return None


class StreakTracker:
    """Counts consecutive local calendar days with a reading session."""

    def __init__(self, store: PreferenceStore, today: Callable[[], date] = date.today):
        self.store = store
        self.today = today

    async def get(self) -> StreakState:
        return StreakState.from_dict(await self.store.get_json(STREAK_KEY, None))

    async def mark_read_today(self) -> StreakState:
        """
        Record a reading session for today.

        Same day: unchanged. Day after the last session: +1.
        Anything else (first session, a gap, a last date in the future): 1.
        """
        state = await self.get()
        today = self.today()
        last = _parse_iso(state.last_read_iso)

        if last == today:
            return state

        if last is not None and (today - last).days == 1:
            count = state.streak_count + 1
        else:
            count = 1

        new_state = StreakState(streak_count=count, last_read_iso=today.isoformat())
        await self.store.set_json(STREAK_KEY, new_state.to_dict())
        return new_state

    async def reset(self) -> StreakState:
        state = StreakState()
        await self.store.set_json(STREAK_KEY, state.to_dict())
        return state
