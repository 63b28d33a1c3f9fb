"""In-memory habit list synchronized with the habits table."""

import asyncio
import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Optional, Union

from streakly.auth.session import SessionManager
from streakly.dashboard.summary import ALL, ProgressSummary, filter_habits, summarize
from streakly.errors import (
    NetworkError,
    NotAuthenticated,
    StreaklyError,
    ValidationFailed,
)
from streakly.gateway.client import GatewayClient, GatewayError, GatewayUnavailable
from streakly.gateway.models import Session, User

from . import streak
from .models import Category, Habit

logger = logging.getLogger(__name__)


def _classify(error: GatewayError) -> StreaklyError:
    """Map a gateway failure on the habits table to a typed failure."""
    if isinstance(error, GatewayUnavailable):
        return NetworkError(str(error))
    if error.status_code in (401, 403):
        return NotAuthenticated(str(error))
    return NetworkError(str(error))


class HabitStore:
    """Habits of the signed-in user, in creation order."""

    def __init__(self, gateway: GatewayClient, sessions: SessionManager):
        """
        Initialize the store and follow session changes.

        Args:
            gateway: Connected gateway client
            sessions: Session manager whose user owns the habits
        """
        self.gateway = gateway
        self.sessions = sessions
        self.habits: list[Habit] = []
        self.loaded = False
        self._owner: Optional[str] = None
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        sessions.add_listener(self.on_session_change)

    def on_session_change(self, session: Optional[Session]):
        """Drop the local list when the user signs out or changes."""
        owner = session.user.id if session else None
        if owner == self._owner:
            return

        if self.habits:
            logger.info(f"Session changed, clearing {len(self.habits)} habits")
        self.habits = []
        self.loaded = False
        self._locks.clear()
        self._owner = owner

    def _require_user(self) -> User:
        user = self.sessions.user
        if user is None:
            raise NotAuthenticated()
        return user

    def get(self, habit_id: str) -> Optional[Habit]:
        """Get habit by id from the local list."""
        for habit in self.habits:
            if habit.id == habit_id:
                return habit
        return None

    async def load(self) -> list[Habit]:
        """
        Fetch all habits of the signed-in user.

        The local list is only replaced once the whole fetch succeeded.

        Returns:
            Habits ordered by creation time
        """
        user = self._require_user()
        logger.info("Loading habits...")

        try:
            rows = await self.gateway.select_habits()
        except GatewayError as e:
            raise _classify(e) from e

        habits = []
        for row in rows:
            habit = self._parse_row(row)
            if habit:
                habits.append(habit)

        self.habits = habits
        self.loaded = True
        self._owner = user.id
        logger.info(f"Loaded {len(habits)} habits")
        return list(habits)

    async def add(self, name: str, category: Union[str, Category] = Category.GENERAL) -> Habit:
        """
        Create a habit and append it to the local list.

        Args:
            name: Display name; surrounding whitespace is dropped
            category: One of the Category values

        Returns:
            The stored habit
        """
        name = (name or "").strip()
        if not name:
            raise ValidationFailed("Habit name is required", field="name")

        try:
            category = Category(category)
        except ValueError:
            raise ValidationFailed(f"Unknown category: {category}", field="category")

        user = self._require_user()

        try:
            row = await self.gateway.insert_habit(
                {
                    "user_id": user.id,
                    "name": name,
                    "category": category.value,
                    "streak": 0,
                    "last_completed_date": None,
                }
            )
        except GatewayError as e:
            raise _classify(e) from e

        habit = self._parse_row(row)
        if habit is None:
            raise NetworkError("Gateway returned an unusable habit row")

        self.habits.append(habit)
        logger.info(f"✓ Added habit: {habit.name} ({habit.category.value})")
        return habit

    async def remove(self, habit_id: str) -> bool:
        """
        Delete a habit.

        Returns:
            False if the id was not in the local list (nothing was sent)
        """
        self._require_user()

        if self.get(habit_id) is None:
            logger.debug(f"Remove of unknown habit {habit_id} ignored")
            return False

        try:
            await self.gateway.delete_habit(habit_id)
        except GatewayError as e:
            raise _classify(e) from e

        self.habits = [habit for habit in self.habits if habit.id != habit_id]
        self._locks.pop(habit_id, None)
        logger.info(f"Removed habit {habit_id}")
        return True

    async def toggle_complete(self, habit_id: str, today: Optional[date] = None) -> Optional[Habit]:
        """
        Mark a habit complete for today.

        A second call on the same day changes nothing and sends nothing.
        Calls for the same habit are serialized so concurrent callers
        cannot both increment.

        Args:
            habit_id: Habit to complete
            today: Calendar date to complete on (defaults to the host date)

        Returns:
            The habit after the call, or None for an unknown id
        """
        self._require_user()
        day = today or streak.today()

        if self.get(habit_id) is None:
            logger.warning(f"Complete of unknown habit {habit_id} ignored")
            return None

        async with self._locks[habit_id]:
            habit = self.get(habit_id)
            if habit is None:
                # Removed while waiting for the lock
                self._locks.pop(habit_id, None)
                return None

            updated = streak.complete(habit, day)
            if updated is habit:
                logger.debug(f"{habit.name} already completed on {day}")
                return habit

            try:
                await self.gateway.update_habit(
                    habit_id,
                    {
                        "streak": updated.streak,
                        "last_completed_date": day.isoformat(),
                    },
                )
            except GatewayError as e:
                raise _classify(e) from e

            self.habits = [updated if h.id == habit_id else h for h in self.habits]
            logger.info(f"  {updated.name}: streak {habit.streak} -> {updated.streak}")
            return updated

    def completed_today(self, habit: Habit, today: Optional[date] = None) -> bool:
        """Derived at read time so it flips over at midnight."""
        return habit.completed_on(today or streak.today())

    def filter(self, category: Union[str, Category] = ALL) -> list[Habit]:
        """Habits in one category, or all of them."""
        return filter_habits(self.habits, category)

    def summary(self, today: Optional[date] = None) -> ProgressSummary:
        """Completion progress for today."""
        return summarize(self.habits, today or streak.today())

    def _parse_row(self, row: dict) -> Optional[Habit]:
        """
        Build a Habit from a table row.

        Args:
            row: Row dictionary from the gateway

        Returns:
            Habit if valid, None if the row is unusable
        """
        habit_id = row.get("id")
        name = (row.get("name") or "").strip()

        if not habit_id or not name:
            logger.warning(f"Habit row {habit_id} has no id or name, skipping")
            return None

        raw_category = row.get("category") or Category.GENERAL.value
        try:
            category = Category(raw_category)
        except ValueError:
            logger.warning(f"Habit {habit_id} has unknown category {raw_category!r}, using general")
            category = Category.GENERAL

        try:
            last_completed = row.get("last_completed_date")
            created_at = row.get("created_at")

            return Habit(
                id=str(habit_id),
                owner=str(row.get("user_id") or ""),
                name=name,
                category=category,
                streak=int(row.get("streak") or 0),
                last_completed_date=date.fromisoformat(last_completed) if last_completed else None,
                created_at=datetime.fromisoformat(created_at) if created_at else None,
            )

        except (TypeError, ValueError) as e:
            logger.warning(f"Habit {habit_id} is invalid: {e}, skipping")
            return None
