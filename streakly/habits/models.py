"""Data models for habits."""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional


class Category(str, Enum):
    """Fixed set of habit categories."""

    GENERAL = "general"
    STUDY = "study"
    EXERCISE = "exercise"
    HEALTH = "health"
    WORK = "work"
    PERSONAL = "personal"


@dataclass(frozen=True)
class Habit:
    """A habit mirrored from the habits table."""
    id: str
    owner: str
    name: str
    category: Category = Category.GENERAL
    streak: int = 0
    last_completed_date: Optional[date] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.streak < 0:
            raise ValueError(f"Negative streak for habit {self.id}")
        if self.streak > 0 and self.last_completed_date is None:
            raise ValueError(f"Habit {self.id} has a streak but no completion date")

    def completed_on(self, day: date) -> bool:
        """True if the habit was completed on ``day``."""
        return self.last_completed_date == day
