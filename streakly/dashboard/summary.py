"""Figures shown above the habit list."""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Union

from streakly.errors import ValidationFailed
from streakly.habits.models import Category, Habit

# Pseudo-category matching every habit
ALL = "all"


@dataclass
class ProgressSummary:
    """Today's completion progress."""
    completed: int
    total: int
    percentage: float


def summarize(habits: Iterable[Habit], today: date) -> ProgressSummary:
    """
    Count how many habits are done today.

    Args:
        habits: Habits to count
        today: Current calendar date

    Returns:
        ProgressSummary; percentage is 0 when there are no habits
    """
    habits = list(habits)
    completed = sum(1 for habit in habits if habit.completed_on(today))
    total = len(habits)
    percentage = (completed / total) * 100 if total else 0.0
    return ProgressSummary(completed=completed, total=total, percentage=percentage)


def parse_filter(value: Union[str, Category]) -> Union[str, Category]:
    """Turn a filter value into ALL or a Category."""
    if value == ALL:
        return ALL
    try:
        return Category(value)
    except ValueError:
        raise ValidationFailed(f"Unknown category: {value}", field="category")


def filter_habits(habits: Iterable[Habit], category: Union[str, Category] = ALL) -> list[Habit]:
    """Habits in ``category``, keeping their order. ALL keeps every habit."""
    selected = parse_filter(category)
    if selected == ALL:
        return list(habits)
    return [habit for habit in habits if habit.category == selected]
