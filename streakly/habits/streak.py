"""Daily completion and streak rules."""

from dataclasses import replace
from datetime import date

from .models import Habit


def today() -> date:
    """Current calendar date from the host clock."""
    return date.today()


def complete(habit: Habit, day: date) -> Habit:
    """
    Mark a habit complete on ``day``.

    At most one increment per calendar day: if the habit was already
    completed on ``day`` it comes back unchanged. Otherwise the streak goes
    up by one, whatever the gap since the previous completion.

    Args:
        habit: Habit to complete
        day: Calendar date of the completion

    Returns:
        The updated habit (or the same object for a repeat completion)

    Example:
        streak=3, last=2025-01-01, day=2025-01-02 -> streak=4, last=2025-01-02
        streak=3, last=2025-01-01, day=2025-01-01 -> unchanged
    """
    if habit.completed_on(day):
        return habit

    return replace(habit, streak=habit.streak + 1, last_completed_date=day)
