"""HTTP API models."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel

from streakly.habits.models import Category, Habit


class Credentials(BaseModel):
    """Body for /api/auth/signin and /api/auth/signup."""

    email: str = ""
    password: str = ""


class PasswordResetRequest(BaseModel):
    """Body for /api/auth/reset-password."""

    email: str = ""


class HabitCreate(BaseModel):
    """Body for POST /api/habits."""

    name: str = ""
    category: str = Category.GENERAL.value


class UserResponse(BaseModel):
    """Signed-in identity."""

    id: str
    email: Optional[str] = None


class SessionResponse(BaseModel):
    """Response for /api/session."""

    ready: bool
    user: Optional[UserResponse] = None


class SignUpResponse(BaseModel):
    """Response for /api/auth/signup. The client stays signed out."""

    user: UserResponse
    signed_in: bool = False


class HabitResponse(BaseModel):
    """One habit as the rendering layer sees it."""

    id: str
    name: str
    category: str
    streak: int
    last_completed_date: Optional[date] = None
    completed_today: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_habit(cls, habit: Habit, today: date) -> "HabitResponse":
        """Build the response, computing completed_today for ``today``."""
        return cls(
            id=habit.id,
            name=habit.name,
            category=habit.category.value,
            streak=habit.streak,
            last_completed_date=habit.last_completed_date,
            completed_today=habit.completed_on(today),
            created_at=habit.created_at,
        )


class SummaryResponse(BaseModel):
    """Response for /api/habits/summary."""

    completed: int
    total: int
    percentage: float


class ErrorResponse(BaseModel):
    """Typed failure. Codes, never messages."""

    error: str
    field: Optional[str] = None
