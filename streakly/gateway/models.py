"""Data models for gateway sessions and auth events."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional


class AuthEvent(str, Enum):
    """Auth-state changes pushed to subscribers."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


@dataclass(frozen=True)
class User:
    """Authenticated identity."""
    id: str
    email: Optional[str] = None

    @classmethod
    def from_auth(cls, user: Any) -> "User":
        """Build from a supabase auth user."""
        return cls(id=str(user.id), email=user.email)


@dataclass(frozen=True)
class Session:
    """Tokens bound to a signed-in user."""
    access_token: str
    refresh_token: str
    expires_at: Optional[datetime]
    user: User

    @classmethod
    def from_auth(cls, session: Any) -> "Session":
        """Build from a supabase auth session (expires_at is epoch seconds)."""
        expires_at = None
        if session.expires_at:
            expires_at = datetime.fromtimestamp(int(session.expires_at), tz=timezone.utc)

        return cls(
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            expires_at=expires_at,
            user=User.from_auth(session.user),
        )


AuthCallback = Callable[[AuthEvent, Optional[Session]], None]
