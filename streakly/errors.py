"""Failure taxonomy shared by the session manager and the habit store.

Every failure carries a stable ``code``. Callers map codes to whatever
they show; nothing here produces user-facing text.
"""

from typing import Optional


class StreaklyError(Exception):
    """Base class for classified failures."""

    code = "error"

    def __init__(self, detail: str = "", field: Optional[str] = None):
        super().__init__(detail or self.code)
        self.detail = detail
        self.field = field


class ValidationFailed(StreaklyError):
    """Input rejected before (or instead of) reaching the gateway."""

    code = "validation-failed"


class NotAuthenticated(StreaklyError):
    """Operation needs a session and there is none."""

    code = "not-authenticated"


class CredentialsInvalid(StreaklyError):
    """Sign-in rejected. Deliberately says nothing about which part was wrong."""

    code = "credentials-invalid"


class NetworkError(StreaklyError):
    """Gateway unreachable, timed out or answered with something unexpected."""

    code = "network-error"
