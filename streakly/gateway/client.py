"""Supabase gateway client (auth + habits table)."""

import asyncio
import logging
from typing import Any, Awaitable, Optional

import httpx
from supabase import (
    AsyncClient,
    AuthApiError,
    AuthError,
    AuthRetryableError,
    AuthSessionMissingError,
    AuthUnknownError,
    PostgrestAPIError,
    acreate_client,
)
from supabase.lib.client_options import AsyncClientOptions

from .models import AuthCallback, AuthEvent, Session, User
from .storage import SessionStorage

logger = logging.getLogger(__name__)

HABITS_TABLE = "habits"

# PostgREST codes for a missing, expired or refused JWT
JWT_ERROR_CODES = {"PGRST301", "PGRST302", "PGRST303"}
# Postgres insufficient_privilege (row-level security)
PRIVILEGE_ERROR_CODE = "42501"


class GatewayError(Exception):
    """The gateway rejected a request."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class GatewayUnavailable(GatewayError):
    """Transport failure, timeout, rate limit or server-side error."""


def _translate(error: Exception) -> GatewayError:
    """Map a supabase or transport exception to a gateway exception."""
    if isinstance(error, (AuthRetryableError, AuthUnknownError, httpx.TransportError)):
        return GatewayUnavailable(str(error))

    if isinstance(error, AuthApiError):
        code = getattr(error, "code", None)
        if error.status == 429 or error.status >= 500:
            return GatewayUnavailable(error.message, error.status, code)
        return GatewayError(error.message, error.status, code)

    if isinstance(error, AuthSessionMissingError):
        return GatewayError(error.message, 401, "session_not_found")

    if isinstance(error, AuthError):
        return GatewayError(error.message, 400, getattr(error, "code", None))

    if isinstance(error, PostgrestAPIError):
        code = str(error.code) if error.code is not None else None
        message = error.message or str(error)
        if code in JWT_ERROR_CODES:
            return GatewayError(message, 401, code)
        if code == PRIVILEGE_ERROR_CODE:
            return GatewayError(message, 403, code)
        # Non-JSON error bodies carry the HTTP status as their code
        if code and code.isdigit() and len(code) == 3:
            status = int(code)
            if status == 429 or status >= 500:
                return GatewayUnavailable(message, status, code)
            return GatewayError(message, status, code)
        return GatewayError(message, 400, code)

    return GatewayUnavailable(str(error))


class GatewayClient:
    """Async client for the Supabase project backing the habit tracker."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: float = 10.0,
        storage: Optional[SessionStorage] = None,
    ):
        """
        Initialize gateway client.

        Args:
            url: Supabase project URL (e.g., https://abc.supabase.co)
            anon_key: Public anon key of the project
            timeout: Per-request timeout in seconds
            storage: Where to keep the session between runs (None = memory only)
        """
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.storage = storage
        self.client: Optional[AsyncClient] = None

    async def connect(self):
        """Create the supabase client, picking up any stored session."""
        logger.info(f"Connecting to {self.url}")
        options = {
            "persist_session": self.storage is not None,
            "auto_refresh_token": False,
            "postgrest_client_timeout": self.timeout,
        }
        if self.storage:
            options["storage"] = self.storage

        self.client = await acreate_client(
            self.url, self.anon_key, options=AsyncClientOptions(**options)
        )

    async def disconnect(self):
        """Drop the supabase client."""
        if self.client:
            self.client = None
            logger.info("Disconnected from gateway")

    def _require_client(self) -> AsyncClient:
        if self.client is None:
            raise GatewayUnavailable("Not connected to gateway")
        return self.client

    async def _call(self, operation: str, awaitable: Awaitable) -> Any:
        """
        Await a supabase call with the request timeout.

        Raises:
            GatewayUnavailable: Timeout, transport failure, 429 or 5xx
            GatewayError: Any other refusal
        """
        logger.debug(f"Gateway call: {operation}")
        try:
            return await asyncio.wait_for(awaitable, self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"{operation} timed out after {self.timeout}s")
            raise GatewayUnavailable(f"{operation} timed out") from e
        except (AuthError, PostgrestAPIError, httpx.TransportError) as e:
            error = _translate(e)
            logger.error(f"{operation} failed: {error.status_code} ({error.error_code})")
            raise error from e

    # -- auth-state channel --------------------------------------------------

    def on_auth_state_change(self, callback: AuthCallback):
        """
        Register a callback fired with (event, session) on every auth change.

        Returns:
            Subscription; call ``unsubscribe()`` to stop receiving events
        """
        def forward(event: str, session: Any):
            try:
                auth_event = AuthEvent(event)
            except ValueError:
                logger.debug(f"Ignoring auth event {event}")
                return
            callback(auth_event, Session.from_auth(session) if session else None)

        return self._require_client().auth.on_auth_state_change(forward)

    async def _drop_local_session(self):
        """Forget the session on this side only and notify SIGNED_OUT."""
        auth = self._require_client().auth
        # supabase-py only clears the local session once the server answered
        await auth._remove_session()
        auth._notify_all_subscribers(AuthEvent.SIGNED_OUT.value, None)

    # -- auth ----------------------------------------------------------------

    async def get_session(self) -> Optional[Session]:
        """
        Restore the session kept from an earlier run.

        supabase refreshes tokens that are about to expire. A session the
        gateway no longer accepts is dropped locally.

        Returns:
            Restored session, or None
        """
        auth = self._require_client().auth
        try:
            session = await self._call("Restore session", auth.get_session())
        except GatewayUnavailable:
            raise
        except GatewayError as e:
            logger.warning(f"Stored session rejected ({e.error_code}), discarding it")
            await self._drop_local_session()
            return None

        if session is None:
            logger.info("No stored session")
            return None

        restored = Session.from_auth(session)
        logger.info(f"✓ Restored session for user {restored.user.id}")
        return restored

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        """Exchange email and password for a session. Emits SIGNED_IN."""
        auth = self._require_client().auth
        response = await self._call(
            "Sign-in",
            auth.sign_in_with_password({"email": email, "password": password}),
        )
        session = Session.from_auth(response.session)
        logger.info(f"✓ Signed in as user {session.user.id}")
        return session

    async def sign_up(self, email: str, password: str) -> User:
        """
        Register a new account.

        Any session the gateway returns (projects with auto-confirm) is
        dropped: a new account always starts signed out.

        Returns:
            The created user
        """
        auth = self._require_client().auth
        response = await self._call(
            "Sign-up", auth.sign_up({"email": email, "password": password})
        )
        if response.session:
            logger.info("Account was auto-confirmed, dropping its session")
            await self._drop_local_session()

        user = User.from_auth(response.user)
        logger.info(f"✓ Registered user {user.id}")
        return user

    async def sign_out(self):
        """
        Invalidate the session at the gateway.

        The local session is dropped and SIGNED_OUT emitted even when the
        gateway call fails; the failure is still raised.
        """
        auth = self._require_client().auth
        try:
            await self._call("Sign-out", auth.sign_out())
        except GatewayError:
            await self._drop_local_session()
            raise
        logger.info("Signed out")

    async def reset_password_for_email(self, email: str, redirect_to: str):
        """Ask the gateway to mail a password reset link."""
        auth = self._require_client().auth
        await self._call(
            "Password reset",
            auth.reset_password_for_email(email, {"redirect_to": redirect_to}),
        )
        logger.info("Password reset requested")

    async def verify_recovery(self, token_hash: str) -> Session:
        """Verify a password-recovery token; the gateway signs the user in."""
        auth = self._require_client().auth
        response = await self._call(
            "Recovery", auth.verify_otp({"type": "recovery", "token_hash": token_hash})
        )
        if not response.session:
            raise GatewayError("Recovery returned no session", status_code=401)
        return Session.from_auth(response.session)

    async def _authorize(self):
        """
        Point table requests at the current access token.

        get_session() refreshes a token about to expire (TOKEN_REFRESHED).
        A refresh token the gateway refuses ends the session locally.
        """
        client = self._require_client()
        try:
            session = await self._call("Session refresh", client.auth.get_session())
        except GatewayUnavailable:
            raise
        except GatewayError as e:
            logger.warning(f"Session refresh rejected ({e.error_code}), signing out locally")
            await self._drop_local_session()
            raise GatewayError("Session expired", 401, e.error_code) from e

        if session is None:
            raise GatewayError("No active session", status_code=401)

        client.postgrest.auth(session.access_token)

    # -- habits table --------------------------------------------------------

    def _habits(self):
        return self._require_client().table(HABITS_TABLE)

    async def select_habits(self) -> list[dict]:
        """
        Get all habit rows visible to the signed-in user.

        Returns:
            Rows ordered by created_at ascending
        """
        await self._authorize()
        response = await self._call(
            "Select habits", self._habits().select("*").order("created_at").execute()
        )
        return response.data or []

    async def insert_habit(self, row: dict) -> dict:
        """Insert a habit row and return it as stored."""
        await self._authorize()
        response = await self._call("Insert habit", self._habits().insert(row).execute())
        if not response.data:
            raise GatewayUnavailable("Insert returned no row")
        return response.data[0]

    async def update_habit(self, habit_id: str, values: dict) -> dict:
        """
        Update one habit row.

        Args:
            habit_id: Row id
            values: Columns to set

        Returns:
            The updated row
        """
        await self._authorize()
        response = await self._call(
            "Update habit", self._habits().update(values).eq("id", habit_id).execute()
        )
        if not response.data:
            raise GatewayError(f"Habit not found: {habit_id}", status_code=404)
        return response.data[0]

    async def delete_habit(self, habit_id: str):
        """Delete one habit row."""
        await self._authorize()
        await self._call(
            "Delete habit", self._habits().delete().eq("id", habit_id).execute()
        )


async def test_connection():
    """Restore the stored session and list its habits."""
    import os
    from dotenv import load_dotenv

    load_dotenv()

    url = os.getenv("SUPABASE_URL")
    anon_key = os.getenv("SUPABASE_ANON_KEY")

    if not url or not anon_key:
        print("Error: SUPABASE_URL and SUPABASE_ANON_KEY must be set in .env file")
        return

    client = GatewayClient(url, anon_key, storage=SessionStorage())

    try:
        await client.connect()

        session = await client.get_session()
        if not session:
            print("No stored session. Sign in through the API first.")
            return

        print(f"\nSigned in as {session.user.email}")
        rows = await client.select_habits()
        print(f"Found {len(rows)} habits")
        for row in rows:
            print(f"  - {row.get('name')}: streak {row.get('streak')}")

    finally:
        await client.disconnect()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(test_connection())
