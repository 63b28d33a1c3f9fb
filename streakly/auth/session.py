"""Current identity and the sign-in/sign-up/sign-out flows."""

import logging
from typing import Any, Callable, Optional

from streakly.errors import CredentialsInvalid, NetworkError, ValidationFailed
from streakly.gateway.client import GatewayClient, GatewayError, GatewayUnavailable
from streakly.gateway.models import AuthEvent, Session, User

from .validators import validate_credentials, validate_email

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[Session]], None]


class SessionManager:
    """Tracks the one live session of this client."""

    def __init__(self, gateway: GatewayClient, password_reset_redirect: str):
        """
        Initialize session manager.

        Args:
            gateway: Connected gateway client
            password_reset_redirect: Where reset emails send the user back to
        """
        self.gateway = gateway
        self.password_reset_redirect = password_reset_redirect
        self.session: Optional[Session] = None
        self.ready = False
        self._subscription: Optional[Any] = None
        self._listeners: list[SessionListener] = []

    @property
    def user(self) -> Optional[User]:
        """Signed-in user, or None."""
        return self.session.user if self.session else None

    async def start(self):
        """Subscribe to gateway auth events, then restore any stored session."""
        self._subscription = self.gateway.on_auth_state_change(self.on_change)
        await self.restore()

    async def close(self):
        """Stop listening to gateway auth events."""
        if self._subscription:
            self._subscription.unsubscribe()
            self._subscription = None

    def add_listener(self, listener: SessionListener):
        """Call ``listener`` with the new value after every session replacement."""
        self._listeners.append(listener)

    async def restore(self) -> Optional[Session]:
        """
        Restore the session from an earlier run.

        Always finishes with ``ready`` set; a gateway failure leaves the
        client signed out.
        """
        try:
            session = await self.gateway.get_session()
        except GatewayError as e:
            logger.warning(f"Could not restore session: {e}")
            session = None

        self._replace(session)
        self.ready = True
        return session

    def on_change(self, event: AuthEvent, session: Optional[Session]):
        """Gateway auth-state callback."""
        logger.info(f"Auth state changed: {event.value}")
        self._replace(session)

    def _replace(self, session: Optional[Session]):
        self.session = session
        for listener in list(self._listeners):
            listener(session)

    async def sign_in(self, email: str, password: str) -> Session:
        """
        Sign in with email and password.

        Raises:
            ValidationFailed: Malformed email or password (nothing was sent)
            CredentialsInvalid: The gateway refused the credentials
            NetworkError: The gateway could not be reached
        """
        validate_credentials(email, password)

        try:
            session = await self.gateway.sign_in_with_password(email, password)
        except GatewayUnavailable as e:
            raise NetworkError(str(e)) from e
        except GatewayError as e:
            logger.info(f"Sign-in rejected ({e.status_code})")
            raise CredentialsInvalid() from e

        # Normally already applied through the SIGNED_IN event
        if self.session != session:
            self._replace(session)
        return session

    async def sign_up(self, email: str, password: str) -> User:
        """
        Create an account. The client stays signed out afterwards.

        Raises:
            ValidationFailed: Malformed input, or the gateway refused the account
            NetworkError: The gateway could not be reached
        """
        validate_credentials(email, password)

        try:
            return await self.gateway.sign_up(email, password)
        except GatewayUnavailable as e:
            raise NetworkError(str(e)) from e
        except GatewayError as e:
            raise ValidationFailed(e.error_code or str(e)) from e

    async def sign_out(self):
        """Sign out. The local session is cleared even if the gateway call fails."""
        try:
            await self.gateway.sign_out()
        except GatewayError as e:
            logger.warning(f"Gateway sign-out failed, cleared locally: {e}")
        finally:
            if self.session is not None:
                self._replace(None)

    async def request_password_reset(self, email: str):
        """
        Send a password reset link to ``email``.

        Raises:
            ValidationFailed: Malformed email, or the gateway refused it
            NetworkError: The gateway could not be reached
        """
        validate_email(email)

        try:
            await self.gateway.reset_password_for_email(
                email, redirect_to=self.password_reset_redirect
            )
        except GatewayUnavailable as e:
            raise NetworkError(str(e)) from e
        except GatewayError as e:
            raise ValidationFailed(e.error_code or str(e), field="email") from e

    async def complete_password_recovery(self, token_hash: str) -> Session:
        """
        Verify the token from a reset link.

        The gateway signs the user in and pushes an auth event, which
        replaces the session like any other sign-in.
        """
        if not token_hash:
            raise ValidationFailed("Recovery token is required", field="token_hash")

        try:
            session = await self.gateway.verify_recovery(token_hash)
        except GatewayUnavailable as e:
            raise NetworkError(str(e)) from e
        except GatewayError as e:
            raise CredentialsInvalid() from e

        if self.session != session:
            self._replace(session)
        return session
