"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api.models import (
    Credentials,
    ErrorResponse,
    HabitCreate,
    HabitResponse,
    PasswordResetRequest,
    SessionResponse,
    SignUpResponse,
    SummaryResponse,
    UserResponse,
)
from .auth.session import SessionManager
from .config import settings
from .dashboard.summary import ALL
from .errors import StreaklyError, ValidationFailed
from .gateway.client import GatewayClient
from .gateway.storage import SessionStorage
from .habits import streak
from .habits.store import HabitStore

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "validation-failed": 422,
    "not-authenticated": 401,
    "credentials-invalid": 401,
    "network-error": 502,
}


def build_gateway() -> GatewayClient:
    """Gateway client from settings."""
    storage = SessionStorage(settings.session_db_path) if settings.persist_session else None
    return GatewayClient(
        settings.supabase_url,
        settings.supabase_anon_key,
        timeout=settings.request_timeout,
        storage=storage,
    )


def create_app(gateway: Optional[GatewayClient] = None) -> FastAPI:
    """
    Build the application around one gateway, session and habit store.

    Args:
        gateway: Gateway client to use (built from settings when omitted)
    """
    gateway = gateway or build_gateway()
    sessions = SessionManager(gateway, settings.password_reset_redirect)
    store = HabitStore(gateway, sessions)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await gateway.connect()
        await sessions.start()
        logger.info(f"Session ready (signed in: {sessions.user is not None})")
        try:
            yield
        finally:
            await sessions.close()
            await gateway.disconnect()

    app = FastAPI(
        title="Streakly",
        description="Daily habit tracker with completion streaks",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.sessions = sessions
    app.state.store = store

    @app.exception_handler(StreaklyError)
    async def streakly_error_handler(request: Request, exc: StreaklyError):
        """Turn a typed failure into its status code and error code."""
        logger.info(f"{request.method} {request.url.path} failed: {exc.code}")
        return JSONResponse(
            status_code=ERROR_STATUS.get(exc.code, 500),
            content=ErrorResponse(error=exc.code, field=exc.field).model_dump(),
        )

    def session_response() -> SessionResponse:
        user = sessions.user
        return SessionResponse(
            ready=sessions.ready,
            user=UserResponse(id=user.id, email=user.email) if user else None,
        )

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "Streakly",
            "version": "1.0.0",
            "endpoints": {
                "session": "/api/session",
                "auth": "/api/auth",
                "habits": "/api/habits",
                "summary": "/api/habits/summary",
                "status": "/status",
            },
        }

    @app.get("/status")
    async def status():
        """Server status endpoint."""
        return {
            "status": "running",
            "version": "1.0.0",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "gateway_url": gateway.url,
            "session_ready": sessions.ready,
        }

    @app.get("/api/session", response_model=SessionResponse)
    async def get_session():
        """Current identity, or null when signed out."""
        return session_response()

    @app.post("/api/auth/signin", response_model=SessionResponse)
    async def sign_in(credentials: Credentials):
        """Sign in. Habits load on first access to /api/habits."""
        await sessions.sign_in(credentials.email, credentials.password)
        return session_response()

    @app.post("/api/auth/signup", response_model=SignUpResponse)
    async def sign_up(credentials: Credentials):
        """
        Create an account.

        The client is left signed out; the user signs in next.
        """
        user = await sessions.sign_up(credentials.email, credentials.password)
        return SignUpResponse(user=UserResponse(id=user.id, email=user.email))

    @app.post("/api/auth/signout")
    async def sign_out():
        """Sign out (always succeeds locally)."""
        await sessions.sign_out()
        return {"status": "success"}

    @app.post("/api/auth/reset-password")
    async def reset_password(body: PasswordResetRequest):
        """Mail a password reset link."""
        await sessions.request_password_reset(body.email)
        return {"status": "success"}

    @app.get("/auth/callback", response_model=SessionResponse)
    async def auth_callback(token_hash: str = "", type: str = "recovery"):
        """Landing page of password reset links."""
        if type != "recovery":
            raise ValidationFailed(f"Unsupported callback type: {type}", field="type")
        await sessions.complete_password_recovery(token_hash)
        return session_response()

    @app.get("/api/habits", response_model=list[HabitResponse])
    async def list_habits(category: str = ALL):
        """Habits of the signed-in user, optionally for one category."""
        if not store.loaded:
            await store.load()
        today = streak.today()
        return [HabitResponse.from_habit(habit, today) for habit in store.filter(category)]

    @app.get("/api/habits/summary", response_model=SummaryResponse)
    async def habits_summary():
        """How many habits are done today."""
        if not store.loaded:
            await store.load()
        summary = store.summary()
        return SummaryResponse(
            completed=summary.completed,
            total=summary.total,
            percentage=summary.percentage,
        )

    @app.post("/api/habits", response_model=HabitResponse, status_code=201)
    async def add_habit(body: HabitCreate):
        """Create a habit."""
        habit = await store.add(body.name, body.category)
        return HabitResponse.from_habit(habit, streak.today())

    @app.post("/api/habits/{habit_id}/complete")
    async def complete_habit(habit_id: str):
        """Mark a habit done for today. Repeats on the same day are no-ops."""
        habit = await store.toggle_complete(habit_id)
        if habit is None:
            return JSONResponse(status_code=404, content={"error": "not-found"})
        return HabitResponse.from_habit(habit, streak.today())

    @app.delete("/api/habits/{habit_id}")
    async def delete_habit(habit_id: str):
        """Delete a habit. Unknown ids are ignored."""
        removed = await store.remove(habit_id)
        return {"status": "success", "removed": removed}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )
