"""Application configuration."""

import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Supabase project
    supabase_url: str = os.getenv("SUPABASE_URL", "http://localhost:54321")
    supabase_anon_key: str = os.getenv("SUPABASE_ANON_KEY", "")
    request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "10"))

    # Auth
    password_reset_redirect: str = os.getenv(
        "PASSWORD_RESET_REDIRECT", "http://localhost:8000/auth/callback"
    )
    persist_session: bool = os.getenv("PERSIST_SESSION", "true").lower() in (
        "1",
        "true",
        "yes",
    )  # "remember me"
    session_db_path: str = os.getenv("SESSION_DB_PATH", "data/session.db")

    # Server
    server_host: str = os.getenv("SERVER_HOST", "0.0.0.0")
    server_port: int = int(os.getenv("SERVER_PORT", "8000"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False


settings = Settings()
