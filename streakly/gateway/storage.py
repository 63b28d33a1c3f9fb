"""Simple SQLite storage for the auth library's session."""

import logging
import sqlite3
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class SessionStorage:
    """
    Key/value store handed to supabase auth as its session storage.

    The auth client keeps the serialized session under a single key, so a
    restart can restore it.
    """

    def __init__(self, db_path: str = "data/session.db"):
        """Initialize database."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Create database tables if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS auth_storage (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()
        logger.info(f"Session storage initialized at {self.db_path}")

    async def get_item(self, key: str) -> Optional[str]:
        """Get stored value, if any."""
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT value FROM auth_storage WHERE key = ?", (key,)
            ).fetchone()

            return row["value"] if row else None

    async def set_item(self, key: str, value: str):
        """Store value, replacing any previous one."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO auth_storage (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                """,
                (key, value),
            )
            conn.commit()
        logger.debug(f"Stored {key}")

    async def remove_item(self, key: str):
        """Forget stored value."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM auth_storage WHERE key = ?", (key,))
            conn.commit()
        logger.debug(f"Removed {key}")
