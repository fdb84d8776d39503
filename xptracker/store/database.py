"""Simple SQLite database for per-profile saves."""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from .models import XpSave, parse_save

logger = logging.getLogger(__name__)


class SaveDatabase:
    """Stores one XP save blob per profile."""

    def __init__(self, db_path: str = "data/saves.db"):
        """Initialize database."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Create database tables if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS saves (
                    profile TEXT PRIMARY KEY,
                    state TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()
        logger.info(f"Database initialized at {self.db_path}")

    def load_save(self, profile: str) -> Optional[XpSave]:
        """Get the save for a profile, None if missing or unusable."""
        if not profile:
            return None

        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute("SELECT state FROM saves WHERE profile = ?", (profile,))
            row = cursor.fetchone()

        if not row:
            return None

        return parse_save(row["state"])

    def write_save(self, profile: str, save: XpSave):
        """Create or replace the save for a profile."""
        if not profile:
            return

        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO saves (profile, state, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(profile) DO UPDATE SET
                    state = excluded.state,
                    updated_at = excluded.updated_at
                """,
                (profile, save.model_dump_json(), datetime.utcnow().isoformat()),
            )
            conn.commit()
        logger.debug(f"Saved XP state for profile: {profile}")

    def clear_save(self, profile: str):
        """Delete the save for a profile."""
        if not profile:
            return

        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM saves WHERE profile = ?", (profile,))
            conn.commit()
        logger.info(f"Cleared XP state for profile: {profile}")

