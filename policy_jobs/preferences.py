"""
Group Preferences - SQLite store for default access-group selections.

Remembers, per user and target, which access groups were last chosen so
the next submission can start from them.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import FrozenSet, Iterable, Union

from config.logging_config import get_logger
from config.constants import PREFERENCES_DB

logger = get_logger(__name__)


class GroupPreferenceStore:
    """
    SQLite key/value store: (user_id, target_id) -> access group ids.
    """

    def __init__(self, db_path: Union[str, Path] = PREFERENCES_DB):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.debug(f"GroupPreferenceStore initialized: {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS group_preferences (
                    user_id TEXT NOT NULL,
                    target_id TEXT NOT NULL,
                    group_ids_json TEXT NOT NULL DEFAULT '[]',
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, target_id)
                )
            """)

    def load(self, user_id: str, target_id: str) -> FrozenSet[str]:
        """Preferred groups for a target; empty if none saved."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT group_ids_json FROM group_preferences WHERE user_id = ? AND target_id = ?",
                (user_id, target_id),
            ).fetchone()
        if row is None:
            return frozenset()
        return frozenset(json.loads(row["group_ids_json"]))

    def save(self, user_id: str, target_id: str, group_ids: Iterable[str]) -> None:
        """Save or replace the preferred groups for a target."""
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO group_preferences (user_id, target_id, group_ids_json, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id, target_id) DO UPDATE SET
                    group_ids_json = excluded.group_ids_json,
                    updated_at = excluded.updated_at
            """, (user_id, target_id, json.dumps(sorted(group_ids)), datetime.now().isoformat()))
        logger.debug(f"Saved group preference for {user_id}/{target_id}")

    def delete(self, user_id: str, target_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM group_preferences WHERE user_id = ? AND target_id = ?",
                (user_id, target_id),
            )
            return cursor.rowcount > 0
