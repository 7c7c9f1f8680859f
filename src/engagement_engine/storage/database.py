"""SQLite-backed row store."""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Any, Generator


class SQLiteStore:
    """SQLite database holding engine rows as JSON bodies keyed by table and key."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize database connection."""
        if db_path is None:
            db_path = Path.home() / ".engagement-engine" / "engine.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_db()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(self.db_path, timeout=30)
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
        """Initialize database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS engine_rows (
                    table_name TEXT NOT NULL,
                    row_key TEXT NOT NULL,
                    body TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

                    PRIMARY KEY (table_name, row_key)
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_engine_rows_table ON engine_rows(table_name)
            """)

    def get(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        """Get one row by table and key."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT body FROM engine_rows WHERE table_name = ? AND row_key = ?",
                (table, key),
            )
            row = cursor.fetchone()
            return json.loads(row["body"]) if row else None

    def upsert(self, table: str, key: str, row: Dict[str, Any]) -> None:
        """Insert or replace one row."""
        body = json.dumps(row, default=str)
        now = datetime.now().isoformat()
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO engine_rows (table_name, row_key, body, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(table_name, row_key)
                DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at
            """, (table, key, body, now, now))

    def rows(self, table: str) -> List[Dict[str, Any]]:
        """Get all rows of a table, oldest first."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT body FROM engine_rows WHERE table_name = ? ORDER BY created_at, row_key",
                (table,),
            )
            return [json.loads(row["body"]) for row in cursor.fetchall()]

    def count(self, table: str) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT COUNT(*) FROM engine_rows WHERE table_name = ?", (table,)
            )
            return cursor.fetchone()[0]

    def get_stats(self) -> Dict[str, Any]:
        """Get row counts per table."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT table_name, COUNT(*) FROM engine_rows GROUP BY table_name"
            )
            counts = {row[0]: row[1] for row in cursor.fetchall()}
            return {"total_rows": sum(counts.values()), "by_table": counts}

    def ping(self) -> bool:
        """Check the database is reachable."""
        with self._get_connection() as conn:
            conn.execute("SELECT 1")
        return True
