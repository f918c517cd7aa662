# Copyright (c) 2025 Trae AI. All rights reserved.

import sqlite3
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from shelfkeeper.core.errors import StoreFailure

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._memory_conn = None
        self._memory_lock = threading.RLock()
        self._init_db()

    @property
    def is_memory(self) -> bool:
        return str(self.db_path) == ":memory:"

    def _init_db(self):
        # Allow using :memory: for testing, which is not a path
        if not self.is_memory and not Path(self.db_path).parent.exists():
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        with self.connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id         INTEGER PRIMARY KEY AUTOINCREMENT,
                    username   TEXT NOT NULL UNIQUE,
                    is_admin   INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL DEFAULT (datetime('now'))
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    token      TEXT PRIMARY KEY,
                    user_id    INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    expires_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS media (
                    id         INTEGER PRIMARY KEY AUTOINCREMENT,
                    media_type TEXT NOT NULL CHECK(media_type IN ('movie', 'tv_season')),
                    title      TEXT NOT NULL,
                    year       INTEGER,
                    season     INTEGER,
                    path       TEXT NOT NULL UNIQUE,
                    size_bytes INTEGER NOT NULL DEFAULT 0,
                    status     TEXT NOT NULL DEFAULT 'active'
                               CHECK(status IN ('active', 'trashed', 'permanent', 'gone')),
                    trashed_at TEXT,
                    first_seen TEXT NOT NULL DEFAULT (datetime('now')),
                    last_seen  TEXT NOT NULL DEFAULT (datetime('now'))
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS marks (
                    user_id   INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    media_id  INTEGER NOT NULL REFERENCES media(id) ON DELETE CASCADE,
                    marked_at TEXT NOT NULL DEFAULT (datetime('now')),
                    PRIMARY KEY (user_id, media_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS permanent_owners (
                    media_id     INTEGER PRIMARY KEY REFERENCES media(id) ON DELETE CASCADE,
                    user_id      INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    persisted_at TEXT NOT NULL DEFAULT (datetime('now'))
                )
                """
            )

            # Additive migrations
            cursor = conn.execute("PRAGMA table_info(media)")
            columns = [info[1] for info in cursor.fetchall()]

            if "poster_path" not in columns:
                conn.execute("ALTER TABLE media ADD COLUMN poster_path TEXT")
                logger.info("Migrated media table: added poster_path")

            conn.execute("CREATE INDEX IF NOT EXISTS idx_media_status ON media(status)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_marks_media ON marks(media_id)")

    def get_connection(self) -> sqlite3.Connection:
        # :memory: must reuse one connection or every call sees a fresh empty DB.
        if self.is_memory:
            if self._memory_conn is None:
                self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)
                self._memory_conn.row_factory = sqlite3.Row
                self._memory_conn.execute("PRAGMA foreign_keys = ON")
            return self._memory_conn

        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connection(self):
        """
        Yields a connection inside a transaction. Commits on success, rolls back
        on error and reports sqlite errors as StoreFailure.
        """
        if self.is_memory:
            self._memory_lock.acquire()
        conn = None
        try:
            conn = self.get_connection()
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            if conn is not None:
                conn.rollback()
            raise StoreFailure(f"Database error: {e}", e)
        except Exception:
            if conn is not None:
                conn.rollback()
            raise
        finally:
            if self.is_memory:
                self._memory_lock.release()
            elif conn is not None:
                conn.close()
