# Copyright (c) 2025 Trae AI. All rights reserved.

import os
import secrets
from datetime import timedelta
from pathlib import Path
from typing import Iterable, List, Optional, Tuple
from shelfkeeper.core.models import (
    MediaItem,
    MediaStatus,
    MediaType,
    PermanentOwner,
    User,
    to_db_time,
    utcnow,
)
from .database import Database


def _prefix_clause(paths: Iterable[str]) -> Tuple[str, list]:
    """
    SQL matching rows whose path equals or lies under any of ``paths``.
    substr() is used instead of LIKE because media names contain '_' and '%'.
    """
    clauses = []
    params = []
    for p in paths:
        prefix = str(p).rstrip(os.sep) + os.sep
        clauses.append("(path = ? OR substr(path, 1, ?) = ?)")
        params.extend([str(p).rstrip(os.sep), len(prefix), prefix])
    if not clauses:
        return "0", []
    return "(" + " OR ".join(clauses) + ")", params


class MediaRepository:
    def __init__(self, db: Database):
        self.db = db

    def get(self, media_id: int) -> Optional[MediaItem]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM media WHERE id = ?", (media_id,)).fetchone()
            return MediaItem.from_row(row) if row else None

    def get_by_path(self, path) -> Optional[MediaItem]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM media WHERE path = ?", (str(path),)).fetchone()
            return MediaItem.from_row(row) if row else None

    def upsert(
        self,
        media_type: MediaType,
        title: str,
        year: Optional[int],
        season: Optional[int],
        path,
        size_bytes: int,
        now=None,
    ) -> int:
        """
        Inserts a newly discovered item or refreshes size/last_seen of a known one.
        A path that reappears after being gone becomes active again; other
        statuses are left alone.
        """
        seen_at = to_db_time(now or utcnow())
        with self.db.connection() as conn:
            conn.execute(
                """
                INSERT INTO media (media_type, title, year, season, path, size_bytes, first_seen, last_seen)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    last_seen = excluded.last_seen,
                    size_bytes = excluded.size_bytes,
                    status = CASE WHEN media.status = 'gone' THEN 'active' ELSE media.status END,
                    trashed_at = CASE WHEN media.status = 'gone' THEN NULL ELSE media.trashed_at END
                """,
                (media_type.value, title, year, season, str(path), size_bytes, seen_at, seen_at),
            )
            row = conn.execute("SELECT id FROM media WHERE path = ?", (str(path),)).fetchone()
            return row["id"]

    def list_all(self, media_type: Optional[MediaType] = None) -> List[MediaItem]:
        query = "SELECT * FROM media"
        params = []
        if media_type:
            query += " WHERE media_type = ?"
            params.append(media_type.value)
        query += " ORDER BY title, season"
        with self.db.connection() as conn:
            return [MediaItem.from_row(r) for r in conn.execute(query, tuple(params)).fetchall()]

    def list_by_status(self, status: MediaStatus, media_type: Optional[MediaType] = None) -> List[MediaItem]:
        query = "SELECT * FROM media WHERE status = ?"
        params = [status.value]
        if media_type:
            query += " AND media_type = ?"
            params.append(media_type.value)
        if status == MediaStatus.TRASHED:
            query += " ORDER BY trashed_at DESC"
        else:
            query += " ORDER BY title, season"
        with self.db.connection() as conn:
            return [MediaItem.from_row(r) for r in conn.execute(query, tuple(params)).fetchall()]

    def list_visible_for_user(self, media_type: MediaType, user_id: int) -> List[MediaItem]:
        """Active items, plus permanent items owned by ``user_id``."""
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT m.* FROM media m
                LEFT JOIN permanent_owners po ON po.media_id = m.id
                WHERE m.media_type = ?
                  AND (m.status = 'active' OR (m.status = 'permanent' AND po.user_id = ?))
                ORDER BY m.title, m.season
                """,
                (media_type.value, user_id),
            ).fetchall()
            return [MediaItem.from_row(r) for r in rows]

    def list_expired_trash(self, cutoff) -> List[MediaItem]:
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM media WHERE status = 'trashed' AND trashed_at < ? ORDER BY trashed_at",
                (to_db_time(cutoff),),
            ).fetchall()
            return [MediaItem.from_row(r) for r in rows]

    def mark_gone_except(self, seen_paths: Iterable[str], protected_roots: Iterable[Path] = ()) -> int:
        """
        Marks every active item whose path was not seen as gone, except items
        under ``protected_roots`` (roots whose scan failed this round).
        """
        protected_sql, protected_params = _prefix_clause(protected_roots)
        with self.db.connection() as conn:
            # TEMP tables are connection-local; avoids the SQLite variable limit on big libraries.
            conn.execute("CREATE TEMP TABLE IF NOT EXISTS _seen_paths (path TEXT NOT NULL)")
            conn.execute("DELETE FROM _seen_paths")
            conn.executemany("INSERT INTO _seen_paths (path) VALUES (?)", ((str(p),) for p in seen_paths))
            cursor = conn.execute(
                f"""
                UPDATE media SET status = 'gone', trashed_at = NULL
                WHERE status = 'active'
                  AND path NOT IN (SELECT path FROM _seen_paths)
                  AND NOT {protected_sql}
                """,
                tuple(protected_params),
            )
            conn.execute("DELETE FROM _seen_paths")
            return cursor.rowcount

    def list_under(self, path, status: MediaStatus) -> List[MediaItem]:
        """Items at ``path`` or below it (a removed show directory covers its seasons)."""
        clause, params = _prefix_clause([path])
        with self.db.connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM media WHERE status = ? AND {clause} ORDER BY path",
                (status.value, *params),
            ).fetchall()
            return [MediaItem.from_row(r) for r in rows]

    def transition(
        self,
        media_id: int,
        expected: MediaStatus,
        new: MediaStatus,
        now=None,
        clear_marks: bool = False,
    ) -> bool:
        """
        Compare-and-swap status update. Returns False when the row was not in
        ``expected`` status, so a duplicate trigger becomes a no-op.
        """
        trashed_at = to_db_time(now or utcnow()) if new == MediaStatus.TRASHED else None
        with self.db.connection() as conn:
            cursor = conn.execute(
                "UPDATE media SET status = ?, trashed_at = ? WHERE id = ? AND status = ?",
                (new.value, trashed_at, media_id, expected.value),
            )
            changed = cursor.rowcount == 1
            if changed and clear_marks:
                conn.execute("DELETE FROM marks WHERE media_id = ?", (media_id,))
            return changed

    def set_poster(self, media_id: int, poster_path: str):
        with self.db.connection() as conn:
            conn.execute("UPDATE media SET poster_path = ? WHERE id = ?", (poster_path, media_id))

    def count_by_status(self, status: MediaStatus) -> int:
        with self.db.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM media WHERE status = ?", (status.value,)).fetchone()[0]

    def total_size(self, status: MediaStatus) -> int:
        with self.db.connection() as conn:
            return conn.execute(
                "SELECT COALESCE(SUM(size_bytes), 0) FROM media WHERE status = ?", (status.value,)
            ).fetchone()[0]


class MarkRepository:
    def __init__(self, db: Database):
        self.db = db

    def add(self, user_id: int, media_id: int) -> bool:
        """
        Records a mark, only while the item is active. Returns False if the
        mark already existed or the item is not active.
        """
        with self.db.connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO marks (user_id, media_id)
                SELECT ?, id FROM media WHERE id = ? AND status = 'active'
                """,
                (user_id, media_id),
            )
            return cursor.rowcount == 1

    def remove(self, user_id: int, media_id: int) -> bool:
        with self.db.connection() as conn:
            cursor = conn.execute("DELETE FROM marks WHERE user_id = ? AND media_id = ?", (user_id, media_id))
            return cursor.rowcount == 1

    def clear(self, media_id: int) -> int:
        with self.db.connection() as conn:
            return conn.execute("DELETE FROM marks WHERE media_id = ?", (media_id,)).rowcount

    def count(self, media_id: int) -> int:
        with self.db.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM marks WHERE media_id = ?", (media_id,)).fetchone()[0]

    def has_marked(self, user_id: int, media_id: int) -> bool:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM marks WHERE user_id = ? AND media_id = ?", (user_id, media_id)
            ).fetchone()
            return row is not None

    def media_ids_for_user(self, user_id: int) -> List[int]:
        with self.db.connection() as conn:
            rows = conn.execute("SELECT media_id FROM marks WHERE user_id = ?", (user_id,)).fetchall()
            return [r["media_id"] for r in rows]

    def all_users_marked(self, media_id: int) -> bool:
        """
        Quorum: no current user is missing a mark on this item. An item
        nobody has marked never reaches quorum, even with zero users.
        """
        with self.db.connection() as conn:
            row = conn.execute(
                """
                SELECT
                    (SELECT COUNT(*) FROM users
                     WHERE id NOT IN (SELECT user_id FROM marks WHERE media_id = ?)) AS unmarked,
                    (SELECT COUNT(*) FROM marks WHERE media_id = ?) AS marked
                """,
                (media_id, media_id),
            ).fetchone()
            return row["unmarked"] == 0 and row["marked"] > 0

    def active_ids_with_quorum(self) -> List[int]:
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT m.id FROM media m
                WHERE m.status = 'active'
                  AND EXISTS (SELECT 1 FROM marks mk WHERE mk.media_id = m.id)
                  AND NOT EXISTS (
                      SELECT 1 FROM users u
                      WHERE u.id NOT IN (SELECT mk.user_id FROM marks mk WHERE mk.media_id = m.id)
                  )
                ORDER BY m.id
                """
            ).fetchall()
            return [r["id"] for r in rows]

    def cleanup_gone(self) -> int:
        with self.db.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM marks WHERE media_id IN (SELECT id FROM media WHERE status = 'gone')"
            )
            return cursor.rowcount


class PermanentRepository:
    def __init__(self, db: Database):
        self.db = db

    def claim(self, media_id: int, user_id: int) -> bool:
        """
        active -> permanent, recording ``user_id`` as sole owner and dropping
        every mark, in one transaction.
        """
        with self.db.connection() as conn:
            cursor = conn.execute(
                "UPDATE media SET status = 'permanent', trashed_at = NULL WHERE id = ? AND status = 'active'",
                (media_id,),
            )
            if cursor.rowcount != 1:
                return False
            conn.execute(
                """
                INSERT INTO permanent_owners (media_id, user_id, persisted_at)
                VALUES (?, ?, datetime('now'))
                ON CONFLICT(media_id) DO UPDATE SET
                    user_id = excluded.user_id,
                    persisted_at = excluded.persisted_at
                """,
                (media_id, user_id),
            )
            conn.execute("DELETE FROM marks WHERE media_id = ?", (media_id,))
            return True

    def release(self, media_id: int) -> bool:
        """permanent -> active, clearing ownership and marks."""
        with self.db.connection() as conn:
            cursor = conn.execute(
                "UPDATE media SET status = 'active', trashed_at = NULL WHERE id = ? AND status = 'permanent'",
                (media_id,),
            )
            if cursor.rowcount != 1:
                return False
            conn.execute("DELETE FROM permanent_owners WHERE media_id = ?", (media_id,))
            conn.execute("DELETE FROM marks WHERE media_id = ?", (media_id,))
            return True

    def get_owner(self, media_id: int) -> Optional[PermanentOwner]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM permanent_owners WHERE media_id = ?", (media_id,)).fetchone()
            return PermanentOwner(**dict(row)) if row else None

    def clear_owner(self, media_id: int):
        with self.db.connection() as conn:
            conn.execute("DELETE FROM permanent_owners WHERE media_id = ?", (media_id,))

    def media_ids_for_owner(self, user_id: int) -> List[int]:
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT media_id FROM permanent_owners WHERE user_id = ? ORDER BY media_id", (user_id,)
            ).fetchall()
            return [r["media_id"] for r in rows]


class UserRepository:
    def __init__(self, db: Database):
        self.db = db

    def create(self, username: str, is_admin: bool = False) -> int:
        with self.db.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO users (username, is_admin) VALUES (?, ?)", (username, int(is_admin))
            )
            return cursor.lastrowid

    def get(self, user_id: int) -> Optional[User]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return User(**dict(row)) if row else None

    def get_by_username(self, username: str) -> Optional[User]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
            return User(**dict(row)) if row else None

    def list_all(self) -> List[User]:
        with self.db.connection() as conn:
            return [User(**dict(r)) for r in conn.execute("SELECT * FROM users ORDER BY id").fetchall()]

    def delete(self, user_id: int) -> bool:
        with self.db.connection() as conn:
            return conn.execute("DELETE FROM users WHERE id = ?", (user_id,)).rowcount == 1

    def count(self) -> int:
        with self.db.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]


class SessionRepository:
    """Login sessions; only expiry matters to the lifecycle engine."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, user_id: int, ttl_hours: int = 720) -> str:
        token = secrets.token_urlsafe(32)
        expires_at = to_db_time(utcnow() + timedelta(hours=ttl_hours))
        with self.db.connection() as conn:
            conn.execute(
                "INSERT INTO sessions (token, user_id, expires_at) VALUES (?, ?, ?)",
                (token, user_id, expires_at),
            )
        return token

    def validate(self, token: str) -> Optional[int]:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT user_id FROM sessions WHERE token = ? AND expires_at > ?",
                (token, to_db_time(utcnow())),
            ).fetchone()
            return row["user_id"] if row else None

    def delete(self, token: str):
        with self.db.connection() as conn:
            conn.execute("DELETE FROM sessions WHERE token = ?", (token,))

    def expire_stale(self, now=None) -> int:
        with self.db.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM sessions WHERE expires_at <= ?", (to_db_time(now or utcnow()),)
            )
            return cursor.rowcount
