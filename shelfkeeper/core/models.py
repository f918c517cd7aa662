# Copyright (c) 2025 Trae AI. All rights reserved.

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field

# SQLite datetime('now') layout, always UTC.
DB_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(DB_TIME_FORMAT)


class MediaType(Enum):
    MOVIE = "movie"
    TV_SEASON = "tv_season"


class MediaStatus(Enum):
    ACTIVE = "active"
    TRASHED = "trashed"
    PERMANENT = "permanent"
    GONE = "gone"


class MediaItem(BaseModel):
    """
    One catalogued unit: a movie directory or a single season directory of a show.
    """

    id: int
    media_type: MediaType
    title: str
    year: Optional[int] = None
    season: Optional[int] = None
    path: str
    size_bytes: int = 0
    status: MediaStatus = MediaStatus.ACTIVE
    trashed_at: Optional[str] = None  # set only while trashed
    first_seen: str
    last_seen: str
    poster_path: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "MediaItem":
        return cls(**dict(row))

    @property
    def fs_path(self) -> Path:
        return Path(self.path)


class PermanentOwner(BaseModel):
    media_id: int
    user_id: int
    persisted_at: str


class User(BaseModel):
    id: int
    username: str
    is_admin: bool = False
    created_at: str


class MediaView(BaseModel):
    """
    What the HTTP layer renders after an operation: the refreshed item plus quorum progress.
    """

    item: MediaItem
    mark_count: int
    total_users: int
    marked: bool = False
    owner_id: Optional[int] = None


class MovieClassification(BaseModel):
    title: str
    year: Optional[int] = None
    path: Path


class ShowClassification(BaseModel):
    title: str
    path: Path
    seasons: List[Tuple[int, Path]] = Field(default_factory=list)
