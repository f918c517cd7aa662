# Copyright (c) 2025 Trae AI. All rights reserved.

from typing import Optional
from shelfkeeper.core.errors import NotFound
from shelfkeeper.core.models import MediaItem, MediaStatus, MediaView
from .database import Database
from .repository import (
    MarkRepository,
    MediaRepository,
    PermanentRepository,
    SessionRepository,
    UserRepository,
)


class Catalog:
    """
    The repositories over one database, shared by every service.
    """

    def __init__(self, db: Database):
        self.db = db
        self.media = MediaRepository(db)
        self.marks = MarkRepository(db)
        self.permanent = PermanentRepository(db)
        self.users = UserRepository(db)
        self.sessions = SessionRepository(db)

    def require(self, media_id: int) -> MediaItem:
        item = self.media.get(media_id)
        if item is None:
            raise NotFound(media_id)
        return item

    def view(self, media_id: int, user_id: Optional[int] = None) -> MediaView:
        item = self.require(media_id)
        owner = self.permanent.get_owner(media_id) if item.status == MediaStatus.PERMANENT else None
        return MediaView(
            item=item,
            mark_count=self.marks.count(media_id),
            total_users=self.users.count(),
            marked=self.marks.has_marked(user_id, media_id) if user_id is not None else False,
            owner_id=owner.user_id if owner else None,
        )
