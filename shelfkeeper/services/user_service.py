# Copyright (c) 2025 Trae AI. All rights reserved.

import logging
from typing import List
from pydantic import BaseModel, Field
from shelfkeeper.core.errors import InvalidState
from shelfkeeper.core.models import User
from shelfkeeper.infrastructure.db.catalog import Catalog
from .permanent_service import PermanentService
from .trash_service import TrashService

logger = logging.getLogger(__name__)


class UserRemoval(BaseModel):
    user_id: int
    restored: List[int] = Field(default_factory=list)
    trashed: List[int] = Field(default_factory=list)


class UserService:
    """
    User bookkeeping that affects the lifecycle: the quorum is computed over
    the current user set, so adding or removing a user changes it.
    """

    def __init__(self, catalog: Catalog, permanent_service: PermanentService, trash_service: TrashService):
        self.catalog = catalog
        self.permanent_service = permanent_service
        self.trash_service = trash_service

    def create_user(self, username: str, is_admin: bool = False) -> User:
        if self.catalog.users.get_by_username(username):
            raise InvalidState(f"user '{username}' already exists")
        user_id = self.catalog.users.create(username, is_admin)
        logger.info(f"[User Action] Created user '{username}' (admin={is_admin})")
        return self.catalog.users.get(user_id)

    def seed_admin(self, username: str):
        if self.catalog.users.get_by_username(username):
            return
        self.create_user(username, is_admin=True)
        logger.info(f"Seeded initial admin user '{username}'")

    def delete_user(self, user_id: int) -> UserRemoval:
        """
        Removes a user. Their permanent items are restored first so nothing
        stays hidden behind an absent owner; then quorum is re-evaluated for
        every active item, because the departed user may have been the only
        one who had not marked.
        """
        result = UserRemoval(user_id=user_id)
        result.restored = self.permanent_service.restore_all_for_owner(user_id)

        if self.catalog.users.delete(user_id):
            logger.info(f"[User Action] Deleted user {user_id}")

        result.trashed = self.trash_service.sweep_quorum()
        if result.trashed:
            logger.info(f"Quorum reached for {len(result.trashed)} item(s) after removing user {user_id}")
        return result
