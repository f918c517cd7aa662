# Copyright (c) 2025 Trae AI. All rights reserved.

import logging
from typing import List
from shelfkeeper.core.errors import FilesystemFailure, Forbidden, InvalidState
from shelfkeeper.core.file_ops import move_path, prune_empty_parents
from shelfkeeper.core.models import MediaStatus, MediaView
from shelfkeeper.core.paths import PathResolver
from shelfkeeper.infrastructure.db.catalog import Catalog

logger = logging.getLogger(__name__)


class PermanentService:
    """
    Moves items between the library and its permanent sibling. A permanent item
    has exactly one owner and takes no part in quorum marking.
    """

    def __init__(self, config, catalog: Catalog, resolver: PathResolver):
        self.config = config
        self.catalog = catalog
        self.resolver = resolver

    @property
    def dry_run(self) -> bool:
        return bool(getattr(self.config, "dry_run", False))

    def persist(self, media_id: int, user_id: int) -> MediaView:
        item = self.catalog.require(media_id)
        if item.status != MediaStatus.ACTIVE:
            raise InvalidState(f"cannot persist media in status {item.status.value}", item.status.value)

        source = item.fs_path
        root = self.resolver.root_for(source)
        dest = self.resolver.permanent_location(source)

        try:
            move_path(source, dest, self.dry_run)
        except FilesystemFailure:
            current = self.catalog.media.get(media_id)
            if current is not None and current.status != MediaStatus.ACTIVE:
                raise InvalidState(f"cannot persist media in status {current.status.value}", current.status.value)
            raise

        if not self.catalog.permanent.claim(media_id, user_id):
            logger.warning(f"Status of {source} changed while it was moved to permanent storage")
        else:
            prune_empty_parents(source, root, self.dry_run)
            logger.info(f"[User Action] User {user_id} persisted media: {source} -> {dest}")
        return self.catalog.view(media_id, user_id)

    def unpersist(self, media_id: int, user_id: int) -> MediaView:
        item = self.catalog.require(media_id)
        if item.status != MediaStatus.PERMANENT:
            raise InvalidState(f"cannot unpersist media in status {item.status.value}", item.status.value)

        owner = self.catalog.permanent.get_owner(media_id)
        if owner is None or owner.user_id != user_id:
            raise Forbidden(f"media {media_id} is not owned by user {user_id}")

        if self._restore(media_id):
            logger.info(f"[User Action] User {user_id} unpersisted media: {item.path}")
        return self.catalog.view(media_id, user_id)

    def force_unpersist(self, media_id: int) -> bool:
        """Restores a permanent item without checking ownership."""
        return self._restore(media_id)

    def restore_all_for_owner(self, user_id: int) -> List[int]:
        """
        Force-restores every item owned by ``user_id``. Stops at the first
        failure, leaving the owner in place.
        """
        restored = []
        for media_id in self.catalog.permanent.media_ids_for_owner(user_id):
            if self.force_unpersist(media_id):
                restored.append(media_id)
        if restored:
            logger.info(f"Restored {len(restored)} permanent item(s) owned by user {user_id}")
        return restored

    def _restore(self, media_id: int) -> bool:
        item = self.catalog.require(media_id)
        if item.status != MediaStatus.PERMANENT:
            return False

        original = item.fs_path
        permanent_location = self.resolver.permanent_location(original)
        permanent_root = self.resolver.permanent_root(self.resolver.root_for(original))

        if not self.dry_run and not permanent_location.exists():
            raise FilesystemFailure(f"cannot unpersist: path missing at {permanent_location}")

        try:
            move_path(permanent_location, original, self.dry_run)
        except FilesystemFailure:
            current = self.catalog.media.get(media_id)
            if current is not None and current.status != MediaStatus.PERMANENT:
                return False
            raise

        if not self.catalog.permanent.release(media_id):
            logger.warning(f"Status of {original} changed while it was restored from permanent storage")
            return False

        prune_empty_parents(permanent_location, permanent_root, self.dry_run)
        logger.info(f"Unpersisted media: {permanent_location} -> {original}")
        return True

