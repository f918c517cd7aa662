# Copyright (c) 2025 Trae AI. All rights reserved.

import logging
from datetime import timedelta
from typing import List, Optional
from shelfkeeper.core.errors import FilesystemFailure, InvalidState, LifecycleError, NoMatchingRoot
from shelfkeeper.core.file_ops import move_path, prune_empty_parents, remove_tree
from shelfkeeper.core.models import MediaStatus, MediaView, utcnow
from shelfkeeper.core.paths import PathResolver
from shelfkeeper.infrastructure.db.catalog import Catalog

logger = logging.getLogger(__name__)


class TrashService:
    """
    Quorum marking and the trash side of the lifecycle:
    active -> trashed -> (active | gone).

    Every filesystem move happens before its status write, and the write is a
    compare-and-swap on the expected prior status. A failed move leaves the
    catalog untouched; a lost race becomes a no-op.
    """

    def __init__(self, config, catalog: Catalog, resolver: PathResolver):
        self.config = config
        self.catalog = catalog
        self.resolver = resolver

    @property
    def dry_run(self) -> bool:
        return bool(getattr(self.config, "dry_run", False))

    def mark(self, media_id: int, user_id: int) -> MediaView:
        item = self.catalog.require(media_id)
        if item.status != MediaStatus.ACTIVE:
            raise InvalidState(f"cannot mark media in status {item.status.value}", item.status.value)

        if not self.catalog.marks.add(user_id, media_id):
            # Either already marked, or the item left 'active' since we read it.
            current = self.catalog.require(media_id)
            if current.status != MediaStatus.ACTIVE:
                raise InvalidState(f"cannot mark media in status {current.status.value}", current.status.value)

        logger.info(f"[User Action] User {user_id} marked '{item.title}' ({item.path})")
        self.check_and_trash(media_id)
        return self.catalog.view(media_id, user_id)

    def unmark(self, media_id: int, user_id: int) -> MediaView:
        item = self.catalog.require(media_id)
        if item.status != MediaStatus.ACTIVE:
            raise InvalidState(f"cannot unmark media in status {item.status.value}", item.status.value)

        if self.catalog.marks.remove(user_id, media_id):
            logger.info(f"[User Action] User {user_id} unmarked '{item.title}' ({item.path})")
        return self.catalog.view(media_id, user_id)

    def check_and_trash(self, media_id: int) -> bool:
        """Moves the item to trash if every current user has marked it."""
        if self.catalog.marks.all_users_marked(media_id):
            return self.move_to_trash(media_id)
        return False

    def move_to_trash(self, media_id: int, now=None) -> bool:
        item = self.catalog.require(media_id)
        if item.status != MediaStatus.ACTIVE:
            logger.debug(f"Skipping trash move for {item.path}: status is {item.status.value}")
            return False

        source = item.fs_path
        root = self.resolver.root_for(source)
        dest = self.resolver.trash_location(source)

        try:
            move_path(source, dest, self.dry_run)
        except FilesystemFailure:
            if self._left_status(media_id, MediaStatus.ACTIVE):
                return False
            raise

        if not self.catalog.media.transition(media_id, MediaStatus.ACTIVE, MediaStatus.TRASHED, now=now):
            logger.warning(f"Status of {item.path} changed while it was moved to trash")
            return False

        prune_empty_parents(source, root, self.dry_run)
        logger.info(f"Moved to trash: {source} -> {dest}")
        return True

    def rescue(self, media_id: int) -> MediaView:
        item = self.catalog.require(media_id)
        if item.status != MediaStatus.TRASHED:
            raise InvalidState(f"cannot rescue media in status {item.status.value}", item.status.value)

        original = item.fs_path
        trash_location = self.resolver.trash_location(original)
        trash_root = self.resolver.trash_root(self.resolver.root_for(original))

        if not self.dry_run and not trash_location.exists():
            raise FilesystemFailure(f"Cannot rescue: file no longer exists in trash at {trash_location}")

        try:
            move_path(trash_location, original, self.dry_run)
        except FilesystemFailure:
            if self._left_status(media_id, MediaStatus.TRASHED):
                return self.catalog.view(media_id)
            raise

        if self.catalog.media.transition(media_id, MediaStatus.TRASHED, MediaStatus.ACTIVE, clear_marks=True):
            prune_empty_parents(trash_location, trash_root, self.dry_run)
            logger.info(f"[User Action] Rescued from trash: {original}")
        else:
            logger.warning(f"Status of {original} changed while it was rescued")
        return self.catalog.view(media_id)

    def purge_expired(self, now=None) -> int:
        """
        Deletes trash copies older than the grace period and marks them gone.
        A failed delete leaves the item trashed for the next cycle.
        """
        now = now or utcnow()
        cutoff = now - timedelta(days=self.config.grace_period_days)
        purged = 0

        for item in self.catalog.media.list_expired_trash(cutoff):
            try:
                trash_location = self.resolver.trash_location(item.path)
                trash_root = self.resolver.trash_root(self.resolver.root_for(item.path))
                remove_tree(trash_location, self.dry_run)
            except LifecycleError as e:
                logger.error(f"Failed to purge {item.path}: {e}")
                continue

            if self.catalog.media.transition(item.id, MediaStatus.TRASHED, MediaStatus.GONE, clear_marks=True):
                prune_empty_parents(trash_location, trash_root, self.dry_run)
                purged += 1
                logger.info(f"Permanently deleted: {item.path}")

        if purged:
            logger.info(f"Cleaned up {purged} expired trash items")
        return purged

    def cleanup_missing_trash(self) -> int:
        """Trashed items whose trash copy was removed by hand become gone."""
        if self.dry_run:
            logger.debug("DRY RUN: skipping missing-trash check, nothing was moved to trash")
            return 0

        repaired = 0
        for item in self.catalog.media.list_by_status(MediaStatus.TRASHED):
            try:
                trash_location = self.resolver.trash_location(item.path)
            except NoMatchingRoot:
                logger.warning(f"Skipping missing-trash check for {item.path}: no matching library root configured")
                continue
            if trash_location.exists():
                continue
            if self.catalog.media.transition(item.id, MediaStatus.TRASHED, MediaStatus.GONE, clear_marks=True):
                repaired += 1
                logger.info(f"Trashed item missing from disk, marked gone: {item.path}")
        return repaired

    def sweep_quorum(self) -> List[int]:
        """
        Re-evaluates quorum for every active item, e.g. after a user was
        removed. Failures are logged per item.
        """
        trashed = []
        for media_id in self.catalog.marks.active_ids_with_quorum():
            try:
                if self.move_to_trash(media_id):
                    trashed.append(media_id)
            except LifecycleError as e:
                logger.error(f"Failed to trash media {media_id} after quorum sweep: {e}")
        return trashed

    def _left_status(self, media_id: int, expected: MediaStatus) -> bool:
        # After a failed move: did another caller already complete the transition?
        current = self.catalog.media.get(media_id)
        if current is not None and current.status != expected:
            logger.info(f"Media {media_id} already left status {expected.value}; treating as no-op")
            return True
        return False

    def view(self, media_id: int, user_id: Optional[int] = None) -> MediaView:
        return self.catalog.view(media_id, user_id)
