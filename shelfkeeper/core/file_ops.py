# Copyright (c) 2025 Trae AI. All rights reserved.

import logging
import shutil
from pathlib import Path
from .errors import FilesystemFailure

logger = logging.getLogger(__name__)


def move_path(src: Path, dst: Path, dry_run: bool = False):
    """
    Moves a media directory, creating the destination's parents.

    shutil.move renames when possible and falls back to copy+delete across
    devices. An existing destination is refused: shutil.move would otherwise
    nest the source inside it.
    """
    if dry_run:
        logger.info(f"DRY RUN: would move {src} -> {dst}")
        return

    if not src.exists():
        raise FilesystemFailure(f"source does not exist: {src}")
    if dst.exists():
        raise FilesystemFailure(f"destination already exists: {dst}")

    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), str(dst))
    except OSError as e:
        raise FilesystemFailure(f"failed to move {src} -> {dst}: {e}", e)


def prune_empty_parents(path: Path, stop_at: Path, dry_run: bool = False):
    """
    Removes now-empty directories above ``path`` up to, not including, ``stop_at``.
    Leaves ``Show/`` behind neither in the library (where it would rescan as a
    movie) nor in the trash once its last season has moved out.
    """
    if dry_run:
        return

    current = path.parent
    while current != stop_at and stop_at in current.parents:
        try:
            current.rmdir()
        except OSError:
            # Not empty or already gone.
            break
        logger.debug(f"Removed empty directory: {current}")
        current = current.parent


def remove_tree(path: Path, dry_run: bool = False):
    if dry_run:
        logger.info(f"DRY RUN: would delete {path}")
        return

    if not path.exists() and not path.is_symlink():
        return

    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as e:
        raise FilesystemFailure(f"failed to delete {path}: {e}", e)
