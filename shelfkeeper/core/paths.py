# Copyright (c) 2025 Trae AI. All rights reserved.

import logging
import os
from pathlib import Path
from typing import Iterable, List, Union
from .errors import FilesystemFailure, NoMatchingRoot

TRASH_SUFFIX = "_trash"
PERMANENT_SUFFIX = "_permanent"

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class PathResolver:
    """
    Maps item paths onto their owning library root and the root's sibling
    trash/permanent directories.

    Siblings sit next to the root (``/data/Movies`` -> ``/data/Movies_trash``)
    rather than inside it, so rescans and size totals of the root never see
    trashed or permanent content.
    """

    def __init__(self, roots: Iterable[PathLike]):
        self.roots: List[Path] = [Path(r) for r in roots]

    def root_for(self, path: PathLike) -> Path:
        """Return the most specific configured root containing ``path``."""
        target = Path(path)
        best = None
        for root in self.roots:
            if not _is_within(target, root):
                continue
            if best is None or len(root.parts) > len(best.parts):
                best = root
        if best is None:
            raise NoMatchingRoot(target)
        return best

    @staticmethod
    def sibling(root: Path, suffix: str) -> Path:
        if not root.name or root.parent == root:
            raise NoMatchingRoot(root)
        return root.parent / f"{root.name}{suffix}"

    def trash_root(self, root: Path) -> Path:
        return self.sibling(root, TRASH_SUFFIX)

    def permanent_root(self, root: Path) -> Path:
        return self.sibling(root, PERMANENT_SUFFIX)

    def relocate(self, path: PathLike, suffix: str) -> Path:
        """Rejoin ``path`` under the sibling of its root, keeping the relative structure."""
        target = Path(path)
        root = self.root_for(target)
        if target == root:
            # A root is never an item; relocating it would move the whole library.
            raise NoMatchingRoot(target)
        return self.sibling(root, suffix) / target.relative_to(root)

    def trash_location(self, path: PathLike) -> Path:
        return self.relocate(path, TRASH_SUFFIX)

    def permanent_location(self, path: PathLike) -> Path:
        return self.relocate(path, PERMANENT_SUFFIX)

    def all_trash_roots(self) -> List[Path]:
        return sorted({self.trash_root(r) for r in self.roots})

    def all_permanent_roots(self) -> List[Path]:
        return sorted({self.permanent_root(r) for r in self.roots})


def _is_within(path: Path, root: Path) -> bool:
    # Component-wise, so /media/extra2 is not under /media/extra.
    return path.parts[: len(root.parts)] == root.parts


def ensure_dir_accessible(path: Path):
    if not path.is_dir():
        raise FilesystemFailure(f"path is not a directory: {path}")
    if not os.access(path, os.R_OK | os.X_OK):
        raise FilesystemFailure(f"directory not readable ({path})")
    if not os.access(path, os.W_OK):
        raise FilesystemFailure(f"directory not writable ({path})")


def ensure_library_layout(resolver: PathResolver):
    """
    Startup check: every root is a usable directory and its trash/permanent
    siblings exist (created on demand).
    """
    for root in resolver.roots:
        ensure_dir_accessible(root)

    for sibling in resolver.all_trash_roots() + resolver.all_permanent_roots():
        if not sibling.exists():
            try:
                sibling.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise FilesystemFailure(f"failed to create derived directory {sibling}: {e}", e)
            logger.info(f"Created directory: {sibling}")
        ensure_dir_accessible(sibling)
