# Copyright (c) 2025 Trae AI. All rights reserved.

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Set
from pydantic import BaseModel, Field
from shelfkeeper.core.classifier import Classifier
from shelfkeeper.core.models import MediaType, ShowClassification
from shelfkeeper.core.paths import PathResolver
from shelfkeeper.core.scanner import Scanner
from shelfkeeper.infrastructure.db.repository import MediaRepository

logger = logging.getLogger(__name__)


class ScanReport(BaseModel):
    seen_paths: List[str] = Field(default_factory=list)
    scanned_roots: List[Path] = Field(default_factory=list)
    failed_roots: List[Path] = Field(default_factory=list)
    marked_gone: int = 0


class ScanService:
    def __init__(self, config, media_repo: MediaRepository):
        self.config = config
        self.media_repo = media_repo
        self.scanner = Scanner(blacklist=getattr(config, "blacklist", None))
        self.classifier = Classifier()
        self.resolver = PathResolver(getattr(config, "library_roots", None) or [])

    def scan_directory(self, root: Path) -> List[str]:
        """
        Classifies every child of ``root``, upserts one catalog row per movie or
        season and returns the discovered paths. Raises OSError when the root
        itself cannot be listed.
        """
        seen_paths = []
        reserved = self._reserved_dirs()
        for child in self.scanner.list_children(Path(root)):
            if child in reserved:
                # A nested root or a trash/permanent sibling is never media itself.
                logger.debug(f"Skipping library directory {child} during scan of {root}")
                continue
            classification = self.classifier.classify(child)

            if isinstance(classification, ShowClassification):
                for season_number, season_path in classification.seasons:
                    self.media_repo.upsert(
                        MediaType.TV_SEASON,
                        classification.title,
                        None,
                        season_number,
                        season_path,
                        self.scanner.dir_size(season_path),
                    )
                    seen_paths.append(str(season_path))
            else:
                self.media_repo.upsert(
                    MediaType.MOVIE,
                    classification.title,
                    classification.year,
                    None,
                    child,
                    self.scanner.dir_size(child),
                )
                seen_paths.append(str(child))

        logger.debug(f"Scanned {root}: {len(seen_paths)} entries")
        return seen_paths

    def _reserved_dirs(self) -> Set[Path]:
        roots = self.resolver.roots
        return set(roots) | set(self.resolver.all_trash_roots()) | set(self.resolver.all_permanent_roots())

    def full_scan(self, roots: Optional[Iterable[Path]] = None, update_progress=None) -> ScanReport:
        """
        Scans every root, then marks active items that were not seen as gone.

        A root that is missing or unreadable is recorded as failed and items
        under it are left untouched, so a transient mount problem cannot be
        mistaken for an empty library. A root that lists fine but is empty
        does mark its items gone.
        update_progress: callable(percentage, message)
        """
        def report(p, msg):
            if update_progress:
                update_progress(p, msg)

        roots = [Path(r) for r in (roots if roots is not None else self.config.library_roots)]
        result = ScanReport()

        for i, root in enumerate(roots):
            report(int(i / max(len(roots), 1) * 90), f"Scanning {root}...")
            logger.info(f"Scanning media directory: {root}")
            if not root.is_dir():
                logger.error(f"Library root is missing or not a directory: {root}")
                result.failed_roots.append(root)
                continue
            try:
                result.seen_paths.extend(self.scan_directory(root))
                result.scanned_roots.append(root)
            except OSError as e:
                logger.error(f"Error scanning {root}: {e}")
                result.failed_roots.append(root)

        if result.failed_roots:
            logger.warning(
                f"Skipping gone-marking under {len(result.failed_roots)} root(s) that failed to scan: "
                f"{', '.join(str(r) for r in result.failed_roots)}"
            )

        result.marked_gone = self.media_repo.mark_gone_except(result.seen_paths, result.failed_roots)
        if result.marked_gone:
            logger.info(f"Marked {result.marked_gone} missing item(s) as gone")

        report(100, "Scan complete")
        logger.info(f"Scan complete, found {len(result.seen_paths)} media entries")
        return result
