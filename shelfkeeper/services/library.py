# Copyright (c) 2025 Trae AI. All rights reserved.

import logging
from pathlib import Path
from shelfkeeper.core.config import Config
from shelfkeeper.core.paths import PathResolver
from shelfkeeper.infrastructure.db.catalog import Catalog
from shelfkeeper.infrastructure.db.database import Database
from .permanent_service import PermanentService
from .reconcile_service import ReconcileService
from .scan_service import ScanService
from .trash_service import TrashService
from .user_service import UserService

logger = logging.getLogger(__name__)


class Library:
    """
    Wires the catalog and lifecycle services for one configuration. Shared by
    the web server and the CLI.
    """

    def __init__(self, config: Config):
        self.config = config
        self.db = Database(Path(config.database_path))
        self.catalog = Catalog(self.db)
        self.resolver = PathResolver(config.library_roots)

        self.scan_service = ScanService(config, self.catalog.media)
        self.trash_service = TrashService(config, self.catalog, self.resolver)
        self.permanent_service = PermanentService(config, self.catalog, self.resolver)
        self.user_service = UserService(self.catalog, self.permanent_service, self.trash_service)
        self.reconcile_service = ReconcileService(config, self.catalog, self.scan_service, self.trash_service)

        if config.dry_run:
            logger.warning("*** DRY-RUN MODE ACTIVE - no files will be moved or deleted ***")
            logger.warning("Database state will diverge from disk. Back up your database before using this mode.")
