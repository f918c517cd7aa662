# Copyright (c) 2025 Trae AI. All rights reserved.

import logging
from typing import Dict, Optional
from pydantic import BaseModel, Field
from shelfkeeper.core.models import utcnow
from shelfkeeper.infrastructure.db.catalog import Catalog
from .scan_service import ScanService
from .trash_service import TrashService

logger = logging.getLogger(__name__)


class ReconcileReport(BaseModel):
    marked_gone: int = 0
    marks_removed: int = 0
    missing_trash: int = 0
    purged: int = 0
    sessions_expired: int = 0
    errors: Dict[str, str] = Field(default_factory=dict)


class ReconcileService:
    """
    Periodic repair of drift between disk and catalog. Each step runs even if
    an earlier one failed; errors are logged, never raised.
    """

    def __init__(self, config, catalog: Catalog, scan_service: ScanService, trash_service: TrashService,
                 session_store=None):
        self.config = config
        self.catalog = catalog
        self.scan_service = scan_service
        self.trash_service = trash_service
        self.session_store = session_store if session_store is not None else catalog.sessions

    def run_cycle(self, now=None) -> ReconcileReport:
        now = now or utcnow()
        report = ReconcileReport()
        logger.info("Starting reconciliation cycle...")

        def step(name, func):
            try:
                return func()
            except Exception as e:
                logger.error(f"Reconcile step '{name}' failed: {e}")
                report.errors[name] = str(e)
                return None

        # 1. Rescan: directories removed or renamed outside the app
        scan = step("scan", self.scan_service.full_scan)
        if scan is not None:
            report.marked_gone = scan.marked_gone

        # 2. Marks on gone items
        removed = step("gone_marks", self.catalog.marks.cleanup_gone)
        if removed:
            report.marks_removed = removed
            logger.info(f"Cleaned up {removed} marks for gone media")

        # 3. Trash emptied by hand
        report.missing_trash = step("missing_trash", self.trash_service.cleanup_missing_trash) or 0

        # 4. Grace period
        report.purged = step("purge", lambda: self.trash_service.purge_expired(now=now)) or 0

        # 5. Login sessions
        report.sessions_expired = step("sessions", lambda: self._expire_sessions(now)) or 0

        if report.errors:
            logger.warning(f"Reconciliation finished with {len(report.errors)} failed step(s)")
        else:
            logger.info("Reconciliation cycle complete")
        return report

    def _expire_sessions(self, now) -> Optional[int]:
        return self.session_store.expire_stale(now=now)
