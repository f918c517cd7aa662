# Copyright (c) 2025 Trae AI. All rights reserved.

import logging
import queue
import threading
from pathlib import Path
from typing import List, Optional, Tuple
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer
from shelfkeeper.core.errors import NoMatchingRoot
from shelfkeeper.core.models import MediaStatus
from shelfkeeper.core.paths import PathResolver
from shelfkeeper.infrastructure.db.catalog import Catalog
from shelfkeeper.services.scan_service import ScanService

CREATED = "created"
REMOVED = "removed"

LibraryEvent = Tuple[str, Path]


class LibraryEventHandler(FileSystemEventHandler):
    """
    Forwards watchdog notifications into a bounded queue. ``put`` blocks when
    the queue is full, which throttles the observer rather than losing events.
    """

    def __init__(self, events: queue.Queue):
        self.events = events

    def on_created(self, event):
        if event.is_directory:
            self.events.put((CREATED, Path(event.src_path)))

    def on_deleted(self, event):
        # A deleted path can no longer be stat'ed, so is_directory is unreliable here.
        self.events.put((REMOVED, Path(event.src_path)))

    def on_moved(self, event):
        self.events.put((REMOVED, Path(event.src_path)))
        if event.is_directory:
            self.events.put((CREATED, Path(event.dest_path)))


class LibraryWatcher:
    """
    Watches the library roots (non-recursively) and applies changes without
    waiting for the next reconciliation cycle.
    """

    def __init__(self, config, scan_service: ScanService, catalog: Catalog, resolver: PathResolver,
                 queue_size: int = 100):
        self.config = config
        self.scan_service = scan_service
        self.catalog = catalog
        self.resolver = resolver
        self.logger = logging.getLogger(__name__)

        self.events: queue.Queue = queue.Queue(maxsize=queue_size)
        self.handler = LibraryEventHandler(self.events)
        self.observer = None
        self.stop_event = threading.Event()
        self.worker_thread = None

    @property
    def roots(self) -> List[Path]:
        return self.resolver.roots

    def start(self):
        """Schedules the observer and starts the consumer thread."""
        if self.worker_thread and self.worker_thread.is_alive():
            self.logger.warning("LibraryWatcher is already running.")
            return

        self.observer = Observer()
        for root in self.roots:
            if root.exists():
                self.observer.schedule(self.handler, str(root), recursive=False)
                self.logger.info(f"Watching directory: {root}")
            else:
                self.logger.warning(f"Media directory does not exist, skipping watch: {root}")
        self.observer.start()

        self.stop_event.clear()
        self.worker_thread = threading.Thread(target=self._consume_loop, daemon=True)
        self.worker_thread.start()

    def stop(self):
        self.logger.info("Stopping LibraryWatcher...")
        # Observer first: it may be blocked on a full queue that the consumer still drains.
        if self.observer:
            self.observer.stop()
            self.observer.join()
        self.stop_event.set()
        if self.worker_thread:
            self.worker_thread.join()

    def _consume_loop(self):
        while not self.stop_event.is_set():
            try:
                event = self.events.get(timeout=1)
            except queue.Empty:
                continue
            try:
                self.handle_event(event)
            except Exception as e:
                self.logger.error(f"Error handling filesystem event {event}: {e}")
            finally:
                self.events.task_done()

    def handle_event(self, event: LibraryEvent):
        kind, path = event
        if kind == CREATED:
            self.handle_created(path)
        elif kind == REMOVED:
            self.handle_removed(path)

    def handle_created(self, path: Path) -> Optional[List[str]]:
        root = path.parent
        if root not in self.roots or not path.is_dir():
            return None
        self.logger.info(f"New directory detected: {path}")
        return self.scan_service.scan_directory(root)

    def handle_removed(self, path: Path) -> int:
        """
        Marks active items at or below ``path`` gone. An item whose trash or
        permanent copy exists is being moved by the app itself and is skipped;
        its own status write follows the move.
        """
        marked = 0
        for item in self.catalog.media.list_under(path, MediaStatus.ACTIVE):
            try:
                relocated = (
                    self.resolver.trash_location(item.path),
                    self.resolver.permanent_location(item.path),
                )
            except NoMatchingRoot:
                relocated = ()
            if any(p.exists() for p in relocated):
                self.logger.debug(f"Ignoring removal of {item.path}: moved by shelfkeeper")
                continue
            if self.catalog.media.transition(item.id, MediaStatus.ACTIVE, MediaStatus.GONE):
                marked += 1
                self.logger.info(f"Directory removed, marked gone: {item.path}")
        return marked
