# Copyright (c) 2025 Trae AI. All rights reserved.

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class TaskManager:
    """
    Tracks long-running background jobs (full scans, manual reconciles) so
    they run outside the request that started them.
    """

    def __init__(self):
        self._tasks: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def is_running(self, task_id: str) -> bool:
        with self._lock:
            task = self._tasks.get(task_id)
            return bool(task) and task["status"] == "running"

    def start_task(self, task_id: str, total_steps: int = 100) -> bool:
        """Registers a task as running. Returns False if it already is."""
        with self._lock:
            task = self._tasks.get(task_id)
            if task and task["status"] == "running":
                return False
            self._tasks[task_id] = {
                "status": "running",
                "progress": 0,
                "total": total_steps,
                "message": "Starting...",
                "start_time": time.time(),
            }
            return True

    def update_progress(self, task_id: str, progress: int, message: Optional[str] = None):
        with self._lock:
            if task_id in self._tasks:
                self._tasks[task_id]["progress"] = progress
                if message:
                    self._tasks[task_id]["message"] = message

    def complete_task(self, task_id: str, message: str = "Completed"):
        with self._lock:
            if task_id in self._tasks:
                self._tasks[task_id]["status"] = "completed"
                self._tasks[task_id]["progress"] = self._tasks[task_id]["total"]
                self._tasks[task_id]["message"] = message

    def fail_task(self, task_id: str, message: str):
        with self._lock:
            if task_id in self._tasks:
                self._tasks[task_id]["status"] = "failed"
                self._tasks[task_id]["message"] = message

    def get_task_status(self, task_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            task = self._tasks.get(task_id)
            return dict(task) if task else None

    def get_all_tasks(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {k: dict(v) for k, v in self._tasks.items()}

    def spawn(self, task_id: str, func: Callable[[Callable[[int, str], None]], Any],
              done_message: str = "Completed") -> Optional[threading.Thread]:
        """
        Runs ``func(update_progress)`` on a daemon thread. Returns None when a
        task with the same id is already running.
        """
        if not self.start_task(task_id):
            return None

        def runner():
            try:
                func(lambda p, m: self.update_progress(task_id, p, m))
                self.complete_task(task_id, done_message)
            except Exception as e:
                logger.error(f"Background task '{task_id}' failed: {e}")
                self.fail_task(task_id, str(e))

        thread = threading.Thread(target=runner, daemon=True)
        thread.start()
        return thread
