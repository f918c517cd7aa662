# Copyright (c) 2025 Trae AI. All rights reserved.

from pathlib import Path
from typing import Optional


class LifecycleError(Exception):
    """Base exception for media lifecycle operations."""

    kind = "internal"
    status_code = 500


class NotFound(LifecycleError):
    """Raised when a media id is unknown."""

    kind = "not_found"
    status_code = 404

    def __init__(self, media_id: int):
        super().__init__(f"Media {media_id} not found")
        self.media_id = media_id


class InvalidState(LifecycleError):
    """Raised when an operation is attempted from a status that forbids it."""

    kind = "invalid_state"
    status_code = 409

    def __init__(self, message: str, status: Optional[str] = None):
        super().__init__(message)
        self.status = status


class Forbidden(LifecycleError):
    kind = "forbidden"
    status_code = 403


class NoMatchingRoot(LifecycleError):
    """Raised when no configured library root owns a path."""

    kind = "no_matching_root"

    def __init__(self, path):
        super().__init__(f"No configured library root matches path {path}")
        self.path = Path(path)


class FilesystemFailure(LifecycleError):
    """Raised when a move, copy or delete on disk fails."""

    kind = "filesystem"

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class StoreFailure(LifecycleError):
    """Raised when the catalog database fails."""

    kind = "store"

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error
