"""
Error taxonomy of the sync/playstate core.

Every error is scoped to a single library pass or a single playstate update,
callers catch them per unit of work and carry on with the siblings.
"""
import uuid
from pathlib import Path
from typing import Optional


class VorleserError(Exception):
    """Base class for all core errors"""


class ScanIOError(VorleserError):
    """A library root (or a file below it) could not be read"""

    def __init__(self, path, message: Optional[str] = None):
        self.path = Path(path)
        super().__init__(message or f"Cannot read {self.path}")


class ScanCancelled(VorleserError):
    """The caller cancelled a running scan pass; nothing was committed"""

    def __init__(self, library_id: Optional[uuid.UUID] = None):
        self.library_id = library_id
        super().__init__(f"Scan of library {library_id} cancelled")


class ReconcileError(VorleserError):
    """Applying a scan diff failed and the library pass was rolled back"""

    def __init__(self, library_id: uuid.UUID, message: Optional[str] = None):
        self.library_id = library_id
        super().__init__(message or f"Reconciliation failed for library {library_id}")


class InvalidTargetError(VorleserError):
    """Playstate update against a missing or deleted audiobook"""

    def __init__(self, audiobook_id):
        self.audiobook_id = audiobook_id
        super().__init__(f"Audiobook {audiobook_id} not found")


class MediaError(VorleserError):
    """Audio metadata could not be read from a file"""

    def __init__(self, path, message: Optional[str] = None):
        self.path = Path(path)
        super().__init__(message or f"Unreadable media file {self.path}")


class InvalidPositionError(VorleserError, ValueError):
    """Playstate position that cannot be clamped to the audiobook (NaN)"""

    def __init__(self, audiobook_id, position):
        self.audiobook_id = audiobook_id
        self.position = position
        super().__init__(f"Invalid position {position!r} for audiobook {audiobook_id}")
