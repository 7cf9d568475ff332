import threading
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from vorleser.config import settings
from vorleser.core.exceptions import ScanIOError, ReconcileError, ScanCancelled
from vorleser.database import SessionLocal
from vorleser.models import Library
from vorleser.services.mediafile import read_media_info
from vorleser.services.reconciler import Reconciler
from vorleser.services.scanner import LibraryScanner


class ScanManager:
    """
    Runs scan passes (scanner + reconciler), one per library.
    Libraries are processed in parallel on a bounded thread pool; each pass
    has its own session, so a failing library never affects the others.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal,
                 max_workers: int = None, metadata_reader=read_media_info):
        self.session_factory = session_factory
        self.max_workers = max_workers or settings.scan_workers
        self.metadata_reader = metadata_reader
        self.logger = logging.getLogger(__name__)

        # Libraries with a pass in progress in this process
        self._active = set()
        self._lock = threading.Lock()

    def _claim(self, library_id: uuid.UUID) -> bool:
        with self._lock:
            if library_id in self._active:
                return False
            self._active.add(library_id)
            return True

    def _release(self, library_id: uuid.UUID):
        with self._lock:
            self._active.discard(library_id)

    def is_scanning(self, library_id: uuid.UUID) -> bool:
        with self._lock:
            return library_id in self._active

    def scan_library(self, library_id: uuid.UUID, cancel_event: Optional[threading.Event] = None) -> dict:
        """Run one full pass for a library. Errors are logged and reported in the result."""
        if not self._claim(library_id):
            return {"library": library_id, "status": "ignored", "message": "Scan active"}

        db = self.session_factory()
        try:
            library = db.get(Library, library_id)
            if not library:
                return {"library": library_id, "status": "failed", "error": "Library not found"}

            self.logger.info(f"Starting scan of library {library_id} ({library.location})")
            scanner = LibraryScanner(library, cancel_event=cancel_event)
            snapshot = scanner.scan()

            reconciler = Reconciler(db, library, metadata_reader=self.metadata_reader,
                                    cancel_event=cancel_event)
            stats = reconciler.reconcile(snapshot, scanner.unreadable)
            stats["skipped"] += scanner.skipped
            return {"status": "completed", **stats}

        except ScanCancelled as e:
            self.logger.info(str(e))
            return {"library": library_id, "status": "cancelled", "error": str(e)}
        except (ScanIOError, ReconcileError) as e:
            self.logger.error(f"Scan of library {library_id} failed: {e}")
            return {"library": library_id, "status": "failed", "error": str(e)}
        except Exception as e:
            self.logger.exception(f"Unexpected error scanning library {library_id}: {e}")
            return {"library": library_id, "status": "failed", "error": str(e)}
        finally:
            db.close()
            self._release(library_id)

    def scan_all(self, cancel_event: Optional[threading.Event] = None) -> List[dict]:
        """Scan every library, in parallel, bounded by `max_workers`"""
        db = self.session_factory()
        try:
            library_ids = [row.id for row in db.query(Library.id).all()]
        finally:
            db.close()

        if not library_ids:
            self.logger.info("No libraries to scan.")
            return []

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="scan") as pool:
            results = list(pool.map(lambda lib_id: self.scan_library(lib_id, cancel_event), library_ids))

        failed = [r for r in results if r["status"] == "failed"]
        if failed:
            self.logger.warning(f"{len(failed)} of {len(results)} library scan(s) failed")
        return results


# Global instance
scan_manager = ScanManager()
