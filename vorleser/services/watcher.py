import logging
import threading
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from vorleser.config import settings
from vorleser.database import SessionLocal
from vorleser.models.library import Library
from vorleser.services.scan_manager import scan_manager

logger = logging.getLogger(__name__)


class LibraryEventHandler(FileSystemEventHandler):
    """
        Handles file system events for a specific library.
        Uses a 'Batching Window' strategy: The first event starts a timer.
        Subsequent events are ignored until the timer fires.
    """

    def __init__(self, library_id, batch_window_seconds: int = None, trigger=None):
        self.library_id = library_id
        self.batch_window_seconds = batch_window_seconds or settings.watch_batch_seconds
        self.trigger = trigger or scan_manager.scan_library
        self._timer = None
        self._lock = threading.Lock()
        self._stopped = False

    def stop(self):
        """Cancel any pending scan timers"""
        with self._lock:
            self._stopped = True
            if self._timer:
                self._timer.cancel()
                self._timer = None

    def _trigger_scan(self):
        with self._lock:
            # If we were stopped while waiting, don't scan
            if self._stopped:
                return
            self._timer = None

        logger.info(f"Watcher: Batch window ended for Library {self.library_id}. Starting scan...")
        self.trigger(self.library_id)

    def on_any_event(self, event):
        """Called on any file event (create, modify, move, delete)"""
        if event.is_directory:
            return

        # If a timer is already running, let it gather more changes
        with self._lock:
            if not self._stopped and not self._timer:
                logger.debug(f"Watcher: Change detected in Library {self.library_id}. "
                             f"Starting {self.batch_window_seconds}s batch window.")
                self._timer = threading.Timer(self.batch_window_seconds, self._trigger_scan)
                self._timer.daemon = True
                self._timer.start()


class LibraryWatcher:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(LibraryWatcher, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.observer = Observer()
        self.watches = {}  # Map library_id -> (watch, handler)
        self.is_running = False
        self._initialized = True

    def start(self):
        """Start the background observer thread"""
        if not self.is_running:
            self.refresh_watches()
            self.observer.start()
            self.is_running = True
            logger.info("Library Watcher Started")

    def stop(self):
        """Stop the observer"""
        if self.is_running:
            for _, handler in self.watches.values():
                handler.stop()
            self.observer.stop()
            self.observer.join()
            self.is_running = False

    def refresh_watches(self):
        """Watch every library root in the database, drop watches for removed libraries"""
        db = SessionLocal()
        try:
            libraries = db.query(Library).all()
            active_ids = {lib.id for lib in libraries}

            for lib in libraries:
                if lib.id not in self.watches:
                    try:
                        logger.info(f"Starting watch for: {lib.location}")
                        handler = LibraryEventHandler(lib.id)
                        watch = self.observer.schedule(handler, lib.location, recursive=True)
                        self.watches[lib.id] = (watch, handler)
                    except OSError as e:
                        logger.warning(f"Failed to watch {lib.location}: {e}")

            for lib_id in set(self.watches) - active_ids:
                logger.info(f"Stopping watch for Library {lib_id}")
                watch, handler = self.watches.pop(lib_id)
                handler.stop()
                self.observer.unschedule(watch)
        finally:
            db.close()


# Global Instance
library_watcher = LibraryWatcher()
