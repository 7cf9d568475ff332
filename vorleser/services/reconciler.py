from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple
import logging
import threading
import time

from sqlalchemy.orm import Session

from vorleser.core.exceptions import MediaError, ReconcileError, ScanCancelled
from vorleser.core.time_helpers import utcnow
from vorleser.models.audiobook import Audiobook, Chapter
from vorleser.models.library import Library
from vorleser.services.mediafile import ChapterInfo, MediaInfo, normalize_chapters, read_media_info
from vorleser.services.scanner import ScannedAudiobook, Snapshot


@dataclass
class LibraryDiff:
    """Changes between a scan snapshot and the persisted audiobooks of one library"""
    added: List[ScannedAudiobook] = field(default_factory=list)
    moved: List[Tuple[Audiobook, ScannedAudiobook]] = field(default_factory=list)
    restored: List[Tuple[Audiobook, ScannedAudiobook]] = field(default_factory=list)
    removed: List[Audiobook] = field(default_factory=list)
    unchanged: List[Audiobook] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.moved or self.restored or self.removed)


def compute_diff(snapshot: Snapshot, persisted: Dict[bytes, Audiobook],
                 unreadable: Iterable[str] = ()) -> LibraryDiff:
    """
    Partition by content hash.
    Only on disk -> added. Only persisted (and still live) -> removed, unless
    its location is in `unreadable`: such rows are left as they are.
    On both sides -> moved if the location differs, restored if the row was
    soft-deleted, unchanged otherwise.
    """
    diff = LibraryDiff()
    on_disk = set(snapshot)
    unreadable = set(unreadable)
    known = set(persisted)

    for digest in sorted(on_disk - known, key=lambda h: snapshot[h].location):
        diff.added.append(snapshot[digest])

    for digest in known - on_disk:
        book = persisted[digest]
        if book.deleted:
            continue
        if book.location in unreadable:
            diff.unchanged.append(book)
        else:
            diff.removed.append(book)

    for digest in on_disk & known:
        book = persisted[digest]
        item = snapshot[digest]
        if book.deleted:
            diff.restored.append((book, item))
        elif book.location != item.location:
            diff.moved.append((book, item))
        else:
            diff.unchanged.append(book)

    return diff


class Reconciler:
    """Applies a scan snapshot to the database, one transaction per library"""

    def __init__(self, db: Session, library: Library,
                 metadata_reader: Callable[[ScannedAudiobook], MediaInfo] = read_media_info,
                 cancel_event: Optional[threading.Event] = None):
        self.db = db
        self.library = library
        self.metadata_reader = metadata_reader
        self.cancel_event = cancel_event
        self.logger = logging.getLogger(__name__)

    def _load_persisted(self) -> Dict[bytes, Audiobook]:
        books = self.db.query(Audiobook).filter(Audiobook.library_id == self.library.id).all()
        return {bytes(book.hash): book for book in books}

    def reconcile(self, snapshot: Snapshot, unreadable: Iterable[str] = ()) -> dict:
        """
        Compute the diff and apply it. Either every change for this library
        commits or none does. Audiobooks at `unreadable` locations are kept
        as they are for this pass.
        """
        library_id = self.library.id
        start_time = time.time()

        try:
            diff = compute_diff(snapshot, self._load_persisted(), unreadable)
            stats = self._apply(diff)

            now = utcnow()
            if stats["changed"]:
                self.library.content_change_date = now

            # Always advance, even on a no-op pass
            if self.library.last_scan is None or self.library.last_scan < now:
                self.library.last_scan = now

            if self.cancel_event is not None and self.cancel_event.is_set():
                raise ScanCancelled(library_id)

            self.db.commit()
        except ScanCancelled:
            self.db.rollback()
            self.logger.info(f"Reconciliation of library {library_id} cancelled, nothing committed")
            raise
        except Exception as e:
            self.db.rollback()
            self.logger.error(f"Reconciliation of library {library_id} failed, rolled back: {e}")
            raise ReconcileError(library_id, f"Reconciliation failed for library {library_id}: {e}") from e

        stats.pop("changed")
        stats["library"] = library_id
        stats["elapsed"] = round(time.time() - start_time, 2)

        self.logger.info(
            f"Library {library_id}: {stats['added']} added, {stats['moved']} moved, "
            f"{stats['restored']} restored, {stats['removed']} removed, {stats['unchanged']} unchanged"
        )
        return stats

    def _apply(self, diff: LibraryDiff) -> dict:
        added = 0
        skipped = 0

        for item in diff.added:
            try:
                info = self.metadata_reader(item)
            except MediaError as e:
                # Retried on the next pass, since the hash is still unknown then
                self.logger.warning(f"Skipping '{item.location}': {e}")
                skipped += 1
                continue

            book = Audiobook(
                location=item.location,
                title=info.title,
                artist=info.artist,
                length=max(0.0, info.length),
                library_id=self.library.id,
                hash=item.hash,
                file_extension=item.file_extension,
                deleted=False,
            )
            self.db.add(book)
            self.db.flush()
            self.replace_chapters(book, info.chapters)
            added += 1
            self.logger.debug(f"New audiobook '{book.title}' at {book.location}")

        for book, item in diff.moved:
            self.logger.debug(f"Moved audiobook {book.id}: {book.location} -> {item.location}")
            book.location = item.location

        for book, item in diff.restored:
            self.logger.debug(f"Restoring audiobook {book.id} at {item.location}")
            book.deleted = False
            book.location = item.location

        for book in diff.removed:
            self.logger.debug(f"Audiobook {book.id} gone from disk, marking deleted")
            book.deleted = True

        self.db.flush()

        return {
            "added": added,
            "moved": len(diff.moved),
            "restored": len(diff.restored),
            "removed": len(diff.removed),
            "unchanged": len(diff.unchanged),
            "skipped": skipped,
            "changed": bool(added or diff.moved or diff.restored or diff.removed),
        }

    def replace_chapters(self, book: Audiobook, chapters: List[ChapterInfo]):
        """
        Chapters are derived data: drop the old set and insert the new one,
        sorted by start with strictly increasing offsets.
        """
        self.db.query(Chapter).filter(Chapter.audiobook_id == book.id).delete(synchronize_session=False)
        for number, chapter in enumerate(normalize_chapters(chapters, book.length)):
            self.db.add(Chapter(
                audiobook_id=book.id,
                title=chapter.title,
                start_time=chapter.start,
                number=number,
            ))
        self.db.flush()
