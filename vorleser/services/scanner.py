from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple
import hashlib
import logging
import os
import re
import threading

from vorleser.config import settings
from vorleser.core.exceptions import ScanIOError, ScanCancelled
from vorleser.models.library import Library


@dataclass(frozen=True)
class ScannedAudiobook:
    """One audiobook as found on disk during a scan pass"""
    location: str               # path relative to the library root, POSIX separators
    hash: bytes                 # SHA-256 of the content (all member files, in order)
    file_extension: str
    size: int
    path: Path                  # absolute path of the file or directory
    files: Tuple[Path, ...]     # member files, in chapter order
    is_directory: bool = False


# Keyed by content hash, so a move shows up as "same key, new location"
Snapshot = Dict[bytes, ScannedAudiobook]


class LibraryScanner:
    """Walks a library root and produces a hash-keyed snapshot. Never touches the database."""

    def __init__(self, library: Library, chunk_size: int = None,
                 supported_extensions: List[str] = None,
                 cancel_event: Optional[threading.Event] = None):
        self.library = library
        self.root = Path(library.location)
        self.chunk_size = chunk_size or settings.hash_chunk_size
        self.supported_extensions = [ext.lower() for ext in (supported_extensions or settings.supported_extensions)]
        self.cancel_event = cancel_event
        self.logger = logging.getLogger(__name__)
        self.skipped = 0
        # Locations of audiobooks that could not be read this pass
        self.unreadable: Set[str] = set()

        try:
            self.regex = re.compile(library.is_audiobook_regex)
        except re.error as e:
            raise ScanIOError(self.root, f"Invalid audiobook pattern '{library.is_audiobook_regex}': {e}") from e

    def scan(self) -> Snapshot:
        if not self.root.is_dir():
            raise ScanIOError(self.root, f"Library path is not a readable directory: {self.root}")

        self.logger.debug(f"Scanning library {self.library.id} at {self.root}")

        snapshot: Snapshot = {}
        visited: Set[Tuple[int, int]] = set()
        self.skipped = 0
        self.unreadable = set()

        self._scan_directory(self.root, visited, snapshot, strict=True)

        self.logger.info(
            f"Scanned library {self.library.id}: {len(snapshot)} audiobook(s), {self.skipped} unreadable file(s) skipped"
        )
        return snapshot

    # --- WALKING ---

    def _check_cancelled(self):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ScanCancelled(self.library.id)

    def _list_directory(self, directory: Path, visited: set, strict: bool = False) -> List[os.DirEntry]:
        """
        Sorted entries of `directory`, or an empty list when it was already visited
        (symlink cycle) or cannot be listed.
        """
        try:
            st = directory.stat()
            key = (st.st_dev, st.st_ino)
            if key in visited:
                self.logger.debug(f"Skipping already visited directory (symlink loop?): {directory}")
                return []
            visited.add(key)

            with os.scandir(directory) as it:
                return sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            if strict:
                raise ScanIOError(directory, f"Cannot list {directory}: {e}") from e
            self.logger.warning(f"Cannot list directory {directory}: {e}")
            return []

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def _is_audio(self, path: Path) -> bool:
        return path.suffix.lower() in self.supported_extensions

    def _entry_is_dir(self, entry: os.DirEntry) -> Optional[bool]:
        try:
            return entry.is_dir()  # follows symlinks
        except OSError:
            return None

    def _scan_directory(self, directory: Path, visited: set, snapshot: Snapshot, strict: bool = False):
        for entry in self._list_directory(directory, visited, strict=strict):
            self._check_cancelled()

            path = Path(entry.path)
            is_dir = self._entry_is_dir(entry)
            if is_dir is None:
                self.logger.warning(f"Entry vanished during scan: {path}")
                continue

            if self.regex.search(self._relative(path)):
                if is_dir:
                    item = self._scan_multi_file(path, visited)
                elif self._is_audio(path):
                    item = self._scan_single_file(path)
                else:
                    item = None

                if item:
                    self._add(snapshot, item)
                # A matched directory is one audiobook; do not look for more inside it
                continue

            if is_dir:
                self._scan_directory(path, visited, snapshot)

    def _collect_audio_files(self, directory: Path, visited: set) -> List[Path]:
        files = []
        for entry in self._list_directory(directory, visited):
            path = Path(entry.path)
            is_dir = self._entry_is_dir(entry)
            if is_dir:
                files.extend(self._collect_audio_files(path, visited))
            elif is_dir is False and self._is_audio(path):
                files.append(path)
        return files

    def _add(self, snapshot: Snapshot, item: ScannedAudiobook):
        existing = snapshot.get(item.hash)
        if existing:
            self.logger.warning(
                f"Duplicate content: '{item.location}' is identical to '{existing.location}', ignoring it"
            )
            return
        snapshot[item.hash] = item

    # --- HASHING ---

    def _update_digest(self, digest, path: Path) -> int:
        """Feed one file into `digest` in bounded chunks; returns the number of bytes read"""
        size = 0
        try:
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(self.chunk_size), b""):
                    self._check_cancelled()
                    digest.update(chunk)
                    size += len(chunk)
        except OSError as e:
            raise ScanIOError(path, f"Cannot read {path}: {e}") from e
        return size

    def _scan_single_file(self, path: Path) -> Optional[ScannedAudiobook]:
        digest = hashlib.sha256()
        try:
            size = self._update_digest(digest, path)
        except ScanIOError as e:
            self._mark_unreadable(path, e)
            return None

        return ScannedAudiobook(
            location=self._relative(path),
            hash=digest.digest(),
            file_extension=path.suffix.lower(),
            size=size,
            path=path,
            files=(path,),
        )

    def _scan_multi_file(self, directory: Path, visited: set) -> Optional[ScannedAudiobook]:
        members = sorted(self._collect_audio_files(directory, visited), key=self._relative)
        if not members:
            return None

        digest = hashlib.sha256()
        size = 0
        for path in members:
            try:
                size += self._update_digest(digest, path)
            except ScanIOError as e:
                # A partial digest would look like a different audiobook
                self._mark_unreadable(directory, e)
                return None

        return ScannedAudiobook(
            location=self._relative(directory),
            hash=digest.digest(),
            file_extension=members[0].suffix.lower(),
            size=size,
            path=directory,
            files=tuple(members),
            is_directory=True,
        )

    def _mark_unreadable(self, path: Path, error: ScanIOError):
        self.logger.warning(f"Skipping {self._relative(path)} for this pass: {error}")
        self.skipped += 1
        self.unreadable.add(self._relative(path))
