import hashlib
import os
import threading
import uuid

import pytest

from vorleser.core.exceptions import ScanIOError, ScanCancelled
from vorleser.models.library import Library
from vorleser.services.scanner import LibraryScanner


def make_library(root, regex="^[^/]+$") -> Library:
    # Transient: the scanner never touches the database
    return Library(id=uuid.uuid4(), location=str(root), is_audiobook_regex=regex)


def sha(*chunks: bytes) -> bytes:
    return hashlib.sha256(b"".join(chunks)).digest()


def test_single_file_audiobooks_keyed_by_hash(library_root, write_file):
    write_file(library_root / "first.mp3", b"first book")
    write_file(library_root / "second.M4B", b"second book")
    write_file(library_root / "notes.txt", b"not audio")

    snapshot = LibraryScanner(make_library(library_root)).scan()

    assert set(snapshot) == {sha(b"first book"), sha(b"second book")}
    item = snapshot[sha(b"second book")]
    assert item.location == "second.M4B"
    assert item.file_extension == ".m4b"
    assert item.size == len(b"second book")
    assert not item.is_directory


def test_matched_directory_is_one_multi_file_audiobook(library_root, write_file):
    write_file(library_root / "Saga" / "02.mp3", b"part two")
    write_file(library_root / "Saga" / "01.mp3", b"part one")
    write_file(library_root / "Saga" / "cover.jpg", b"image")

    snapshot = LibraryScanner(make_library(library_root)).scan()

    assert len(snapshot) == 1
    item = snapshot[sha(b"part one", b"part two")]
    assert item.is_directory
    assert item.location == "Saga"
    assert [p.name for p in item.files] == ["01.mp3", "02.mp3"]
    assert item.file_extension == ".mp3"


def test_unmatched_directories_are_descended(library_root, write_file):
    write_file(library_root / "authors" / "someone" / "book.mp3", b"deep")

    snapshot = LibraryScanner(make_library(library_root, regex=r"\.mp3$")).scan()

    assert [i.location for i in snapshot.values()] == ["authors/someone/book.mp3"]


def test_hash_does_not_depend_on_chunk_size(library_root, write_file):
    content = os.urandom(10_000)
    write_file(library_root / "big.mp3", content)
    library = make_library(library_root)

    small = LibraryScanner(library, chunk_size=7).scan()
    large = LibraryScanner(library, chunk_size=1 << 20).scan()

    assert set(small) == set(large) == {sha(content)}


def test_duplicate_content_keeps_first_location(library_root, write_file):
    write_file(library_root / "a.mp3", b"same bytes")
    write_file(library_root / "b.mp3", b"same bytes")

    snapshot = LibraryScanner(make_library(library_root)).scan()

    assert len(snapshot) == 1
    assert snapshot[sha(b"same bytes")].location == "a.mp3"


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="needs symlinks")
def test_symlink_cycles_are_not_followed_forever(library_root, write_file):
    write_file(library_root / "shelf" / "book.mp3", b"looped")
    os.symlink(library_root, library_root / "shelf" / "back-to-root")

    snapshot = LibraryScanner(make_library(library_root, regex=r"\.mp3$")).scan()

    assert [i.location for i in snapshot.values()] == ["shelf/book.mp3"]


def test_unreadable_file_is_skipped_and_scan_continues(library_root, write_file, monkeypatch):
    write_file(library_root / "good.mp3", b"good")
    broken = write_file(library_root / "broken.mp3", b"broken")

    original = LibraryScanner._update_digest

    def flaky(self, digest, path):
        if path == broken:
            raise ScanIOError(path, "vanished")
        return original(self, digest, path)

    monkeypatch.setattr(LibraryScanner, "_update_digest", flaky)

    scanner = LibraryScanner(make_library(library_root))
    snapshot = scanner.scan()

    assert set(snapshot) == {sha(b"good")}
    assert scanner.skipped == 1
    assert scanner.unreadable == {"broken.mp3"}


def test_unreadable_member_drops_whole_multi_file_audiobook(library_root, write_file, monkeypatch):
    write_file(library_root / "Saga" / "01.mp3", b"part one")
    broken = write_file(library_root / "Saga" / "02.mp3", b"part two")
    write_file(library_root / "single.mp3", b"single")

    original = LibraryScanner._update_digest

    def flaky(self, digest, path):
        if path == broken:
            raise ScanIOError(path, "vanished")
        return original(self, digest, path)

    monkeypatch.setattr(LibraryScanner, "_update_digest", flaky)

    scanner = LibraryScanner(make_library(library_root))
    snapshot = scanner.scan()

    # No partial hash for the directory: it must not look like new content
    assert set(snapshot) == {sha(b"single")}
    assert scanner.unreadable == {"Saga"}
    assert scanner.skipped == 1


def test_missing_root_raises_scan_io_error(tmp_path):
    with pytest.raises(ScanIOError):
        LibraryScanner(make_library(tmp_path / "nowhere")).scan()


def test_invalid_pattern_raises_scan_io_error(library_root):
    with pytest.raises(ScanIOError):
        LibraryScanner(make_library(library_root, regex="(unclosed"))


def test_cancelled_scan_raises(library_root, write_file):
    write_file(library_root / "book.mp3", b"content")
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(ScanCancelled):
        LibraryScanner(make_library(library_root), cancel_event=cancel).scan()
