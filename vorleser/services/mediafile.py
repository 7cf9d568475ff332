"""
Audio metadata reader.

Reads duration, title/artist and the chapter table of audiobook files using
Mutagen. The scanner never decodes audio itself; the reconciler calls
`read_media_info` only for content it has not seen before.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import mutagen

from vorleser.core.exceptions import MediaError

logger = logging.getLogger(__name__)

TITLE_KEYS = ("TIT2", "\xa9nam", "title")
ARTIST_KEYS = ("TPE1", "\xa9ART", "artist", "TPE2", "aART", "albumartist")
ALBUM_KEYS = ("TALB", "\xa9alb", "album")


@dataclass
class ChapterInfo:
    start: float
    title: Optional[str] = None


@dataclass
class MediaInfo:
    title: str
    length: float
    artist: Optional[str] = None
    chapters: List[ChapterInfo] = field(default_factory=list)


def _first_tag(tags, keys) -> Optional[str]:
    """Return the first non-empty value among `keys` (ID3, MP4 and Vorbis key styles)"""
    if not tags:
        return None
    for key in keys:
        try:
            value = tags[key]
        except (KeyError, ValueError):
            continue
        if isinstance(value, list):
            value = value[0] if value else None
        if value:
            text = str(value).strip()
            if text:
                return text
    return None


def _open(path: Path):
    try:
        audio = mutagen.File(path)
    except (OSError, mutagen.MutagenError) as e:
        raise MediaError(path, f"Cannot read {path}: {e}") from e

    if audio is None or not hasattr(audio, "info"):
        raise MediaError(path, f"Unrecognised audio format: {path}")
    return audio


def _read_chapter_table(audio) -> List[ChapterInfo]:
    """Container chapters: MP4 chapter atoms or ID3 CHAP frames"""
    chapters = []

    mp4_chapters = getattr(audio, "chapters", None)
    if mp4_chapters:
        for chapter in mp4_chapters:
            chapters.append(ChapterInfo(start=float(chapter.start), title=chapter.title or None))
        return chapters

    tags = getattr(audio, "tags", None)
    if tags is not None and hasattr(tags, "getall"):
        for frame in tags.getall("CHAP"):
            title_frame = frame.sub_frames.get("TIT2") if frame.sub_frames else None
            title = str(title_frame) if title_frame else None
            # ID3 stores milliseconds
            chapters.append(ChapterInfo(start=frame.start_time / 1000.0, title=title))

    return chapters


def normalize_chapters(chapters: List[ChapterInfo], length: float) -> List[ChapterInfo]:
    """
    Sort by start offset and drop entries that would break the ordering
    (duplicate starts, negative offsets or offsets past the end).
    """
    result = []
    last_start = None
    for chapter in sorted(chapters, key=lambda c: c.start):
        if chapter.start < 0 or (length and chapter.start > length):
            continue
        if last_start is not None and chapter.start <= last_start:
            continue
        result.append(chapter)
        last_start = chapter.start
    return result


def read_single_file(path: Path) -> MediaInfo:
    audio = _open(path)
    tags = getattr(audio, "tags", None)
    length = float(getattr(audio.info, "length", 0.0) or 0.0)

    return MediaInfo(
        title=_first_tag(tags, TITLE_KEYS) or path.name,
        artist=_first_tag(tags, ARTIST_KEYS),
        length=length,
        chapters=normalize_chapters(_read_chapter_table(audio), length),
    )


def read_multi_file(directory: Path, files: List[Path]) -> MediaInfo:
    """Each member file becomes one chapter, offsets are cumulative durations"""
    chapters = []
    offset = 0.0
    title = None
    artist = None

    for index, path in enumerate(files):
        audio = _open(path)
        tags = getattr(audio, "tags", None)

        if index == 0:
            title = _first_tag(tags, ALBUM_KEYS)
            artist = _first_tag(tags, ARTIST_KEYS)

        chapters.append(ChapterInfo(start=offset, title=_first_tag(tags, TITLE_KEYS) or path.stem))
        offset += float(getattr(audio.info, "length", 0.0) or 0.0)

    return MediaInfo(
        title=title or directory.name,
        artist=artist,
        length=offset,
        chapters=normalize_chapters(chapters, offset),
    )


def read_media_info(item) -> MediaInfo:
    """
    Default metadata reader used by the reconciler.
    `item` is a ScannedAudiobook produced by the library scanner.
    """
    if item.is_directory:
        return read_multi_file(item.path, list(item.files))
    return read_single_file(item.files[0])
