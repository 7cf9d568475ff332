from fastapi import APIRouter

from vorleser.api.deps import AudiobookDep

router = APIRouter()


@router.get("/{audiobook_id}", name="detail")
async def get_audiobook(book: AudiobookDep):
    """Audiobook with its chapter list"""
    return {
        "id": book.id,
        "title": book.title,
        "artist": book.artist,
        "length": book.length,
        "library_id": book.library_id,
        "file_extension": book.file_extension,
        "chapters": [
            {"title": c.title, "start_time": c.start_time, "number": c.number}
            for c in book.chapters
        ],
    }
