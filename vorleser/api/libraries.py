from fastapi import APIRouter, BackgroundTasks

from vorleser.models.audiobook import Audiobook
from vorleser.services.scan_manager import scan_manager
from vorleser.api.deps import SessionDep, CurrentUser, LibraryDep

router = APIRouter()


def _serialize_library(library, audiobook_count: int) -> dict:
    return {
        "id": library.id,
        "content_change_date": library.content_change_date,
        "last_scan": library.last_scan,
        "is_scanning": scan_manager.is_scanning(library.id),
        "stats": {"audiobooks": audiobook_count},
    }


@router.get("/", name="list")
async def list_libraries(db: SessionDep, current_user: CurrentUser):
    """List libraries accessible to the current user"""
    results = []
    for lib in current_user.accessible_libraries:
        count = db.query(Audiobook).filter(
            Audiobook.library_id == lib.id,
            Audiobook.deleted == False
        ).count()
        results.append(_serialize_library(lib, count))

    return results


@router.get("/{library_id}", name="detail")
async def get_library(library: LibraryDep, db: SessionDep):
    count = db.query(Audiobook).filter(
        Audiobook.library_id == library.id,
        Audiobook.deleted == False
    ).count()
    return _serialize_library(library, count)


@router.get("/{library_id}/audiobooks", name="audiobooks")
async def list_library_audiobooks(library: LibraryDep, db: SessionDep):
    """Live audiobooks of a library, ordered by title"""
    books = db.query(Audiobook).filter(
        Audiobook.library_id == library.id,
        Audiobook.deleted == False
    ).order_by(Audiobook.title).all()

    return [
        {"id": b.id, "title": b.title, "artist": b.artist, "length": b.length}
        for b in books
    ]


@router.post("/{library_id}/scan", name="scan", status_code=202)
async def scan_library(library: LibraryDep, background_tasks: BackgroundTasks):
    """Queue a scan pass for this library"""
    if scan_manager.is_scanning(library.id):
        return {"status": "ignored", "message": "Scan active"}

    background_tasks.add_task(scan_manager.scan_library, library.id)
    return {"status": "queued", "message": "Scan queued"}
