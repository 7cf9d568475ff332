import uuid
from datetime import datetime
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from vorleser.api.deps import SessionDep, CurrentUser, allowed_library_ids
from vorleser.core.exceptions import InvalidPositionError, InvalidTargetError
from vorleser.models.audiobook import Audiobook
from vorleser.services.playstate import PlaystateService

router = APIRouter()


class PlaystateUpdate(BaseModel):
    position: float = Field(allow_inf_nan=False)
    timestamp: datetime


class BulkPlaystateUpdate(PlaystateUpdate):
    audiobook_id: uuid.UUID


# Helper to initialize service with the CORRECT user
def get_playstate_service(
        db: SessionDep,
        user: CurrentUser,
) -> PlaystateService:
    return PlaystateService(db, user_id=user.id)

PlaystateServiceDep = Annotated[PlaystateService, Depends(get_playstate_service)]


def _serialize(playstate) -> dict:
    return {
        "audiobook_id": playstate.audiobook_id,
        "position": playstate.position,
        "timestamp": playstate.timestamp,
    }


def _ensure_permitted(db, user, audiobook_id: uuid.UUID):
    permitted = db.query(Audiobook.id).filter(
        Audiobook.id == audiobook_id,
        Audiobook.library_id.in_(allowed_library_ids(user))
    ).first()
    if not permitted:
        raise HTTPException(status_code=404, detail="Audiobook not found")


@router.get("/", name="list")
async def list_playstates(service: PlaystateServiceDep, limit: Optional[int] = None):
    """All playback positions of the current user"""
    return [_serialize(p) for p in service.get_all(limit=limit)]


@router.get("/{audiobook_id}", name="detail")
async def get_playstate(audiobook_id: uuid.UUID, service: PlaystateServiceDep):
    playstate = service.get_playstate(audiobook_id)
    if not playstate:
        return {"audiobook_id": audiobook_id, "has_playstate": False}
    return {"has_playstate": True, **_serialize(playstate)}


@router.put("/{audiobook_id}", name="update")
async def update_playstate(
        audiobook_id: uuid.UUID,
        request: PlaystateUpdate,
        service: PlaystateServiceDep,
        user: CurrentUser,
        db: SessionDep
):
    """
    Report a playback position. Older reports than the stored one are ignored,
    the response always carries the stored state.
    Transactions are committed here (Controller layer).
    """
    _ensure_permitted(db, user, audiobook_id)
    try:
        playstate = service.upsert_playstate(audiobook_id, request.position, request.timestamp)
        db.commit()
    except InvalidTargetError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidPositionError as e:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(e))

    return _serialize(playstate)


@router.post("/", name="bulk_update")
async def bulk_update_playstates(
        updates: List[BulkPlaystateUpdate],
        service: PlaystateServiceDep,
        user: CurrentUser,
        db: SessionDep
):
    """Sync a batch of positions (e.g. from a device that was offline)"""
    allowed = set(allowed_library_ids(user))
    permitted_ids = {
        row.id for row in db.query(Audiobook.id).filter(
            Audiobook.id.in_([u.audiobook_id for u in updates]),
            Audiobook.library_id.in_(allowed)
        ).all()
    }

    result = service.bulk_upsert(
        (u.audiobook_id, u.position, u.timestamp)
        for u in updates if u.audiobook_id in permitted_ids
    )
    db.commit()

    rejected = result["rejected"] + [u.audiobook_id for u in updates if u.audiobook_id not in permitted_ids]
    return {
        "stored": [_serialize(p) for p in result["stored"]],
        "rejected": rejected,
    }
