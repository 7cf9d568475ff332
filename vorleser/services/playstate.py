from sqlalchemy.orm import Session, joinedload
from sqlalchemy.dialects import postgresql, sqlite
from datetime import datetime
from typing import Iterable, List, Optional, Tuple
import logging
import math
import uuid

from vorleser.core.exceptions import InvalidPositionError, InvalidTargetError
from vorleser.core.time_helpers import to_naive_utc
from vorleser.models import Audiobook, Playstate

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class PlaystateService:
    """
    Merges playback positions reported by a user's devices.

    Last writer wins by *event* time: an update only replaces the stored row
    when its timestamp is strictly newer. The comparison happens inside one
    conditional INSERT ... ON CONFLICT DO UPDATE statement, so concurrent
    requests (even from several server processes) need no in-process lock.
    NOTE: Caller must run db.commit() to persist changes.
    """

    def __init__(self, db: Session, user_id: uuid.UUID):
        self.db = db
        self.user_id = user_id

    def get_playstate(self, audiobook_id: uuid.UUID) -> Optional[Playstate]:
        """Get the stored playstate for one audiobook"""
        return self.db.query(Playstate).filter(
            Playstate.user_id == self.user_id,
            Playstate.audiobook_id == audiobook_id
        ).first()

    def get_all(self, limit: int = None) -> List[Playstate]:
        """Playstates of the user on audiobooks that still exist, most recent first"""
        query = self.db.query(Playstate).join(Audiobook).options(
            joinedload(Playstate.audiobook)
        ).filter(
            Playstate.user_id == self.user_id,
            Audiobook.deleted == False
        ).order_by(Playstate.timestamp.desc())

        if limit:
            query = query.limit(limit)
        return query.all()

    def _get_target(self, audiobook_id: uuid.UUID) -> Audiobook:
        book = self.db.query(Audiobook).filter(Audiobook.id == audiobook_id).first()
        if not book or book.deleted:
            raise InvalidTargetError(audiobook_id)
        return book

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        try:
            return _INSERT_BY_DIALECT[dialect]
        except KeyError:
            raise NotImplementedError(f"Conditional playstate upsert is not supported on '{dialect}'")

    def upsert_playstate(self, audiobook_id: uuid.UUID, position: float, timestamp: datetime) -> Playstate:
        """
        Insert the playstate, or overwrite it when `timestamp` is newer than
        the stored one. Stale reports are discarded silently and the stored
        state is returned.
        """
        book = self._get_target(audiobook_id)

        position = float(position)
        if math.isnan(position):
            raise InvalidPositionError(audiobook_id, position)
        # Clamp instead of rejecting: clients drift a little past the end while seeking
        position = min(max(position, 0.0), book.length)
        timestamp = to_naive_utc(timestamp)

        table = Playstate.__table__
        insert = self._insert()
        stmt = insert(table).values(
            audiobook_id=audiobook_id,
            user_id=self.user_id,
            position=position,
            timestamp=timestamp,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.audiobook_id, table.c.user_id],
            set_={
                "position": stmt.excluded.position,
                "timestamp": stmt.excluded.timestamp,
            },
            where=table.c.timestamp < stmt.excluded.timestamp,
        )

        result = self.db.execute(stmt)
        if result.rowcount == 0:
            logger.debug(
                f"Discarded stale playstate for audiobook {audiobook_id} / user {self.user_id} ({timestamp})"
            )

        # Reload: the row may have been written by this statement or by a newer report
        return self.db.query(Playstate).populate_existing().filter(
            Playstate.user_id == self.user_id,
            Playstate.audiobook_id == audiobook_id
        ).one()

    def bulk_upsert(self, updates: Iterable[Tuple[uuid.UUID, float, datetime]]) -> dict:
        """
        Apply several reports (e.g. a device coming back online).
        A rejected item never blocks the others.
        """
        stored = []
        rejected = []
        for audiobook_id, position, timestamp in updates:
            try:
                stored.append(self.upsert_playstate(audiobook_id, position, timestamp))
            except (InvalidTargetError, InvalidPositionError) as e:
                logger.info(f"Rejected playstate update: {e}")
                rejected.append(audiobook_id)

        return {"stored": stored, "rejected": rejected}
