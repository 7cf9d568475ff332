import uuid
from sqlalchemy import Column, Text, DateTime, Uuid
from sqlalchemy.orm import relationship
from vorleser.core.time_helpers import utcnow
from vorleser.database import Base


class Library(Base):
    __tablename__ = "libraries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    content_change_date = Column(DateTime, nullable=False, default=utcnow)
    location = Column(Text, nullable=False)
    # Matched against each entry's path relative to `location`
    is_audiobook_regex = Column(Text, nullable=False)

    # Never moves backwards
    last_scan = Column(DateTime, nullable=True)

    # No cascade: audiobooks are soft-deleted, never removed with their library
    audiobooks = relationship("Audiobook", back_populates="library")
