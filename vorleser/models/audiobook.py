import uuid
from sqlalchemy import Column, String, Text, Float, Boolean, BigInteger, LargeBinary, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from vorleser.database import Base


class Audiobook(Base):
    __tablename__ = "audiobooks"

    __table_args__ = (
        # Identity follows content: one row per digest inside a library
        UniqueConstraint('library_id', 'hash', name='uq_audiobooks_library_hash'),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    location = Column(Text, nullable=False)  # relative to the library root
    title = Column(String(1024), nullable=False)
    artist = Column(String(1024), nullable=True)
    length = Column(Float, nullable=False)  # seconds
    library_id = Column(Uuid, ForeignKey("libraries.id"), nullable=False, index=True)
    hash = Column(LargeBinary, nullable=False)
    file_extension = Column(String(255), nullable=False)
    deleted = Column(Boolean, nullable=False, default=False)

    # Relationships
    library = relationship("Library", back_populates="audiobooks")
    chapters = relationship("Chapter", back_populates="audiobook", order_by="Chapter.number")
    playstates = relationship("Playstate", back_populates="audiobook")


class Chapter(Base):
    __tablename__ = "chapters"

    __table_args__ = (
        UniqueConstraint('audiobook_id', 'number', name='uq_chapters_audiobook_number'),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(1024), nullable=True)
    audiobook_id = Column(Uuid, ForeignKey("audiobooks.id"), nullable=False, index=True)
    start_time = Column(Float, nullable=False)
    number = Column(BigInteger, nullable=False)

    audiobook = relationship("Audiobook", back_populates="chapters")
