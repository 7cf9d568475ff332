from sqlalchemy import Column, Float, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from vorleser.database import Base


class Playstate(Base):
    """One user's playback cursor on one audiobook"""
    __tablename__ = "playstates"

    audiobook_id = Column(Uuid, ForeignKey("audiobooks.id"), primary_key=True)
    user_id = Column(Uuid, ForeignKey("users.id"), primary_key=True)
    position = Column(Float, nullable=False)  # seconds, within [0, audiobook.length]
    # Event time reported by the device (naive UTC), not arrival time
    timestamp = Column(DateTime, nullable=False)

    audiobook = relationship("Audiobook", back_populates="playstates")
    user = relationship("User", back_populates="playstates")
