import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Table, Uuid
from sqlalchemy.orm import relationship
from vorleser.core.time_helpers import utcnow
from vorleser.database import Base


# Many to many Junction Table
library_permissions = Table(
    'library_permissions',
    Base.metadata,
    Column('library_id', Uuid, ForeignKey('libraries.id'), primary_key=True),
    Column('user_id', Uuid, ForeignKey('users.id'), primary_key=True)
)


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    email = Column(String(120), unique=True, index=True, nullable=False)
    password_hash = Column(String(240), nullable=False)

    # Relationships
    api_tokens = relationship("ApiToken", back_populates="user")
    playstates = relationship("Playstate", back_populates="user")

    # We use a string "Library" to avoid circular imports
    accessible_libraries = relationship("Library", secondary=library_permissions, backref="allowed_users")


class ApiToken(Base):
    __tablename__ = "api_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="api_tokens")
