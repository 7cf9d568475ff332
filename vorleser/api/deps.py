import logging
import uuid
from typing import Generator, Annotated, Optional
from fastapi import Depends, HTTPException, status, Path
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from vorleser.database import SessionLocal
from vorleser.models.user import User, ApiToken
from vorleser.models.audiobook import Audiobook
from vorleser.models.library import Library

logger = logging.getLogger(__name__)

# 1. DATABASE DEPENDENCY
def get_db() -> Generator:
    try:
        db = SessionLocal()
        yield db
    finally:
        db.close()


# 2. AUTH DEPENDENCY
# Tokens are issued elsewhere; here we only resolve them to a user.
bearer_scheme = HTTPBearer(auto_error=False)

async def get_current_user(
        db: Annotated[Session, Depends(get_db)],
        credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)]
) -> User:

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    try:
        token_id = uuid.UUID(credentials.credentials)
    except ValueError:
        raise credentials_exception

    token = db.query(ApiToken).filter(ApiToken.id == token_id).first()
    if token is None:
        logger.info("Rejected unknown API token")
        raise credentials_exception

    return token.user

SessionDep = Annotated[Session, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]


def allowed_library_ids(user: User) -> list:
    return [lib.id for lib in user.accessible_libraries]


# --- LIBRARY DEPENDENCY ---
async def get_secure_library(
        library_id: Annotated[uuid.UUID, Path(title="The ID of the library")],
        db: SessionDep,
        user: CurrentUser
) -> Library:
    """Get a library the user is permitted to see (404 otherwise)"""
    if library_id not in allowed_library_ids(user):
        raise HTTPException(status_code=404, detail="Library not found")

    library = db.query(Library).filter(Library.id == library_id).first()
    if not library:
        raise HTTPException(status_code=404, detail="Library not found")

    return library


# --- AUDIOBOOK DEPENDENCY ---
async def get_secure_audiobook(
        audiobook_id: Annotated[uuid.UUID, Path(title="The ID of the audiobook")],
        db: SessionDep,
        user: CurrentUser
) -> Audiobook:
    """
    Fetches a live audiobook AND verifies the user has access to its library.
    Deleted, missing and forbidden audiobooks all answer 404.
    """
    book = db.query(Audiobook).filter(
        Audiobook.id == audiobook_id,
        Audiobook.deleted == False,
        Audiobook.library_id.in_(allowed_library_ids(user))
    ).first()

    if not book:
        raise HTTPException(status_code=404, detail="Audiobook not found")

    return book

LibraryDep = Annotated[Library, Depends(get_secure_library)]
AudiobookDep = Annotated[Audiobook, Depends(get_secure_audiobook)]
