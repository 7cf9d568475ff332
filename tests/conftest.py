import uuid
import pytest
from pathlib import Path
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from unittest.mock import MagicMock

from vorleser.api.deps import get_db
from vorleser.database import Base
from vorleser.main import app
from vorleser.models import Library, User, ApiToken, Audiobook
from vorleser.services.mediafile import MediaInfo, ChapterInfo


@pytest.fixture(scope="session", autouse=True)
def mock_background_services():
    """
    Global patch to prevent background threads (Watcher, Scheduler)
    from trying to start during tests.
    """
    from vorleser.services.scheduler import scheduler_service
    from vorleser.services.watcher import library_watcher

    scheduler_service.start = MagicMock()
    scheduler_service.stop = MagicMock()

    library_watcher.start = MagicMock()
    library_watcher.stop = MagicMock()


# 1. SETUP TEST DATABASE
# We use SQLite in-memory with StaticPool so the data persists
# for the duration of a single test function.
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# 2. DB SESSION FIXTURE
@pytest.fixture(scope="function")
def db():
    """
    Creates a fresh database for every single test case.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def file_session_factory(tmp_path):
    """
    File backed SQLite with a real connection pool, for tests where several
    threads each need their own connection.
    """
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'vorleser-test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=file_engine)

    yield sessionmaker(autoflush=False, bind=file_engine)

    file_engine.dispose()


# 3. CLIENT FIXTURE (Unauthenticated)
@pytest.fixture(scope="function")
def client(db) -> Generator:
    """
    Returns a TestClient with the database dependency overridden.
    """

    def override_get_db():
        # The 'db' fixture handles the teardown at the end of the test function.
        yield db

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


# 4. USER FIXTURES
@pytest.fixture(scope="function")
def normal_user(db):
    user = User(email="listener@example.com", password_hash="fakehash")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def other_user(db):
    user = User(email="other@example.com", password_hash="fakehash")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def api_token(db, normal_user):
    token = ApiToken(user_id=normal_user.id)
    db.add(token)
    db.commit()
    db.refresh(token)
    return token


# 5. AUTHENTICATED CLIENT FIXTURE
@pytest.fixture(scope="function")
def auth_client(client, api_token):
    """
    Returns a client that sends a valid API token with every request.
    """
    client.headers["Authorization"] = f"Bearer {api_token.id}"
    return client


# 6. LIBRARY FIXTURES
@pytest.fixture(scope="function")
def library_root(tmp_path) -> Path:
    root = tmp_path / "library"
    root.mkdir()
    return root


@pytest.fixture(scope="function")
def library(db, library_root, normal_user):
    """A library where every top-level entry is one audiobook, readable by normal_user"""
    lib = Library(location=str(library_root), is_audiobook_regex="^[^/]+$")
    db.add(lib)
    normal_user.accessible_libraries.append(lib)
    db.commit()
    db.refresh(lib)
    return lib


@pytest.fixture(scope="function")
def audiobook(db, library):
    book = Audiobook(
        location="book.m4b",
        title="The Book",
        length=600.0,
        library_id=library.id,
        hash=uuid.uuid4().bytes,
        file_extension=".m4b",
    )
    db.add(book)
    db.commit()
    db.refresh(book)
    return book


def fake_metadata_reader(item) -> MediaInfo:
    """Stand-in for the audio metadata reader: fixed length, two chapters"""
    return MediaInfo(
        title=Path(item.location).stem,
        artist="Narrator",
        length=300.0,
        chapters=[ChapterInfo(start=0.0, title="Opening"), ChapterInfo(start=120.0, title="Middle")],
    )


@pytest.fixture
def metadata_reader():
    return fake_metadata_reader


@pytest.fixture
def write_file():
    def _write(path: Path, content: bytes) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path
    return _write
