"""Shared test fixtures and configuration."""

import os
import tempfile
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set up test environment BEFORE importing app modules that use get_settings
_test_file_dir = tempfile.mkdtemp(prefix="revdel_test_files_")
os.environ["LOCAL_FILE_PATH"] = _test_file_dir
os.environ["STORAGE_BACKEND"] = "local"
os.environ.pop("CDN_PURGE_ENDPOINT", None)
os.environ.pop("SNS_TOPIC_ARN", None)

from revdel.adapters.cache import NullCachePurger, get_cache_purger  # noqa: E402
from revdel.adapters.events import NullPublisher, get_event_publisher  # noqa: E402
from revdel.adapters.storage import LocalStorageAdapter, get_storage_adapter  # noqa: E402
from revdel.auth.middleware import create_session_cookie  # noqa: E402
from revdel.auth.models import (  # noqa: E402
    RIGHT_DELETE_LOG_ENTRY,
    RIGHT_DELETE_REVISION,
    RIGHT_DELETED_HISTORY,
    RIGHT_SUPPRESS,
    Actor,
    SessionData,
)
from revdel.config import get_settings  # noqa: E402
from revdel.database import Base, get_db  # noqa: E402
from revdel.files import archive_rel  # noqa: E402
from revdel.main import app  # noqa: E402
from revdel.models import (  # noqa: E402
    ArchivedFile,
    LogEntry,
    OldFile,
    Page,
    RecentChange,
    Revision,
)

# Clear the lru_cache on get_settings to pick up test env vars
get_settings.cache_clear()


# Test database URL (in-memory SQLite for speed)
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

FILE_NAME = "Example.jpg"
FILE_SHA1 = "a1b2c3d4e5"
FILE_BYTES = b"old version bytes"


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Remove the temporary file store after all tests run."""
    yield

    import shutil

    shutil.rmtree(_test_file_dir, ignore_errors=True)


@pytest_asyncio.fixture
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(TEST_DB_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def storage(tmp_path) -> LocalStorageAdapter:
    """Local storage adapter rooted in a per-test directory."""
    return LocalStorageAdapter(base_path=tmp_path / "files")


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, storage: LocalStorageAdapter
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database and adapter overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage_adapter] = lambda: storage
    app.dependency_overrides[get_cache_purger] = NullCachePurger
    app.dependency_overrides[get_event_publisher] = NullPublisher

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# --- Actors ---


@pytest.fixture
def admin() -> Actor:
    """An administrator without the suppression right."""
    return Actor(
        user_id=1,
        name="Admin",
        rights=frozenset(
            {RIGHT_DELETE_REVISION, RIGHT_DELETE_LOG_ENTRY, RIGHT_DELETED_HISTORY}
        ),
    )


@pytest.fixture
def suppressor() -> Actor:
    """An administrator holding the elevated suppression right."""
    return Actor(
        user_id=2,
        name="Oversighter",
        rights=frozenset(
            {
                RIGHT_DELETE_REVISION,
                RIGHT_DELETE_LOG_ENTRY,
                RIGHT_DELETED_HISTORY,
                RIGHT_SUPPRESS,
            }
        ),
    )


@pytest.fixture
def reader() -> Actor:
    """A logged-in user with no administrative rights."""
    return Actor(user_id=3, name="Reader", rights=frozenset())


def create_auth_headers_for_actor(actor: Actor) -> dict[str, str]:
    """Create authentication headers carrying a signed session for ``actor``."""
    settings = get_settings()

    now = datetime.now(timezone.utc)
    session_data = SessionData(
        user_id=actor.user_id,
        name=actor.name,
        rights=sorted(actor.rights),
        created_at=now,
        expires_at=now + timedelta(hours=1),
    )

    cookie_name, cookie_value = create_session_cookie(settings, session_data)
    return {"Cookie": f"{cookie_name}={cookie_value}"}


@pytest.fixture
def admin_headers(admin: Actor) -> dict[str, str]:
    return create_auth_headers_for_actor(admin)


@pytest.fixture
def suppressor_headers(suppressor: Actor) -> dict[str, str]:
    return create_auth_headers_for_actor(suppressor)


@pytest.fixture
def reader_headers(reader: Actor) -> dict[str, str]:
    return create_auth_headers_for_actor(reader)


# --- Rows ---


@pytest_asyncio.fixture
async def test_page(db_session: AsyncSession) -> Page:
    """A page whose current revision is 12."""
    page = Page(
        id=1,
        namespace=0,
        title="Page",
        latest=12,
        touched="20240101000000",
    )
    db_session.add(page)
    await db_session.commit()
    return page


@pytest_asyncio.fixture
async def test_revisions(db_session: AsyncSession, test_page: Page) -> list[Revision]:
    """Revisions 10, 11 and 12 of ``test_page``, all visible, with feed rows."""
    revisions = [
        Revision(
            id=rev_id,
            page_id=test_page.id,
            timestamp=f"202401010000{rev_id}",
            user_id=5,
            user_text="Editor",
            comment=f"edit {rev_id}",
            length=100 + rev_id,
            sha1=f"sha{rev_id}",
            deleted=0,
        )
        for rev_id in (10, 11, 12)
    ]
    db_session.add_all(revisions)
    db_session.add_all(
        RecentChange(
            timestamp=rev.timestamp,
            namespace=0,
            title="Page",
            this_oldid=rev.id,
            deleted=0,
            patrolled=0,
        )
        for rev in revisions
    )
    await db_session.commit()
    return revisions


@pytest_asyncio.fixture
async def test_log_entries(db_session: AsyncSession) -> list[LogEntry]:
    """Two delete-log entries and one block-log entry."""
    entries = [
        LogEntry(
            id=log_id,
            type=log_type,
            action=action,
            timestamp=f"2024010200000{log_id}",
            user_id=5,
            user_text="Editor",
            namespace=0,
            title="Page",
            comment=f"log comment {log_id}",
            params="",
            deleted=0,
        )
        for log_id, log_type, action in (
            (1, "delete", "delete"),
            (2, "delete", "restore"),
            (3, "block", "block"),
        )
    ]
    db_session.add_all(entries)
    db_session.add(
        RecentChange(
            timestamp=entries[0].timestamp,
            namespace=0,
            title="Page",
            log_id=1,
            deleted=0,
            patrolled=0,
        )
    )
    await db_session.commit()
    return entries


@pytest_asyncio.fixture
async def file_page(db_session: AsyncSession) -> Page:
    page = Page(
        id=2,
        namespace=6,
        title=FILE_NAME,
        latest=20,
        touched="20240101000000",
    )
    db_session.add(page)
    await db_session.commit()
    return page


@pytest_asyncio.fixture
async def visible_old_file(
    db_session: AsyncSession, file_page: Page, storage: LocalStorageAdapter
) -> OldFile:
    """A visible superseded file version with its bytes in the public zone."""
    old_file = OldFile(
        name=FILE_NAME,
        timestamp="20240102000000",
        archive_name=f"20240102000000!{FILE_NAME}",
        user_id=5,
        user_text="Uploader",
        description="first upload",
        size=len(FILE_BYTES),
        width=10,
        height=10,
        sha1=FILE_SHA1,
        deleted=0,
    )
    db_session.add(old_file)
    await db_session.commit()

    path = storage.path_for("public", archive_rel(FILE_NAME, old_file.archive_name))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(FILE_BYTES)
    return old_file


@pytest_asyncio.fixture
async def hidden_old_file(
    db_session: AsyncSession, file_page: Page, storage: LocalStorageAdapter
) -> OldFile:
    """A content-hidden superseded file version with its bytes in the restricted zone."""
    old_file = OldFile(
        name=FILE_NAME,
        timestamp="20240103000000",
        archive_name=f"20240103000000!{FILE_NAME}",
        user_id=5,
        user_text="Uploader",
        description="second upload",
        size=len(FILE_BYTES),
        width=10,
        height=10,
        sha1="f9e8d7c6b5",
        deleted=1,
    )
    db_session.add(old_file)
    await db_session.commit()

    path = storage.path_for("deleted", "f/9/e/f9e8d7c6b5.jpg")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(FILE_BYTES)
    return old_file


@pytest_asyncio.fixture
async def archived_file(db_session: AsyncSession) -> ArchivedFile:
    archived = ArchivedFile(
        id=7,
        name=FILE_NAME,
        archive_name=None,
        storage_key="0a1b2c3d.jpg",
        timestamp="20231201000000",
        user_id=5,
        user_text="Uploader",
        description="deleted upload",
        size=42,
        width=20,
        height=20,
        deleted=0,
    )
    db_session.add(archived)
    await db_session.commit()
    return archived
