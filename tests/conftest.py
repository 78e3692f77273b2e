"""
Pytest configuration and fixtures for TableGraph tests.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import tablegraph.models  # noqa: F401  registers mappers
from tablegraph.core.config import Settings
from tablegraph.core.security import create_access_token
from tablegraph.db.base import Base
from tablegraph.db.session import get_db
from tablegraph.main import app
from tablegraph.models.table import Table
from tablegraph.models.workspace import Workspace, WorkspaceMember
from tablegraph.schemas.table import TableCreate
from tablegraph.services.access import AccessGate
from tablegraph.services.bulk import BulkMutationOrchestrator, LocalStrategy
from tablegraph.services.field import FieldService
from tablegraph.services.recompute import RecomputeDispatcher
from tablegraph.services.relation import RelationService
from tablegraph.services.row import RowService
from tablegraph.services.table import TableService

TEST_DATABASE_URL = "sqlite+aiosqlite://"

USER_ID = "user-1"
OUTSIDER_ID = "user-2"


@pytest.fixture
def user_id() -> str:
    """Id of the workspace member acting in service tests."""
    return USER_ID


@pytest.fixture
def outsider_id() -> str:
    return OUTSIDER_ID


@pytest.fixture
def test_settings() -> Settings:
    """Settings with small limits so bulk paths are easy to exercise."""
    return Settings(
        environment="test",
        database_url=TEST_DATABASE_URL,
        bulk_insert_chunk_size=100,
        max_bulk_rows=500,
    )


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """In-memory SQLite engine shared by every connection of one test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def gate() -> AccessGate:
    return AccessGate()


@pytest.fixture
def relation_service(gate: AccessGate) -> RelationService:
    return RelationService(gate)


@pytest.fixture
def dispatcher(test_settings: Settings, relation_service: RelationService) -> RecomputeDispatcher:
    return RecomputeDispatcher(settings=test_settings, relations=relation_service)


@pytest.fixture
def table_service(
    gate: AccessGate,
    relation_service: RelationService,
    dispatcher: RecomputeDispatcher,
) -> TableService:
    return TableService(gate, relation_service, dispatcher)


@pytest.fixture
def field_service(
    gate: AccessGate,
    relation_service: RelationService,
    dispatcher: RecomputeDispatcher,
) -> FieldService:
    return FieldService(gate, relation_service, dispatcher)


@pytest.fixture
def bulk(
    test_settings: Settings,
    gate: AccessGate,
    relation_service: RelationService,
    dispatcher: RecomputeDispatcher,
) -> BulkMutationOrchestrator:
    return BulkMutationOrchestrator(
        test_settings,
        gate=gate,
        relations=relation_service,
        dispatcher=dispatcher,
        strategy=LocalStrategy(),
    )


@pytest.fixture
def row_service(
    test_settings: Settings,
    gate: AccessGate,
    relation_service: RelationService,
    dispatcher: RecomputeDispatcher,
    bulk: BulkMutationOrchestrator,
) -> RowService:
    return RowService(
        test_settings,
        gate=gate,
        relations=relation_service,
        dispatcher=dispatcher,
        bulk=bulk,
    )


# =============================================================================
# Data
# =============================================================================


@pytest_asyncio.fixture
async def workspace(db_session: AsyncSession) -> Workspace:
    """Workspace owned by the test user."""
    workspace = Workspace(name="Test Workspace")
    db_session.add(workspace)
    await db_session.flush()
    db_session.add(WorkspaceMember(workspace_id=workspace.id, user_id=USER_ID, role="owner"))
    await db_session.flush()
    return workspace


@pytest_asyncio.fixture
async def projects_table(
    db_session: AsyncSession, table_service: TableService, workspace: Workspace
) -> Table:
    return await table_service.create_table(
        db_session, USER_ID, workspace.id, TableCreate(name="Projects")
    )


@pytest_asyncio.fixture
async def tasks_table(
    db_session: AsyncSession, table_service: TableService, workspace: Workspace
) -> Table:
    return await table_service.create_table(
        db_session, USER_ID, workspace.id, TableCreate(name="Tasks")
    )


# =============================================================================
# HTTP
# =============================================================================


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Bearer headers for the workspace member."""
    return {"Authorization": f"Bearer {create_access_token(USER_ID)}"}


@pytest.fixture
def outsider_headers() -> dict[str, str]:
    """Bearer headers for a user outside the workspace."""
    return {"Authorization": f"Bearer {create_access_token(OUTSIDER_ID)}"}
