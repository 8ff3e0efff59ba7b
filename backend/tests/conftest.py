"""Pytest configuration and fixtures for reference-data tests.

Provides an in-memory SQLite database, an API client bound to it, a
small builder for hierarchy/right/role rows, and bearer tokens.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.jwt import create_access_token, create_service_token
from app.database import Base, get_db
from app.main import app
from app.models import (
    Facility,
    Program,
    RequisitionGroup,
    RightType,
    SupervisoryNode,
    User,
    requisition_group_members,
    requisition_group_programs,
)
from app.schemas.rights import RightIn, RoleIn
from app.services.rights import save_right
from app.services.roles import create_role


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Let SQLAlchemy own BEGIN so SAVEPOINTs nest correctly on SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Database session for tests; nothing is committed."""
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database dependency."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Builder ────────────────────────────────────────────

class Builder:
    """Creates rows with sensible defaults; every method flushes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _add(self, obj):
        self.db.add(obj)
        await self.db.flush()
        return obj

    async def program(self, code: str = "P1") -> Program:
        return await self._add(Program(code=code, name=f"Program {code}"))

    async def facility(self, code: str = "F1") -> Facility:
        return await self._add(Facility(code=code, name=f"Facility {code}"))

    async def node(self, code: str, parent: SupervisoryNode | None = None) -> SupervisoryNode:
        return await self._add(
            SupervisoryNode(
                code=code,
                name=f"Node {code}",
                parent_id=parent.id if parent else None,
            )
        )

    async def group(
        self,
        code: str,
        node: SupervisoryNode,
        facilities: list[Facility],
        programs: list[Program] = (),
    ) -> RequisitionGroup:
        group = await self._add(
            RequisitionGroup(code=code, name=f"Group {code}", supervisory_node_id=node.id)
        )
        for facility in facilities:
            await self.db.execute(
                requisition_group_members.insert().values(
                    requisition_group_id=group.id, facility_id=facility.id
                )
            )
        for program in programs:
            await self.db.execute(
                requisition_group_programs.insert().values(
                    requisition_group_id=group.id, program_id=program.id
                )
            )
        return group

    async def right(self, name: str, type: RightType = RightType.GENERAL_ADMIN, attachments=()):
        return await save_right(
            self.db, RightIn(name=name, type=type, attachments=list(attachments))
        )

    async def role(self, name: str, rights: list):
        return await create_role(self.db, RoleIn(name=name, right_ids=[r.id for r in rights]))

    async def user(self, username: str = "alice", home_facility: Facility | None = None) -> User:
        return await self._add(
            User(
                username=username,
                first_name=username.title(),
                last_name="Tester",
                home_facility_id=home_facility.id if home_facility else None,
            )
        )


@pytest.fixture
def build(db_session: AsyncSession) -> Builder:
    return Builder(db_session)


# ── Auth Fixtures ────────────────────────────────────────────────

@pytest.fixture
def bearer():
    """Headers carrying a user access token: bearer(user_id)."""
    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}
    return _headers


@pytest.fixture
def service_headers() -> dict:
    return {"Authorization": f"Bearer {create_service_token('requisition-service')}"}


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "db: Tests against the database")
    config.addinivalue_line("markers", "api: HTTP API tests")
