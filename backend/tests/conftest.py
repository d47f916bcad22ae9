"""Shared fixtures: in-memory SQLite database, HTTP client and ticket helpers."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import ticketflow.models  # noqa: F401
from ticketflow.config import settings
from ticketflow.database import Base, get_db
from ticketflow.main import app
from ticketflow.middleware.auth import AuthContext, AuthScope
from ticketflow.models.activity import TicketActivity
from ticketflow.models.enums import AuthorType
from ticketflow.schemas.ticket import TicketCreate
from ticketflow.services.activity_log import Actor
from ticketflow.services.tickets import create_ticket

API = settings.api_prefix
API_KEY = "test-api-key"
REPORTER_TOKEN = "rt_test_reporter"

ADMIN = Actor(type=AuthorType.ADMIN, name="alice")
AGENT = Actor(type=AuthorType.AGENT, name="fixer-bot")
ADMIN_AUTH = AuthContext(scope=AuthScope.ADMIN_UI)
API_AUTH = AuthContext(scope=AuthScope.API_KEY)
REPORTER_AUTH = AuthContext(scope=AuthScope.REPORTER)


@pytest.fixture(autouse=True)
def test_settings(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "api_key", API_KEY)
    monkeypatch.setattr(settings, "reporter_token", REPORTER_TOKEN)
    monkeypatch.setattr(settings, "admin_ui_enabled", True)
    monkeypatch.setattr(settings, "debug", False)
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "max_upload_bytes", 1024)
    monkeypatch.setattr(settings, "triage_batch_size", 3)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_ticket(db):
    """Create a ticket through the store; keyword overrides go into TicketCreate."""

    async def _make(actor: Actor = ADMIN, **overrides):
        fields = {
            "title": "Login button does nothing",
            "description": "Clicking login on Safari has no effect",
            "ticket_type": "bug",
            "reporter_id": "reporter-1",
        }
        fields.update(overrides)
        ticket, _ = await create_ticket(db, TicketCreate(**fields), actor)
        return ticket

    return _make


async def count_activity(session_factory, ticket_id) -> int:
    async with session_factory() as session:
        result = await session.execute(
            select(func.count()).select_from(TicketActivity).where(TicketActivity.ticket_id == ticket_id)
        )
        return result.scalar_one()
