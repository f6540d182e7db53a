from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from staffpay.main import app
from staffpay.core.auth import create_access_token
from staffpay.db.mongo import get_db
from staffpay.models.entry import EntryKind, LedgerEntry, PaymentState
from staffpay.repositories.entry_repo import EntryRepository
from staffpay.schemas.entry import EntryCreate

TEST_MONGODB_DB = "staffpay_test"
LIMA = ZoneInfo("America/Lima")


def lima_time(day: str, hour: int = 12) -> datetime:
    """Noon (or the given hour) of a calendar day in the reference zone."""
    return datetime.fromisoformat(day).replace(hour=hour, tzinfo=LIMA)


@pytest.fixture
def test_db():
    """Fresh in-memory database per test."""
    client = AsyncMongoMockClient()
    return client[TEST_MONGODB_DB]


@pytest.fixture
def test_client(test_db):
    """Fixture for FastAPI test client.

    The lifespan is not entered, so no real MongoDB connection is made;
    requests use the in-memory database through get_db.
    """
    app.dependency_overrides[get_db] = lambda: test_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def valid_token():
    return create_access_token("operator-1")


@pytest.fixture
def auth_headers(valid_token):
    return {"Authorization": f"Bearer {valid_token}"}


@pytest.fixture
def make_entry():
    """Build an in-memory entry without touching the database."""
    def _make(
        day: str = "2024-03-04",
        kind=EntryKind.DAILY_PAY,
        collaborator_id: str = "col-1",
        hour: int = 12,
        paid: bool = False,
        **amounts
    ) -> LedgerEntry:
        return LedgerEntry(
            collaborator_id=collaborator_id,
            date=lima_time(day, hour),
            kind=kind,
            payment_state=PaymentState.PAID if paid else PaymentState.PENDING,
            **amounts
        )
    return _make


@pytest_asyncio.fixture
async def seed_entry(test_db):
    """Insert a validated entry through the repository."""
    repo = EntryRepository(test_db)

    async def _seed(
        day: str = "2024-03-04",
        kind=EntryKind.DAILY_PAY,
        collaborator_id: str = "col-1",
        hour: int = 12,
        **amounts
    ) -> LedgerEntry:
        return await repo.create_entry(
            EntryCreate(
                collaborator_id=collaborator_id,
                date=lima_time(day, hour),
                kind=kind,
                **amounts
            ),
            created_by="operator-1"
        )
    return _seed
