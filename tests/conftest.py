from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from payplan.core.auth import create_access_token
from payplan.core.config import settings
from payplan.db.mongo import create_indexes, get_db
from payplan.main import app
from payplan.models.account import AccountRole
from payplan.models.purchase import Purchase
from payplan.repositories.account_repo import AccountRepository
from payplan.repositories.purchase_repo import PurchaseRepository
from payplan.services.notification_service import EmailNotifier

TEST_DB_NAME = "payplan_test"


@pytest_asyncio.fixture
async def test_db():
    """In-memory Mongo database with the production indexes."""
    client = AsyncMongoMockClient()
    db = client[TEST_DB_NAME]
    await create_indexes(db)
    yield db


@pytest_asyncio.fixture
async def admin_account(test_db):
    return await AccountRepository(test_db).create_account(
        "Admin", "admin@example.com", AccountRole.ADMIN
    )


@pytest_asyncio.fixture
async def payer(test_db):
    """Regular account with installments enabled and the default split."""
    repo = AccountRepository(test_db)
    account = await repo.create_account("Jane Payer", "jane@example.com")
    account.installments_enabled = True
    return await repo.save_account(account)


@pytest_asyncio.fixture
async def other_account(test_db):
    return await AccountRepository(test_db).create_account("Other", "other@example.com")


@pytest_asyncio.fixture
async def purchase(test_db):
    """$10.00 service lasting three months."""
    return await PurchaseRepository(test_db).create_purchase(
        Purchase(name="Coaching", price_cents=1000, duration="3 months")
    )


@pytest.fixture
def notifier():
    """Notifier double; assert on the awaited calls."""
    return AsyncMock(spec=EmailNotifier)


@pytest.fixture
def api_db():
    """Database for API tests. Indexes are skipped: no event loop here."""
    client = AsyncMongoMockClient()
    return client[TEST_DB_NAME]


@pytest.fixture
def test_client(api_db, monkeypatch):
    """TestClient bound to the in-memory database.

    Not entered as a context manager, so the lifespan (and its real Mongo
    connection) never runs.
    """
    monkeypatch.setattr(settings, "ADMIN_EMAILS", ["admin@example.com"])
    monkeypatch.setattr(settings, "EMAIL_API_URL", "")
    app.dependency_overrides[get_db] = lambda: api_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build a bearer header for an account id."""
    def _headers(account_id) -> dict:
        return {"Authorization": f"Bearer {create_access_token(str(account_id))}"}
    return _headers
