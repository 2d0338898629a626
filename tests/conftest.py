import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Test settings; must be in place before the app reads its settings.
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "rewards_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ["MONGODB_TRANSACTIONS"] = "false"
os.environ["LEDGER_RETRY_BACKOFF_MS"] = "1"
os.environ["OFFERS_SECRET"] = "offers-secret"
os.environ["REVU_SECRET"] = "revu-secret"
os.environ["KIWI_SECRET"] = "kiwi-secret"
os.environ["CPX_SECRET"] = "cpx-secret"


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database per test, registered through init_db."""
    from mongomock_motor import AsyncMongoMockClient

    from rewards_ledger.db.init import init_db
    mock_client = AsyncMongoMockClient()
    await init_db(client=mock_client)
    yield mock_client


@pytest_asyncio.fixture
async def client(db) -> AsyncGenerator[AsyncClient, None]:
    from rewards_ledger.main import app
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def auth_headers():
    from rewards_ledger.core.security import create_identity_token

    def _headers(uid: str, email_verified: bool = True, admin: bool = False) -> dict:
        token = create_identity_token(
            {"uid": uid, "email": f"{uid}@example.com", "email_verified": email_verified, "admin": admin}
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def make_user(db):
    from rewards_ledger.models.user import User
    from rewards_ledger.services.users import derive_referral_code

    async def _make(uid: str, **fields) -> User:
        fields.setdefault("referral_code", derive_referral_code(uid))
        user = User(uid=uid, **fields)
        await user.insert()
        return user

    return _make
