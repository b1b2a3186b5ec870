"""
Back Office Identity - Test Configuration

Pytest fixtures and configuration.
"""

from typing import AsyncGenerator, Dict, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backoffice.fastapi.crud.directory import SqlDirectoryStore
from backoffice.fastapi.dependencies.database import init_db
from backoffice.fastapi.main import app
from backoffice.fastapi.schemas.directory import (
    BRANCHES, CLIENTS, EMPLOYEES, PAYROLL_RECORDS, USERS,
)
from backoffice.security.dependencies import get_provider, get_store
from backoffice.security.errors import InvalidCredentials, ProviderError
from backoffice.security.provider import ProviderAccount


# In-memory database shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite://"


class FakeAuthProvider:
    """In-memory stand-in for the external auth provider."""

    def __init__(self):
        self.accounts: Dict[str, tuple] = {}
        self.oauth_tokens: Dict[str, Optional[str]] = {}
        self.revoked: set = set()
        self.outage = False
        self.sign_in_calls = []
        self.sign_outs = []

    def add_account(self, uid: str, email: str, password: str, display_name: str = "Root Admin"):
        self.accounts[email] = (password, uid, display_name)

    async def sign_in_with_password(self, email: str, password: str) -> ProviderAccount:
        self.sign_in_calls.append(email)
        if self.outage:
            raise ProviderError()
        entry = self.accounts.get(email)
        if entry is None or entry[0] != password:
            raise InvalidCredentials()
        _, uid, display_name = entry
        return ProviderAccount(uid=uid, email=email, display_name=display_name, refresh_token=f"refresh-{uid}")

    async def verify_oauth_token(self, id_token: str) -> ProviderAccount:
        if self.outage:
            raise ProviderError()
        if id_token not in self.oauth_tokens:
            raise InvalidCredentials()
        email = self.oauth_tokens[id_token]
        if not email:
            raise ProviderError("No email address linked to this provider account.")
        return ProviderAccount(uid=f"oauth-{id_token}", email=email, refresh_token=f"refresh-oauth-{id_token}")

    async def sign_out(self, account: Optional[ProviderAccount]) -> None:
        self.sign_outs.append(account)

    async def refresh(self, provider_token: str) -> Optional[ProviderAccount]:
        if self.outage:
            raise ProviderError()
        if provider_token in self.revoked or not provider_token.startswith("refresh-"):
            return None
        return ProviderAccount(uid=provider_token[len("refresh-"):], email=None, refresh_token=provider_token)


@pytest_asyncio.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh in-memory database for each test."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def store(engine: AsyncEngine) -> SqlDirectoryStore:
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return SqlDirectoryStore(session_factory)


@pytest.fixture
def provider() -> FakeAuthProvider:
    fake = FakeAuthProvider()
    fake.add_account("root-uid", "root@backoffice.example", "root-secret")
    return fake


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def directory(store: SqlDirectoryStore) -> SqlDirectoryStore:
    """Seed one record of every kind the login strategies look at."""
    await store.put(CLIENTS, "C001", {
        "id": "C001",
        "name": "Acme Traders",
        "email": "accounts@acme.example",
        "branchIds": ["B001"],
        "portalAccess": True,
        "portalPassword": "acme-pass",
    })
    await store.put(CLIENTS, "C002", {
        "id": "C002",
        "name": "Dormant Ltd",
        "email": "hello@dormant.example",
        "branchIds": ["B002"],
        "portalAccess": False,
        "portalPassword": "dormant-pass",
    })
    await store.put(BRANCHES, "B001", {
        "id": "B001",
        "name": "North",
        "email": "north@branches.example",
        "portalUsername": "north.portal",
        "portalPassword": "north-pass",
        "nextInvoiceNumber": 12,
    })
    await store.put(BRANCHES, "B002", {
        "id": "B002",
        "name": "South",
        "email": "south@branches.example",
    })
    await store.put(USERS, "U-ADMIN", {
        "uid": "U-ADMIN",
        "email": "admin@corp.example",
        "password": "admin-pass",
        "displayName": "Office Admin",
        "role": "Admin",
        "allowedBranchIds": [],
    })
    await store.put(USERS, "U-ACC", {
        "uid": "U-ACC",
        "email": "books@corp.example",
        "password": "books-pass",
        "displayName": "Accountant",
        "role": "Accountant",
        "allowedBranchIds": ["B001"],
    })
    await store.put(USERS, "U-EMP", {
        "uid": "U-EMP",
        "email": "8341",
        "password": "8341",
        "displayName": "Ravi",
        "role": "Employee",
        "allowedBranchIds": ["B001"],
        "employeeId": "8341",
    })
    await store.put(EMPLOYEES, "8341", {
        "id": "8341",
        "name": "Ravi",
        "designation": "Field Executive",
        "branchId": "B001",
        "status": "Active",
        "salary": {"basic": 20000, "hra": 8000},
    })
    await store.put(PAYROLL_RECORDS, "PR-1", {
        "id": "PR-1",
        "employeeId": "8341",
        "month": "March",
        "year": 2024,
        "netPay": 26500,
        "status": "Paid",
    })
    return store


@pytest_asyncio.fixture(scope="function")
async def client(directory: SqlDirectoryStore, provider: FakeAuthProvider) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client bound to the seeded store and fake provider."""
    app.dependency_overrides[get_store] = lambda: directory
    app.dependency_overrides[get_provider] = lambda: provider

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def login(client: AsyncClient, login_id: str, secret: str, remember: bool = False) -> dict:
    response = await client.post(
        "/api/v1/auth/login",
        json={"loginId": login_id, "secret": secret, "remember": remember},
    )
    assert response.status_code == 200, response.text
    return response.json()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
