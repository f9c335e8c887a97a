# tests/conftest.py — Shared test fixtures
from typing import List, Tuple

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from config import Settings
from context import AppContext
from models import UserRole
from notifications import EmailNotifier
from main import create_app

TEST_SECRET = "test-secret-key-for-unit-tests-only-min-32-chars"
DEFAULT_PASSWORD = "TestPassword123!"


class RecordingNotifier(EmailNotifier):
    """Captures outbound emails instead of posting them"""

    def __init__(self):
        super().__init__(sender="no-reply@pulse-crm.local", api_url="https://email.invalid/send", api_key="test")
        self.sent: List[Tuple[str, str, str]] = []

    async def send(self, to: str, subject: str, html_body: str) -> bool:
        self.sent.append((to, subject, html_body))
        return True

    def subjects_for(self, to: str) -> List[str]:
        return [subject for recipient, subject, _ in self.sent if recipient == to]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        table_name="pulse_crm_test",
        jwt_secret=TEST_SECRET,
        environment="test",
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture(scope="function")
async def ctx(settings, notifier):
    context = AppContext.from_settings(settings, notifier=notifier)
    await context.startup()
    yield context
    await context.shutdown()


@pytest_asyncio.fixture(scope="function")
async def store(ctx):
    return ctx.store


@pytest_asyncio.fixture(scope="function")
async def client(ctx):
    """HTTP test client bound to the per-test context"""
    app = create_app(context=ctx)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def signup(client: AsyncClient, email: str, name: str = "Test User", password: str = DEFAULT_PASSWORD,
                 org_name: str = None, org_id: str = None):
    body = {"email": email, "password": password, "name": name}
    if org_name is not None:
        body["orgName"] = org_name
    if org_id is not None:
        body["orgId"] = org_id
    return await client.post("/auth/signup", json=body)


async def login(client: AsyncClient, email: str, org_id: str, password: str = DEFAULT_PASSWORD) -> dict:
    res = await client.post("/auth/login", json={"email": email, "password": password, "orgId": org_id})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['token']}"}


@pytest_asyncio.fixture
async def test_org(client):
    """A workspace created through signup; returns its org id"""
    res = await signup(client, "admin@acme.com", name="Alice Admin", org_name="Acme")
    assert res.status_code == 201, res.text
    return res.json()["orgId"]


@pytest_asyncio.fixture
async def admin_headers(client, test_org):
    return await login(client, "admin@acme.com", test_org)


@pytest_asyncio.fixture
async def member_headers(client, test_org):
    res = await signup(client, "bob@acme.com", name="Bob Member", org_id=test_org)
    assert res.status_code == 201, res.text
    return await login(client, "bob@acme.com", test_org)


@pytest.fixture
def make_headers(ctx):
    """Auth headers for arbitrary claims, signed with the test secret"""
    def _make(org_id: str, role: UserRole = UserRole.MEMBER, email: str = "someone@example.com",
              user_id: str = "user-1", name: str = "Someone") -> dict:
        token = ctx.credentials.issue_token(user_id, org_id, role, name, email)
        return {"Authorization": f"Bearer {token}"}
    return _make
