"""Tests for the outbound email notifier."""
import json

import httpx
import pytest

from config import Settings
from notifications import EmailNotifier

API_URL = "https://email.invalid/emails"


def _notifier(handler, api_key="re_test_key"):
    return EmailNotifier("no-reply@pulse-crm.local", API_URL, api_key, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_send_posts_json_with_bearer_key():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email_123"})

    ok = await _notifier(handler).send("alice@acme.com", "Hello", "<p>Hi</p>")
    assert ok is True
    assert captured["url"] == API_URL
    assert captured["auth"] == "Bearer re_test_key"
    assert captured["body"] == {
        "from": "no-reply@pulse-crm.local",
        "to": ["alice@acme.com"],
        "subject": "Hello",
        "html": "<p>Hi</p>",
    }


@pytest.mark.asyncio
async def test_provider_error_is_swallowed():
    def handler(request):
        return httpx.Response(422, json={"message": "invalid from address"})

    assert await _notifier(handler).send("alice@acme.com", "Hello", "<p>Hi</p>") is False


@pytest.mark.asyncio
async def test_transport_failure_is_swallowed():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    assert await _notifier(handler).send("alice@acme.com", "Hello", "<p>Hi</p>") is False


@pytest.mark.asyncio
async def test_disabled_without_api_key():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200)

    notifier = _notifier(handler, api_key="")
    assert notifier.enabled is False
    assert await notifier.send("alice@acme.com", "Hello", "<p>Hi</p>") is False
    assert calls == []


@pytest.mark.asyncio
async def test_welcome_wording_by_role():
    subjects = []

    def handler(request):
        subjects.append(json.loads(request.content)["subject"])
        return httpx.Response(200)

    notifier = _notifier(handler)
    await notifier.send_welcome("a@acme.com", "Alice", "org-1", "ADMIN")
    await notifier.send_welcome("b@acme.com", "Bob", "org-1", "MEMBER")
    assert subjects == [
        "Welcome to Pulse CRM - Your Workspace is Ready",
        "You have joined a Workspace on Pulse CRM",
    ]


@pytest.mark.asyncio
async def test_templates_escape_user_input():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content)["html"])
        return httpx.Response(200)

    await _notifier(handler).send_login_alert("a@acme.com", "<script>alert(1)</script>")
    assert "<script>" not in bodies[0]
    assert "&lt;script&gt;" in bodies[0]


@pytest.mark.asyncio
async def test_signup_succeeds_when_email_provider_is_down(tmp_path):
    from httpx import ASGITransport, AsyncClient
    from context import AppContext
    from main import create_app

    def handler(request):
        return httpx.Response(503, text="unavailable")

    settings = Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'down.db'}",
        jwt_secret="test-secret-key-for-unit-tests-only-min-32-chars",
    )
    ctx = AppContext.from_settings(settings, notifier=_notifier(handler))
    await ctx.startup()
    try:
        app = create_app(context=ctx)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            res = await client.post("/auth/signup", json={
                "email": "founder@acme.com", "password": "SecurePass123!", "name": "F", "orgName": "Acme",
            })
            assert res.status_code == 201
            org_id = res.json()["orgId"]
            res = await client.post("/auth/login", json={
                "email": "founder@acme.com", "password": "SecurePass123!", "orgId": org_id,
            })
            assert res.status_code == 200
    finally:
        await ctx.shutdown()


def test_from_settings():
    notifier = EmailNotifier.from_settings(Settings(sender_email="crm@acme.com", email_api_key="k"))
    assert notifier.sender == "crm@acme.com"
    assert notifier.api_url == "https://api.resend.com/emails"
    assert notifier.enabled
