# tests/test_seed.py — Demo data generation
import pytest
from httpx import AsyncClient

from errors import DuplicateIdentity
from models import LeadStatus, UserRole
from seed_data import LEAD_COUNT, MEMBER_COUNT, SEED_NOTE, LeadSeeder, seed_organization


class TestLeadSeeder:
    def test_generates_leads_and_members(self):
        data = LeadSeeder(seed=42).generate_all("org-1")
        assert len(data["leads"]) == LEAD_COUNT
        assert len(data["members"]) == MEMBER_COUNT

        for lead in data["leads"]:
            assert lead.org_id == "org-1"
            assert lead.status in [s.value for s in LeadStatus]
            assert 1000 <= lead.value <= 10999
            assert [n.content for n in lead.notes] == [SEED_NOTE]

        for member in data["members"]:
            assert member.role == UserRole.MEMBER
            assert member.password_hash is None
            assert member.email.startswith("member.")

    def test_same_seed_same_data(self):
        first = LeadSeeder(seed=7).generate_all("org-1")
        second = LeadSeeder(seed=7).generate_all("org-1")
        assert [m.email for m in first["members"]] == [m.email for m in second["members"]]
        assert [lead.name for lead in first["leads"]] == [lead.name for lead in second["leads"]]

    def test_operations_include_email_locks(self):
        operations = LeadSeeder(seed=1).build_operations("org-1")
        assert len(operations) == LEAD_COUNT + 2 * MEMBER_COUNT
        locks = [op for op in operations if op.item["PK"].startswith("EMAIL#")]
        assert len(locks) == MEMBER_COUNT
        assert all(op.if_not_exists for op in locks)


@pytest.mark.asyncio
async def test_seed_endpoint(client: AsyncClient, admin_headers, ctx):
    res = await client.post("/seed", headers=admin_headers)
    assert res.status_code == 200
    assert res.json() == {"message": "Test data injected successfully!"}

    leads = (await client.get("/leads", headers=admin_headers)).json()
    assert len(leads) == LEAD_COUNT
    assert all(lead["notes"][0]["content"] == SEED_NOTE for lead in leads)

    users = (await client.get("/users", headers=admin_headers)).json()
    members = [u for u in users if u["email"].startswith("member.")]
    assert len(members) == MEMBER_COUNT
    for member in members:
        lock = await ctx.identity.get_email_lock(member["email"])
        assert lock is not None


@pytest.mark.asyncio
async def test_seeded_members_cannot_log_in(client: AsyncClient, admin_headers, test_org):
    await client.post("/seed", headers=admin_headers)
    users = (await client.get("/users", headers=admin_headers)).json()
    member = next(u for u in users if u["email"].startswith("member."))
    res = await client.post("/auth/login", json={
        "email": member["email"], "password": "hashed_dummy_password", "orgId": test_org,
    })
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_seed_conflict_is_all_or_nothing(ctx, test_org):
    seeded = LeadSeeder(seed=3)
    await seed_organization(ctx.store, test_org, seeded)

    with pytest.raises(DuplicateIdentity):
        await seed_organization(ctx.store, test_org, LeadSeeder(seed=3))
    assert len(await ctx.leads.list_leads(test_org)) == LEAD_COUNT


@pytest.mark.asyncio
async def test_seed_requires_token(client: AsyncClient):
    res = await client.post("/seed")
    assert res.status_code == 401
