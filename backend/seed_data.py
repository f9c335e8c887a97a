"""
Pulse CRM — Demo data for a workspace

Generates a handful of leads and non-loginable team members for the caller's
organisation and writes them in one transaction. Demo users get email locks
like any other user, so a seeded address can never be registered twice.
"""

import logging
import random
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from document_store import DocumentStore, Put, TransactionCanceled
from errors import DuplicateIdentity
from models import EmailLock, Lead, LeadStatus, Note, UserRecord, UserRole

logger = logging.getLogger("pulse-crm.seed")


# ── Configuration ───────────────────────────────────────────

FIRST_NAMES = ["James", "Sarah", "Michael", "Emily", "David", "Jessica", "Daniel", "Olivia",
               "Priya", "Kenji", "Amara", "Lucas"]
LAST_NAMES = ["Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis",
              "Okafor", "Tanaka", "Silva", "Nguyen"]
DOMAINS = ["gmail.com", "yahoo.com", "outlook.com", "company.com"]
DEMO_MEMBER_DOMAIN = "test.com"

LEAD_COUNT = 5
MEMBER_COUNT = 2
SEED_NOTE = "Auto-generated test lead."


class LeadSeeder:
    """Generates demo leads and team members for one organisation."""

    def __init__(self, seed: Optional[int] = None):
        self.random = random.Random(seed)
        self.now = datetime.now(timezone.utc).isoformat()

    def _name(self):
        return self.random.choice(FIRST_NAMES), self.random.choice(LAST_NAMES)

    # ── Generators ──────────────────────────────────────────

    def generate_lead(self, org_id: str) -> Lead:
        first, last = self._name()
        return Lead(
            org_id=org_id,
            name=f"{first} {last}",
            email=f"{first.lower()}.{last.lower()}@{self.random.choice(DOMAINS)}",
            status=self.random.choice(list(LeadStatus)).value,
            value=self.random.randint(1000, 10999),
            notes=[Note(content=SEED_NOTE, created_at=self.now)],
            created_at=self.now,
        )

    def generate_member(self, org_id: str) -> UserRecord:
        first, last = self._name()
        # The suffix keeps repeated seeding from colliding on the global email lock
        suffix = uuid.UUID(int=self.random.getrandbits(128)).hex[:8]
        return UserRecord(
            org_id=org_id,
            name=f"{first} {last}",
            email=f"member.{first.lower()}.{suffix}@{DEMO_MEMBER_DOMAIN}",
            password_hash=None,
            role=UserRole.MEMBER,
            created_at=self.now,
        )

    # ── Main Generator ──────────────────────────────────────

    def generate_all(self, org_id: str) -> Dict[str, Any]:
        return {
            "leads": [self.generate_lead(org_id) for _ in range(LEAD_COUNT)],
            "members": [self.generate_member(org_id) for _ in range(MEMBER_COUNT)],
        }

    def build_operations(self, org_id: str) -> List[Put]:
        data = self.generate_all(org_id)
        operations = [Put(lead.to_item()) for lead in data["leads"]]
        for member in data["members"]:
            lock = EmailLock(email=member.email, org_id=org_id, created_at=self.now)
            operations.append(Put(member.to_item(), if_not_exists=True))
            operations.append(Put(lock.to_item(), if_not_exists=True))
        return operations


async def seed_organization(store: DocumentStore, org_id: str, seeder: Optional[LeadSeeder] = None) -> int:
    """Write the demo data for org_id; returns the number of items written"""
    operations = (seeder or LeadSeeder()).build_operations(org_id)
    try:
        await store.transact_write(operations)
    except TransactionCanceled:
        raise DuplicateIdentity("Demo team member email already registered. Try seeding again.")
    logger.info(f"Seeded org {org_id} with {LEAD_COUNT} leads and {MEMBER_COUNT} members")
    return len(operations)
