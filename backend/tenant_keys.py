# tenant_keys.py — Partition/sort key scheme for the shared CRM table
#
# Every tenant-owned record lives under PK "ORG#<orgId>", where orgId is an
# opaque random uuid (never the organisation name), so two tenants can never
# address each other's records. The only global namespace is "EMAIL#", which
# holds the login-identity locks.

from typing import NamedTuple

ORG_PREFIX = "ORG#"
EMAIL_PREFIX = "EMAIL#"
USER_PREFIX = "USER#"
LEAD_PREFIX = "LEAD#"
METADATA = "METADATA"
SETTINGS_FIELDS = "SETTINGS#FIELDS"
RESET_CODE = "RESET#CODE"


class ItemKey(NamedTuple):
    pk: str
    sk: str


def normalize_email(email: str) -> str:
    return email.strip().lower()


def org_partition(org_id: str) -> str:
    return f"{ORG_PREFIX}{org_id}"


def org_key(org_id: str) -> ItemKey:
    return ItemKey(org_partition(org_id), METADATA)


def user_key(org_id: str, email: str) -> ItemKey:
    return ItemKey(org_partition(org_id), f"{USER_PREFIX}{normalize_email(email)}")


def lead_key(org_id: str, lead_id: str) -> ItemKey:
    return ItemKey(org_partition(org_id), f"{LEAD_PREFIX}{lead_id}")


def email_lock_key(email: str) -> ItemKey:
    return ItemKey(f"{EMAIL_PREFIX}{normalize_email(email)}", METADATA)


def settings_key(org_id: str) -> ItemKey:
    return ItemKey(org_partition(org_id), SETTINGS_FIELDS)


def password_reset_key(email: str) -> ItemKey:
    """Pending reset code, stored beside the email lock it resolves through"""
    return ItemKey(f"{EMAIL_PREFIX}{normalize_email(email)}", RESET_CODE)
