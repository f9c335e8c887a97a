# leads.py — Tenant-scoped lead operations
#
# Callers pass the org id taken from verified token claims; nothing here ever
# reads an org id out of a request body. Custom attributes are stored flat on
# the lead, checked only for being scalar. The org's field schema is advisory
# and is not consulted on write.

import logging
from typing import Any, Dict, List

import tenant_keys
from document_store import DocumentStore, ItemNotFound
from errors import NotFound, ValidationFailure
from models import Lead, LeadStatus, Note

logger = logging.getLogger("pulse-crm.leads")

PIPELINE_STATUSES = [s.value for s in LeadStatus]
# Server-owned attributes a caller cannot set on create
IGNORED_ON_CREATE = {"id", "createdAt", "notes", "PK", "SK", "type"}
MAX_NOTE_LENGTH = 5000


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def _check_status(status: Any) -> str:
    if status not in PIPELINE_STATUSES:
        raise ValidationFailure(
            f"Invalid status '{status}'. Expected one of: {', '.join(PIPELINE_STATUSES)}"
        )
    return status


def _check_value(value: Any):
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValidationFailure("Lead value must be a number")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            raise ValidationFailure("Lead value must be a number")
        return int(number) if number.is_integer() else number
    raise ValidationFailure("Lead value must be a number")


def build_lead(org_id: str, data: Dict[str, Any]) -> Lead:
    """Validate a free-form payload into a Lead with server-generated id and empty notes"""
    if not isinstance(data, dict):
        raise ValidationFailure("Lead payload must be a JSON object")

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationFailure("Lead name is required")

    email = data.get("email") or ""
    if not isinstance(email, str):
        raise ValidationFailure("Lead email must be a string")

    custom: Dict[str, Any] = {}
    for key, value in data.items():
        if key in Lead.CORE_ATTRIBUTES or key in IGNORED_ON_CREATE:
            continue
        if not isinstance(key, str) or not key.strip():
            raise ValidationFailure("Custom field names must be non-empty strings")
        if not _is_scalar(value):
            raise ValidationFailure(f"Custom field '{key}' must be a string, number, boolean or null")
        custom[key] = value

    return Lead(
        org_id=org_id,
        name=name.strip(),
        email=email.strip(),
        status=_check_status(data.get("status") or LeadStatus.NEW.value),
        value=_check_value(data.get("value")),
        custom_fields=custom,
    )


class LeadService:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def create_lead(self, org_id: str, data: Dict[str, Any]) -> Lead:
        lead = build_lead(org_id, data)
        # Plain put: lead ids are fresh uuids, last write wins is fine
        await self.store.put_item(lead.to_item())
        logger.info(f"Lead {lead.id} created in org {org_id}")
        return lead

    async def get_lead(self, org_id: str, lead_id: str) -> Lead:
        key = tenant_keys.lead_key(org_id, lead_id)
        item = await self.store.get_item(key.pk, key.sk)
        if item is None:
            raise NotFound("Lead not found")
        return Lead.from_item(item)

    async def list_leads(self, org_id: str) -> List[Lead]:
        items = await self.store.query(
            tenant_keys.org_partition(org_id), sk_prefix=tenant_keys.LEAD_PREFIX,
        )
        return [Lead.from_item(item) for item in items]

    async def add_note(self, org_id: str, lead_id: str, content: str) -> Note:
        if not isinstance(content, str) or not content.strip():
            raise ValidationFailure("Note content is required")
        if len(content) > MAX_NOTE_LENGTH:
            raise ValidationFailure(f"Note content must be at most {MAX_NOTE_LENGTH} characters")

        note = Note(content=content)
        key = tenant_keys.lead_key(org_id, lead_id)
        try:
            await self.store.append_to_list(key.pk, key.sk, "notes", [note.to_dict()])
        except ItemNotFound:
            raise NotFound("Lead not found")
        return note

    async def update_lead_status(self, org_id: str, lead_id: str, status: str) -> Dict[str, Any]:
        _check_status(status)
        key = tenant_keys.lead_key(org_id, lead_id)
        try:
            await self.store.update_item(key.pk, key.sk, {"status": status})
        except ItemNotFound:
            raise NotFound("Lead not found")
        return {"id": lead_id, "status": status}

    async def delete_lead(self, org_id: str, lead_id: str) -> None:
        key = tenant_keys.lead_key(org_id, lead_id)
        await self.store.delete_item(key.pk, key.sk)
        logger.info(f"Lead {lead_id} deleted from org {org_id}")

    async def pipeline_stats(self, org_id: str) -> Dict[str, Any]:
        leads = await self.list_leads(org_id)
        total = len(leads)
        by_status = {status: 0 for status in PIPELINE_STATUSES}
        pipeline_value = 0
        for lead in leads:
            by_status[lead.status] = by_status.get(lead.status, 0) + 1
            pipeline_value += lead.value or 0

        closed = by_status.get(LeadStatus.CLOSED.value, 0)
        return {
            "totalLeads": total,
            "newLeads": by_status.get(LeadStatus.NEW.value, 0),
            "pipelineValue": pipeline_value,
            "conversionRate": round(closed / total * 100) if total else 0,
            "byStatus": by_status,
        }
