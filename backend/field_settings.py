# field_settings.py — Per-org custom field schema (display only)
import logging
from typing import List

import tenant_keys
from document_store import DocumentStore
from models import FieldDefinition, ItemType

logger = logging.getLogger("pulse-crm.settings")


class FieldSettingsService:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_settings(self, org_id: str) -> List[FieldDefinition]:
        key = tenant_keys.settings_key(org_id)
        item = await self.store.get_item(key.pk, key.sk)
        if not item:
            return []
        return [FieldDefinition(**f) for f in item.get("fields") or []]

    async def save_settings(self, org_id: str, fields: List[FieldDefinition]) -> None:
        """Replace the whole schema; fields absent from the new list are gone"""
        key = tenant_keys.settings_key(org_id)
        await self.store.put_item({
            "PK": key.pk,
            "SK": key.sk,
            "type": ItemType.SETTINGS.value,
            "fields": [f.model_dump() for f in fields],
        })
        logger.info(f"Field schema saved for org {org_id} ({len(fields)} fields)")
