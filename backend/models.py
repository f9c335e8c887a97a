# models.py — Table layout and record types for Pulse CRM
# - One shared item table addressed by (pk, sk), data held as JSON
# - A companion table of appended list elements (lead notes) so appends are
#   single INSERT statements instead of read-modify-write cycles
# - Pydantic records for each entity living in the shared keyspace

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Any, ClassVar, Dict, List, Literal, NamedTuple, Optional, Set, Union

from pydantic import BaseModel, Field
from sqlalchemy import (
    Column, String, DateTime, JSON, Integer, MetaData, Table,
    Index, UniqueConstraint,
)

import tenant_keys


def utcnow():
    return datetime.now(timezone.utc)


def utcnow_iso() -> str:
    return utcnow().isoformat()


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, PyEnum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class LeadStatus(str, PyEnum):
    NEW = "New"
    CONTACTED = "Contacted"
    QUALIFIED = "Qualified"
    LOST = "Lost"
    CLOSED = "Closed"


class ItemType(str, PyEnum):
    ORGANIZATION = "ORGANIZATION"
    USER = "USER"
    EMAIL_LOCK = "EMAIL_LOCK"
    LEAD = "LEAD"
    SETTINGS = "SETTINGS"
    PASSWORD_RESET = "PASSWORD_RESET"


# ============================================================
# TABLES
# ============================================================

class CRMTables(NamedTuple):
    items: Table
    list_entries: Table


def define_tables(metadata: MetaData, table_name: str) -> CRMTables:
    """Declare the item table and its list-entry companion under table_name"""
    items = Table(
        table_name,
        metadata,
        # Autoincrement id gives the store its native (insertion) ordering
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("pk", String(320), nullable=False),
        Column("sk", String(320), nullable=False),
        Column("data", JSON, nullable=False, default=dict),
        Column("created_at", DateTime(timezone=True), default=utcnow),
        Column("updated_at", DateTime(timezone=True), default=utcnow, onupdate=utcnow),
        UniqueConstraint("pk", "sk", name=f"uq_{table_name}_pk_sk"),
    )
    list_entries = Table(
        f"{table_name}_list_entries",
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("pk", String(320), nullable=False),
        Column("sk", String(320), nullable=False),
        Column("attribute", String(100), nullable=False),
        Column("value", JSON, nullable=False),
        Column("created_at", DateTime(timezone=True), default=utcnow),
        Index(f"idx_{table_name}_list_key", "pk", "sk", "attribute"),
    )
    return CRMTables(items, list_entries)


# ============================================================
# RECORDS
# ============================================================

Scalar = Union[str, int, float, bool, None]

RESERVED_ATTRIBUTES = {"PK", "SK", "type"}


def _org_id_from_pk(pk: str) -> str:
    return pk[len(tenant_keys.ORG_PREFIX):] if pk.startswith(tenant_keys.ORG_PREFIX) else pk


class Organization(BaseModel):
    id: str = Field(default_factory=new_uuid)
    name: str
    created_at: str = Field(default_factory=utcnow_iso)

    def to_item(self) -> Dict[str, Any]:
        key = tenant_keys.org_key(self.id)
        return {
            "PK": key.pk,
            "SK": key.sk,
            "type": ItemType.ORGANIZATION.value,
            "name": self.name,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "Organization":
        return cls(
            id=_org_id_from_pk(item["PK"]),
            name=item.get("name") or "",
            created_at=item.get("createdAt") or "",
        )


class UserRecord(BaseModel):
    user_id: str = Field(default_factory=new_uuid)
    org_id: str
    name: str = ""
    email: str
    password_hash: Optional[str] = None
    role: UserRole = UserRole.MEMBER
    created_at: str = Field(default_factory=utcnow_iso)

    def to_item(self) -> Dict[str, Any]:
        key = tenant_keys.user_key(self.org_id, self.email)
        return {
            "PK": key.pk,
            "SK": key.sk,
            "type": ItemType.USER.value,
            "userId": self.user_id,
            "name": self.name,
            "email": tenant_keys.normalize_email(self.email),
            "passwordHash": self.password_hash,
            "role": self.role.value,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "UserRecord":
        return cls(
            user_id=item.get("userId") or "",
            org_id=_org_id_from_pk(item["PK"]),
            name=item.get("name") or "",
            email=item.get("email") or item["SK"][len(tenant_keys.USER_PREFIX):],
            password_hash=item.get("passwordHash"),
            role=UserRole(item.get("role", UserRole.MEMBER.value)),
            created_at=item.get("createdAt") or "",
        )

    def to_public(self) -> Dict[str, Any]:
        """Profile without the password hash"""
        return {
            "userId": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "createdAt": self.created_at,
        }


class EmailLock(BaseModel):
    email: str
    org_id: str
    created_at: str = Field(default_factory=utcnow_iso)

    def to_item(self) -> Dict[str, Any]:
        key = tenant_keys.email_lock_key(self.email)
        return {
            "PK": key.pk,
            "SK": key.sk,
            "type": ItemType.EMAIL_LOCK.value,
            "orgId": self.org_id,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "EmailLock":
        return cls(
            email=item["PK"][len(tenant_keys.EMAIL_PREFIX):],
            org_id=item["orgId"],
            created_at=item.get("createdAt") or "",
        )


class Note(BaseModel):
    content: str
    created_at: str = Field(default_factory=utcnow_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {"content": self.content, "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Note":
        return cls(content=data.get("content", ""), created_at=data.get("createdAt", ""))


class Lead(BaseModel):
    """Fixed core schema plus an open map of scalar custom attributes"""

    CORE_ATTRIBUTES: ClassVar[Set[str]] = {"id", "name", "email", "status", "value", "notes", "createdAt"}

    id: str = Field(default_factory=new_uuid)
    org_id: str
    name: str
    email: str = ""
    status: str = LeadStatus.NEW.value
    value: Union[int, float] = 0
    notes: List[Note] = Field(default_factory=list)
    created_at: str = Field(default_factory=utcnow_iso)
    custom_fields: Dict[str, Scalar] = Field(default_factory=dict)

    def to_api(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.custom_fields)
        data.update({
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "status": self.status,
            "value": self.value,
            "notes": [n.to_dict() for n in self.notes],
            "createdAt": self.created_at,
        })
        return data

    def to_item(self) -> Dict[str, Any]:
        key = tenant_keys.lead_key(self.org_id, self.id)
        item = self.to_api()
        item.update({"PK": key.pk, "SK": key.sk, "type": ItemType.LEAD.value})
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "Lead":
        custom = {
            k: v for k, v in item.items()
            if k not in cls.CORE_ATTRIBUTES and k not in RESERVED_ATTRIBUTES
        }
        return cls(
            id=item["id"],
            org_id=_org_id_from_pk(item["PK"]),
            name=item.get("name") or "",
            email=item.get("email") or "",
            status=item.get("status") or LeadStatus.NEW.value,
            value=item.get("value") or 0,
            notes=[Note.from_dict(n) for n in item.get("notes") or []],
            created_at=item.get("createdAt") or "",
            custom_fields=custom,
        )


class FieldDefinition(BaseModel):
    label: str = Field(..., min_length=1, max_length=100)
    type: Literal["text", "number", "date"] = "text"
