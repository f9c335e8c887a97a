# identity.py — Organisations, users and the global email lock
#
# A login identity is the pair (User item inside the org partition, Email
# Lock item in the global EMAIL# namespace). Both are written in one
# conditional transaction, so an email can never be half-registered.

import logging
from typing import List, Optional

import tenant_keys
from document_store import (
    DocumentStore, Put, Delete, ConditionalCheckFailed, TransactionCanceled,
)
from errors import DuplicateIdentity, NotFound
from models import Organization, UserRecord, EmailLock, UserRole

logger = logging.getLogger("pulse-crm.identity")

USER_PROJECTION = ("PK", "SK", "userId", "name", "email", "role", "createdAt")


class IdentityStore:
    """Creation and lookup of organisations, users and email locks"""

    def __init__(self, store: DocumentStore, release_email_lock_on_delete: bool = False):
        self.store = store
        self.release_email_lock_on_delete = release_email_lock_on_delete

    # --- Organisations ---

    async def create_organization(self, name: str) -> str:
        org = Organization(name=name)
        try:
            await self.store.put_item(org.to_item(), if_not_exists=True)
        except ConditionalCheckFailed:
            raise DuplicateIdentity("Organization already exists")
        logger.info(f"Organization created: {org.id}")
        return org.id

    async def get_organization(self, org_id: str) -> Optional[Organization]:
        key = tenant_keys.org_key(org_id)
        item = await self.store.get_item(key.pk, key.sk)
        return Organization.from_item(item) if item else None

    async def org_exists(self, org_id: str) -> bool:
        if not org_id:
            return False
        return await self.get_organization(org_id) is not None

    # --- Users ---

    async def register_user(
        self,
        org_id: str,
        email: str,
        name: str,
        password_hash: str,
        role: UserRole,
        organization: Optional[Organization] = None,
    ) -> UserRecord:
        """Write the user and its email lock (and optionally the new org) atomically.

        Raises DuplicateIdentity when any condition fails; the store does not
        say which item conflicted, so neither do we.
        """
        clean_email = tenant_keys.normalize_email(email)
        user = UserRecord(
            org_id=org_id,
            name=name,
            email=clean_email,
            password_hash=password_hash,
            role=role,
        )
        lock = EmailLock(email=clean_email, org_id=org_id, created_at=user.created_at)

        operations = []
        if organization is not None:
            if organization.id != org_id:
                raise ValueError("New organization id does not match the user's org id")
            operations.append(Put(organization.to_item(), if_not_exists=True))
        operations.append(Put(user.to_item(), if_not_exists=True))
        operations.append(Put(lock.to_item(), if_not_exists=True))

        try:
            await self.store.transact_write(operations)
        except TransactionCanceled:
            logger.info(f"Registration rejected for {clean_email}: identity already taken")
            raise DuplicateIdentity()

        logger.info(f"User registered in org {org_id} as {role.value}")
        return user

    async def find_user(self, org_id: str, email: str) -> Optional[UserRecord]:
        key = tenant_keys.user_key(org_id, email)
        item = await self.store.get_item(key.pk, key.sk)
        return UserRecord.from_item(item) if item else None

    async def list_users(self, org_id: str) -> List[UserRecord]:
        items = await self.store.query(
            tenant_keys.org_partition(org_id),
            sk_prefix=tenant_keys.USER_PREFIX,
            projection=USER_PROJECTION,
        )
        return [UserRecord.from_item(item) for item in items]

    async def get_email_lock(self, email: str) -> Optional[EmailLock]:
        key = tenant_keys.email_lock_key(email)
        item = await self.store.get_item(key.pk, key.sk)
        return EmailLock.from_item(item) if item else None

    async def delete_user(self, org_id: str, email: str) -> None:
        """Remove the user item; the email lock stays unless release is enabled"""
        user = tenant_keys.user_key(org_id, email)
        if not self.release_email_lock_on_delete:
            await self.store.delete_item(user.pk, user.sk)
            logger.info(f"User removed from org {org_id}; email lock retained")
            return

        operations = [Delete(user.pk, user.sk)]
        lock = await self.get_email_lock(email)
        if lock is not None and lock.org_id == org_id:
            key = tenant_keys.email_lock_key(email)
            operations.append(Delete(key.pk, key.sk))
        await self.store.transact_write(operations)
        logger.info(f"User removed from org {org_id}; email lock released")

    async def require_org(self, org_id: str) -> None:
        if not await self.org_exists(org_id):
            raise NotFound("Organization ID not found. Please check and try again.")
