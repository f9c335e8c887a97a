# password_reset.py — Emailed one-time codes for resetting a password
#
# The email lock already maps a normalised email to its org, so the pending
# code is stored beside it (EMAIL#<email> / RESET#CODE). Only a hash of the
# code is kept. Requests for unknown emails succeed silently.

import hmac
import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone

import tenant_keys
from auth import CredentialService
from document_store import DocumentStore, Update, Delete, ItemNotFound, TransactionCanceled
from errors import ValidationFailure
from identity import IdentityStore
from models import ItemType
from notifications import EmailNotifier

logger = logging.getLogger("pulse-crm.password-reset")

RESET_CODE_TTL = timedelta(minutes=15)
RESET_CODE_DIGITS = 6
MAX_RESET_ATTEMPTS = 5

INVALID_CODE = "Invalid or expired reset code"


def _hash_code(email: str, code: str) -> str:
    return hashlib.sha256(f"{email}:{code}".encode("utf-8")).hexdigest()


class PasswordResetService:
    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityStore,
        credentials: CredentialService,
        notifier: EmailNotifier,
    ):
        self.store = store
        self.identity = identity
        self.credentials = credentials
        self.notifier = notifier

    async def request_reset(self, email: str) -> None:
        clean_email = tenant_keys.normalize_email(email)
        lock = await self.identity.get_email_lock(clean_email)
        if lock is None or await self.identity.find_user(lock.org_id, clean_email) is None:
            logger.info("Password reset requested for an unknown email")
            return

        code = f"{secrets.randbelow(10 ** RESET_CODE_DIGITS):0{RESET_CODE_DIGITS}d}"
        key = tenant_keys.password_reset_key(clean_email)
        await self.store.put_item({
            "PK": key.pk,
            "SK": key.sk,
            "type": ItemType.PASSWORD_RESET.value,
            "orgId": lock.org_id,
            "codeHash": _hash_code(clean_email, code),
            "attempts": [],
            "expiresAt": (datetime.now(timezone.utc) + RESET_CODE_TTL).isoformat(),
        })
        await self.notifier.send_reset_code(
            clean_email, code, int(RESET_CODE_TTL.total_seconds() // 60),
        )

    async def reset_password(self, email: str, code: str, new_password: str) -> None:
        """Verify a code and set the new password.

        Every attempt first claims a slot in the code's attempt log with an
        atomic append. Only the first MAX_RESET_ATTEMPTS slots are ever
        compared against the code, however many requests arrive at once.
        """
        clean_email = tenant_keys.normalize_email(email)
        key = tenant_keys.password_reset_key(clean_email)
        attempt = uuid.uuid4().hex
        try:
            await self.store.append_to_list(key.pk, key.sk, "attempts", [attempt])
        except ItemNotFound:
            raise ValidationFailure(INVALID_CODE)

        pending = await self.store.get_item(key.pk, key.sk)
        attempts = (pending or {}).get("attempts") or []
        if attempt not in attempts:
            # Discarded or replaced by a newer code since the slot was claimed
            raise ValidationFailure(INVALID_CODE)

        expires_at = datetime.fromisoformat(pending["expiresAt"])
        if datetime.now(timezone.utc) >= expires_at:
            await self.store.delete_item(key.pk, key.sk)
            raise ValidationFailure(INVALID_CODE)

        slot = attempts.index(attempt)
        if slot >= MAX_RESET_ATTEMPTS:
            await self.store.delete_item(key.pk, key.sk)
            raise ValidationFailure(INVALID_CODE)

        if not hmac.compare_digest(pending["codeHash"], _hash_code(clean_email, code.strip())):
            if slot + 1 >= MAX_RESET_ATTEMPTS:
                await self.store.delete_item(key.pk, key.sk)
                logger.warning("Password reset code discarded after too many attempts")
            raise ValidationFailure(INVALID_CODE)

        password_hash = self.credentials.hash_password(new_password)
        user = tenant_keys.user_key(pending["orgId"], clean_email)
        try:
            await self.store.transact_write([
                Update(user.pk, user.sk, {"passwordHash": password_hash}),
                Delete(key.pk, key.sk),
            ])
        except TransactionCanceled:
            # The user was deleted after the code was issued
            raise ValidationFailure(INVALID_CODE)
        logger.info(f"Password reset completed for a user in org {pending['orgId']}")
