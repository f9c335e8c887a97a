# context.py — Application context: the services one running API shares
#
# Built once from Settings and stored on app.state; handlers reach it through
# get_context. Everything in it is either read-only or safe to share between
# concurrent requests (the engine pool, the signing secret, the email client).

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from auth import CredentialService
from config import Settings
from document_store import DocumentStore
from field_settings import FieldSettingsService
from identity import IdentityStore
from leads import LeadService
from notifications import EmailNotifier
from password_reset import PasswordResetService

logger = logging.getLogger("pulse-crm.context")


@dataclass
class AppContext:
    settings: Settings
    store: DocumentStore
    identity: IdentityStore
    credentials: CredentialService
    leads: LeadService
    field_settings: FieldSettingsService
    password_reset: PasswordResetService
    notifier: EmailNotifier

    @classmethod
    def from_settings(cls, settings: Settings, notifier: Optional[EmailNotifier] = None) -> "AppContext":
        store = DocumentStore.from_settings(settings)
        identity = IdentityStore(store, settings.release_email_lock_on_delete)
        credentials = CredentialService(settings.jwt_secret)
        notifier = notifier or EmailNotifier.from_settings(settings)
        return cls(
            settings=settings,
            store=store,
            identity=identity,
            credentials=credentials,
            leads=LeadService(store),
            field_settings=FieldSettingsService(store),
            password_reset=PasswordResetService(store, identity, credentials, notifier),
            notifier=notifier,
        )

    async def startup(self) -> None:
        await self.store.create_tables()
        logger.info(f"Store ready (table '{self.settings.table_name}')")

    async def shutdown(self) -> None:
        await self.store.dispose()


def get_context(request: Request) -> AppContext:
    return request.app.state.context
