# config.py — Process-wide configuration for Pulse CRM
# Loaded once at startup and handed to every component through AppContext.
# Nothing here is mutated after the application is built.

import os
import secrets
import logging
from typing import List

from pydantic import BaseModel, Field

logger = logging.getLogger("pulse-crm.config")

INSECURE_SECRETS = {"", "change-this-to-a-secure-random-key-in-production"}


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Runtime settings for the API, the store and the notification sink"""

    database_url: str = "sqlite+aiosqlite:///./pulse_crm.db"
    table_name: str = "pulse_crm"
    jwt_secret: str = Field(default_factory=lambda: secrets.token_urlsafe(64))
    jwt_secret_is_ephemeral: bool = False
    sender_email: str = "no-reply@pulse-crm.local"
    email_api_url: str = "https://api.resend.com/emails"
    email_api_key: str = ""
    release_email_lock_on_delete: bool = False
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    environment: str = "development"
    sql_echo: bool = False
    otel_endpoint: str = ""

    @classmethod
    def from_env(cls) -> "Settings":
        secret = os.getenv("JWT_SECRET_KEY", "")
        ephemeral = secret in INSECURE_SECRETS
        if ephemeral:
            secret = secrets.token_urlsafe(64)
            logger.warning(
                "JWT_SECRET_KEY not set or insecure. Generated ephemeral key; "
                "tokens will not survive a restart. Set JWT_SECRET_KEY in production!"
            )

        return cls(
            database_url=os.getenv("DATABASE_URL", cls.model_fields["database_url"].default),
            table_name=os.getenv("TABLE_NAME", cls.model_fields["table_name"].default),
            jwt_secret=secret,
            jwt_secret_is_ephemeral=ephemeral,
            sender_email=os.getenv("SENDER_EMAIL", cls.model_fields["sender_email"].default),
            email_api_url=os.getenv("EMAIL_API_URL", cls.model_fields["email_api_url"].default),
            email_api_key=os.getenv("EMAIL_API_KEY", ""),
            release_email_lock_on_delete=_env_flag("RELEASE_EMAIL_LOCK_ON_DELETE"),
            cors_origins=[
                origin.strip()
                for origin in os.getenv("CORS_ORIGINS", "*").split(",")
                if origin.strip()
            ],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            environment=os.getenv("ENVIRONMENT", "development"),
            sql_echo=_env_flag("SQL_ECHO"),
            otel_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", ""),
        )

    def startup_warnings(self) -> List[str]:
        """Configuration problems worth logging when the app boots."""
        warnings = []
        if self.jwt_secret_is_ephemeral or len(self.jwt_secret) < 32:
            warnings.append(
                "⚠️  JWT_SECRET_KEY is not set or too short - generate one: "
                "python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )
        if not self.email_api_key:
            warnings.append("⚠️  EMAIL_API_KEY not set - welcome and login alert emails are disabled")
        if self.release_email_lock_on_delete:
            logger.info("Email locks are released when users are deleted")
        return warnings
