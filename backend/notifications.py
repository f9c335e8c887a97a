# notifications.py — Outbound email sink (welcome, login alert, reset code)
#
# Delivery is fire-and-forget: send() never raises, it logs and returns False.
# No identity or lead write ever depends on an email going out.

import html
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from config import Settings

logger = logging.getLogger("pulse-crm.notifications")

EMAIL_TIMEOUT_SECONDS = 10.0
PRODUCT_NAME = "Pulse CRM"


class EmailNotifier:
    """Posts HTML emails to a transactional email HTTP API"""

    def __init__(
        self,
        sender: str,
        api_url: str,
        api_key: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.sender = sender
        self.api_url = api_url
        self.api_key = api_key
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailNotifier":
        return cls(settings.sender_email, settings.email_api_url, settings.email_api_key)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def send(self, to: str, subject: str, html_body: str) -> bool:
        if not self.enabled:
            logger.info(f"Email delivery disabled; dropped '{subject}' for {to}")
            return False

        payload = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=EMAIL_TIMEOUT_SECONDS, transport=self._transport) as client:
                resp = await client.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False

        if resp.status_code >= 400:
            logger.error(f"Email provider rejected message to {to}: {resp.status_code} {resp.text[:200]}")
            return False

        logger.info(f"Email sent to {to}")
        return True

    # --- Templates ---

    async def send_welcome(self, to: str, name: str, org_id: str, role: str) -> bool:
        is_admin = role == "ADMIN"
        subject = (
            f"Welcome to {PRODUCT_NAME} - Your Workspace is Ready"
            if is_admin
            else f"You have joined a Workspace on {PRODUCT_NAME}"
        )
        closing = (
            "<p>Share this <strong>Organization ID</strong> with your team so they can join your workspace.</p>"
            if is_admin
            else "<p>You have been added to the workspace. Contact your admin if you have questions.</p>"
        )
        body = f"""
      <div style="font-family: sans-serif; padding: 20px; color: #333;">
        <h1 style="color: #4F46E5;">Welcome, {html.escape(name)}!</h1>
        <p>You have successfully registered for {PRODUCT_NAME}.</p>
        <div style="background: #f3f4f6; padding: 15px; border-radius: 8px; margin: 20px 0;">
          <p><strong>Organization ID:</strong> <code style="font-size: 1.2em; color: #d946ef;">{html.escape(org_id)}</code></p>
          <p><strong>Your Role:</strong> {html.escape(role)}</p>
          <p><strong>Username:</strong> {html.escape(to)}</p>
        </div>
        {closing}
        <p>Best,<br>The Pulse Team</p>
      </div>
    """
        return await self.send(to, subject, body)

    async def send_login_alert(self, to: str, name: str, when: Optional[datetime] = None) -> bool:
        when = when or datetime.now(timezone.utc)
        body = f"""
      <h3>New Login Detected</h3>
      <p>Hello {html.escape(name)},</p>
      <p>We detected a new login to your account.</p>
      <p><strong>Time:</strong> {when.strftime("%Y-%m-%d %H:%M:%S %Z")}</p>
      <p>If this was you, you can ignore this email.</p>
    """
        return await self.send(to, "Security Alert: New Login", body)

    async def send_reset_code(self, to: str, code: str, valid_minutes: int) -> bool:
        body = f"""
      <h3>Password Reset</h3>
      <p>Your {PRODUCT_NAME} reset code is:</p>
      <p style="font-size: 1.6em; letter-spacing: 4px;"><strong>{html.escape(code)}</strong></p>
      <p>The code expires in {valid_minutes} minutes. If you did not ask for it, ignore this email.</p>
    """
        return await self.send(to, f"{PRODUCT_NAME} password reset code", body)
