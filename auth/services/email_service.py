"""Email delivery service."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from html import escape
from typing import Any

import httpx

from auth.config import AuthConfig

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailService:
    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    async def _send(self, to: str, subject: str, html: str) -> bool:
        if AuthConfig.EMAIL_PROVIDER != "resend":
            return False
        if not AuthConfig.RESEND_API_KEY:
            logger.debug("RESEND_API_KEY not set, skipping email %r", subject)
            return False

        payload = {
            "from": f"{AuthConfig.EMAIL_FROM_NAME} <{AuthConfig.EMAIL_FROM_ADDRESS}>",
            "to": [to],
            "subject": f"{AuthConfig.EMAIL_SUBJECT_PREFIX} {subject}",
            "html": html,
        }
        headers = {"Authorization": f"Bearer {AuthConfig.RESEND_API_KEY}"}

        async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
            response = await client.post(RESEND_API_URL, headers=headers, json=payload)
        if response.status_code != 200:
            logger.warning("Email provider rejected %r with status %s", subject, response.status_code)
            return False
        return True

    @staticmethod
    def _greeting(user: dict[str, Any]) -> str:
        return escape(user.get("first_name") or user.get("email", "there"))

    async def send_welcome_email(self, user: dict[str, Any]) -> bool:
        html = (
            f"<p>Hi {self._greeting(user)},</p>"
            f"<p>Welcome to {escape(AuthConfig.EMAIL_APP_NAME)}. Your account is ready.</p>"
        )
        return await self._send(user["email"], f"Welcome to {AuthConfig.EMAIL_APP_NAME}", html)

    async def send_otp_email(self, email: str, otp: str) -> bool:
        if len(otp) != 6 or not otp.isdigit():
            raise ValueError("OTP must be a 6-digit numeric code")
        html = (
            f"<p>Your password reset code is <strong>{otp}</strong>.</p>"
            f"<p>It expires in {AuthConfig.OTP_EXPIRY_MINUTES} minutes.</p>"
        )
        return await self._send(email, f"Password Reset OTP - {otp}", html)

    async def send_login_email(
        self,
        user: dict[str, Any],
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> bool:
        when = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        html = (
            f"<p>Hi {self._greeting(user)},</p>"
            f"<p>A new sign-in to your account happened at {when}.</p>"
            f"<p>IP address: {escape(ip_address or 'unknown')}<br>"
            f"Device: {escape(user_agent or 'unknown')}</p>"
            "<p>If this wasn't you, reset your password and sign out of other sessions.</p>"
        )
        return await self._send(user["email"], "New login to your account", html)
