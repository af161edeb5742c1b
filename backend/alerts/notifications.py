"""
Notification dispatch for alerts.

Honours the organization's channel settings: email goes out through SendGrid
when an API key is configured; SMS is stubbed (logged only) and only for
high/critical severity. Delivery is best-effort and never raises into the
alert pipeline.
"""

import html
import uuid
from typing import Any

import sendgrid
import structlog
from sendgrid.helpers.mail import Mail
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import User
from organizations.config import get_config

logger = structlog.get_logger()

URGENT_SEVERITIES = ("high", "critical")
DEFAULT_CHANNELS = {"email": {"enabled": True, "recipients": []}, "sms": {"enabled": False, "recipients": []}}


def _html_body(subject: str, message: str, severity: str) -> str:
    accent = "#dc2626" if severity == "critical" else "#f59e0b"
    return f"""
    <div style="font-family: Inter, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="border-left: 4px solid {accent}; padding: 16px;">
        <p style="margin: 0; font-weight: 600;">{html.escape(severity.upper())}: {html.escape(subject)}</p>
      </div>
      <p style="color: #334155; line-height: 1.6;">{html.escape(message)}</p>
    </div>
    """


def send_email(to_email: str, subject: str, message: str, severity: str) -> bool:
    settings = get_settings()
    if not settings.sendgrid_api_key:
        logger.info("notification.email_not_configured", to=to_email, subject=subject)
        return False

    try:
        sg = sendgrid.SendGridAPIClient(api_key=settings.sendgrid_api_key)
        email = Mail(
            from_email=settings.alert_from_email,
            to_emails=to_email,
            subject=subject,
            html_content=_html_body(subject, message, severity),
        )
        response = sg.send(email)
        return response.status_code in (200, 201, 202)
    except Exception as exc:  # noqa: BLE001
        logger.error("notification.email_failed", to=to_email, error=str(exc))
        return False


def send_sms(to_phone: str, message: str) -> bool:
    # No SMS provider wired in yet; delivery is logged only.
    logger.info("notification.sms_stub", to=to_phone, body=message[:50])
    return True


async def send_notification(
    db: AsyncSession,
    organization_id: uuid.UUID,
    recipient: dict[str, Any],
    subject: str,
    message: str,
    severity: str,
) -> bool:
    """Deliver one notification over every enabled channel. Returns False on any failure."""
    try:
        config = await get_config(db, organization_id)
        channels = (config.notification_channels if config else None) or DEFAULT_CHANNELS

        delivered = True
        if channels.get("email", {}).get("enabled") and recipient.get("email"):
            delivered = send_email(recipient["email"], subject, message, severity) and delivered
        if (
            channels.get("sms", {}).get("enabled")
            and recipient.get("phone")
            and severity in URGENT_SEVERITIES
        ):
            delivered = send_sms(recipient["phone"], message) and delivered
        return delivered
    except Exception as exc:  # noqa: BLE001
        logger.error(
            "notification.dispatch_failed",
            organization_id=str(organization_id),
            recipient=recipient.get("email"),
            error=str(exc),
        )
        return False


async def configured_recipients(db: AsyncSession, organization_id: uuid.UUID) -> list[dict[str, Any]]:
    """Recipients listed on the org's channel settings (email addresses and phone numbers)."""
    config = await get_config(db, organization_id)
    channels = (config.notification_channels if config else None) or DEFAULT_CHANNELS
    recipients = [{"email": addr} for addr in channels.get("email", {}).get("recipients", [])]
    recipients.extend({"phone": phone} for phone in channels.get("sms", {}).get("recipients", []))
    return recipients


async def users_with_role(db: AsyncSession, organization_id: uuid.UUID, role: str) -> list[dict[str, Any]]:
    result = await db.execute(
        select(User).where(
            User.organization_id == organization_id,
            User.role == role,
            User.is_active.is_(True),
        )
    )
    return [
        {"user_id": user.user_id, "email": user.email, "phone": user.phone}
        for user in result.scalars().all()
    ]


async def notify_all(
    db: AsyncSession,
    organization_id: uuid.UUID,
    recipients: list[dict[str, Any]],
    subject: str,
    message: str,
    severity: str,
) -> int:
    """Send to each recipient; returns how many deliveries succeeded."""
    sent = 0
    for recipient in recipients:
        if await send_notification(db, organization_id, recipient, subject, message, severity):
            sent += 1
    return sent
