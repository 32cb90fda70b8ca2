"""
Email Relay Client

Delivers email through an HTTP relay with bounded retries and
exponential backoff. Request handlers never send directly: they enqueue
a job (schedule_email) and the worker calls send().
"""

import asyncio
import logging
from typing import Optional

import httpx

from config.settings import settings

logger = logging.getLogger("rfp_portal.email")


class EmailDeliveryError(Exception):
    """Email could not be delivered after all attempts."""
    pass


class EmailClient:
    """Async client for the email relay."""

    def __init__(
        self,
        relay_url: Optional[str] = None,
        token: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.relay_url = relay_url or settings.email_relay_url
        self.token = token or settings.email_relay_token
        self.max_attempts = max_attempts or settings.email_max_attempts
        self.backoff_base = settings.email_backoff_base if backoff_base is None else backoff_base
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.relay_url)

    async def send(
        self,
        to: str,
        subject: str,
        text: str,
        html: Optional[str] = None
    ) -> bool:
        """
        Send one message.

        Returns False when no relay is configured. Raises
        EmailDeliveryError once every attempt has failed.
        """
        if not self.configured:
            logger.info(f"Email relay not configured; skipping '{subject}' to {to}")
            return False

        payload = {
            "from": settings.email_from,
            "to": to,
            "subject": subject,
            "text": text,
        }
        if html:
            payload["html"] = html

        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        attempt = 0
        async with httpx.AsyncClient(timeout=15.0, headers=headers, transport=self._transport) as client:
            while True:
                attempt += 1
                try:
                    response = await client.post(self.relay_url, json=payload)
                    response.raise_for_status()
                    logger.info(f"Email '{subject}' sent to {to}")
                    return True
                except (httpx.HTTPStatusError, httpx.TransportError) as e:
                    logger.warning(f"Email to {to} failed (attempt {attempt}/{self.max_attempts}): {e}")
                    if attempt >= self.max_attempts:
                        raise EmailDeliveryError(
                            f"Failed to send '{subject}' to {to} after {attempt} attempts"
                        ) from e

                backoff_seconds = self.backoff_base ** attempt
                await asyncio.sleep(backoff_seconds)


async def schedule_email(to: str, subject: str, text: str, html: Optional[str] = None) -> None:
    """Queue an email for the worker. Queue failures are logged, not raised."""
    from workers.queue import enqueue_email

    try:
        await enqueue_email(to, subject, text, html)
    except Exception as e:
        logger.warning(f"Could not queue email '{subject}' to {to}: {e}")


# ============================================================================
# Templates
# ============================================================================

def company_invitation_email(company_name: str, inviter: str, link: str, days: int) -> tuple[str, str]:
    subject = f"You're invited to join {company_name}"
    text = (
        f"{inviter} has invited you to join {company_name} on the RFP Portal.\n\n"
        f"Accept the invitation: {link}\n\n"
        f"This invitation expires in {days} days."
    )
    return subject, text


def rfp_invitation_email(rfp_title: str, message: Optional[str], link: str, days: int) -> tuple[str, str]:
    subject = f"Invitation to participate: {rfp_title}"
    text = f'You have been invited to participate in "{rfp_title}".\n\n'
    if message:
        text += f"{message}\n\n"
    text += f"View the invitation: {link}\n\nThis invitation expires in {days} days."
    return subject, text
