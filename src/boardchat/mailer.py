# /src/boardchat/mailer.py
# Transactional e-mail provider

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass
class EmailResult:
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


class EmailSender(ABC):
    """Fire-and-forget e-mail side channel.

    Implementations return a failed EmailResult instead of raising, so a
    broken provider never rolls back the operation that triggered the mail.
    """

    @abstractmethod
    async def send_email(self, to: str, subject: str, html: str) -> EmailResult:
        pass

    async def close(self) -> None:
        pass


class ResendEmailSender(EmailSender):
    """EmailSender for the Resend HTTP API."""

    def __init__(
        self,
        api_key: Optional[str],
        sender: str = "BoardR <onboarding@resend.dev>",
        timeout_seconds: float = 10.0
    ):
        self._api_key = api_key
        self._sender = sender
        self._timeout = timeout_seconds
        self._client: Optional[httpx.AsyncClient] = None
        self._logger = logging.getLogger(__name__)

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                }
            )
        return self._client

    async def send_email(self, to: str, subject: str, html: str) -> EmailResult:
        if not self.configured:
            self._logger.error("RESEND_API_KEY is not set. Skipping email.")
            return EmailResult(success=False, error="Email service is not configured")

        try:
            client = await self._get_client()
            response = await client.post(RESEND_API_URL, json={
                "from": self._sender,
                "to": [to],
                "subject": subject,
                "html": html,
            })
        except httpx.TimeoutException:
            self._logger.error(f"Resend API timeout sending to {to}")
            return EmailResult(success=False, error="timeout")
        except httpx.HTTPError as e:
            self._logger.error(f"Resend API error: {e}")
            return EmailResult(success=False, error=str(e))

        if response.status_code >= 400:
            self._logger.error(f"Resend API rejected email to {to}: {response.status_code} {response.text}")
            return EmailResult(success=False, error=f"HTTP {response.status_code}")

        message_id = response.json().get("id")
        self._logger.info(f"Email sent to {to}: {message_id}")
        return EmailResult(success=True, message_id=message_id)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def ticket_assignment_email(user_name: str, ticket_title: str):
    """Subject and HTML body for the ticket-assignment mail."""
    subject = f'You\'ve been assigned a new ticket: "{ticket_title}"'
    html = (
        "<h1>New Ticket Assignment</h1>"
        f"<p>Hi {user_name},</p>"
        "<p>You have been assigned a new ticket:</p>"
        f"<p><b>Title:</b> {ticket_title}</p>"
        "<p>You can view the ticket on the board.</p>"
    )
    return subject, html
