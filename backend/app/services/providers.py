"""
Outbound email senders.

Three interchangeable senders share one contract:

  is_configured()            -> bool
  await send_one(message)    -> SendResult        (never raises)
  await send_batch(messages) -> BatchSendResult   (never raises)

  - SendGridSender  transactional API, needs SENDGRID_API_KEY
  - NylasSender     sends from the user's linked mailbox, needs NYLAS_API_KEY
                    and a per-user grant id
  - FallbackSender  development / demo path: logs the email and reports
                    success without delivering anything

Batches are sent concurrently and always wait for every message to settle.
One slow or failing message never cancels the others.
"""

import asyncio
import logging
import time
from email.utils import parseaddr
from typing import Optional

import httpx

from app import settings
from app.errors import AuthError, ConfigurationError, EmailServiceError, TransportError
from app.models.email import BatchSendResult, EmailMessage, SendResult
from app.services.nylas_client import NylasClient, short_grant
from app.services.secrets import SENDGRID_API_KEY, SecretsProvider

logger = logging.getLogger(__name__)


class EmailSender:
    """Base sender: subclasses implement is_configured, _check_ready and _deliver."""

    name = "base"

    def is_configured(self) -> bool:
        raise NotImplementedError

    def _check_ready(self) -> None:
        """Raise ConfigurationError / AuthError before any network call."""

    async def _deliver(self, message: EmailMessage, index: int) -> Optional[str]:
        """Send one message and return the provider message id."""
        raise NotImplementedError

    async def send_one(self, message: EmailMessage, index: int = 0) -> SendResult:
        try:
            self._check_ready()
            message_id = await self._deliver(message, index)
        except ConfigurationError as exc:
            logger.info(f"{self.name}: not configured, email to {message.to} not sent: {exc}")
            return SendResult.failure(exc)
        except EmailServiceError as exc:
            logger.warning(f"{self.name}: failed to send email to {message.to}: {exc}")
            return SendResult.failure(exc)
        except Exception as exc:
            logger.exception(f"{self.name}: unexpected error sending email to {message.to}")
            return SendResult.failure(TransportError(str(exc)))

        return SendResult(success=True, message_id=message_id)

    async def send_batch(self, messages: list[EmailMessage]) -> BatchSendResult:
        logger.info(f"{self.name}: sending {len(messages)} emails")
        outcomes = await asyncio.gather(
            *(self.send_one(message, index) for index, message in enumerate(messages)),
            return_exceptions=True,
        )
        results = [
            outcome if isinstance(outcome, SendResult) else SendResult.failure(outcome)
            for outcome in outcomes
        ]
        batch = BatchSendResult.from_results(results, provider=self.name)
        logger.info(f"{self.name}: {batch.message}")
        return batch


# ---------------------------------------------------------------------------
# SendGrid
# ---------------------------------------------------------------------------

def _sender_address(message: EmailMessage) -> dict:
    """Resolve the from address; "Name <addr>" strings are split."""
    if message.from_email:
        name, addr = parseaddr(message.from_email)
        if addr:
            return {"email": addr, "name": name or settings.DEFAULT_FROM_NAME}
    return {"email": settings.DEFAULT_FROM_EMAIL, "name": settings.DEFAULT_FROM_NAME}


class SendGridSender(EmailSender):
    name = "sendgrid"

    def __init__(
        self,
        secrets: SecretsProvider,
        api_uri: str = settings.SENDGRID_API_URI,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._secrets = secrets
        self._api_uri = api_uri.rstrip("/")
        self._transport = transport

    def is_configured(self) -> bool:
        return self._secrets.has(SENDGRID_API_KEY)

    def _check_ready(self) -> None:
        if not self.is_configured():
            raise ConfigurationError("SendGrid API key not configured")

    @staticmethod
    def _build_payload(message: EmailMessage) -> dict:
        payload = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": _sender_address(message),
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.body},
                {"type": "text/html", "value": message.body.replace("\n", "<br>")},
            ],
        }
        if message.reply_to:
            payload["reply_to"] = {"email": message.reply_to}
        return payload

    async def _deliver(self, message: EmailMessage, index: int) -> Optional[str]:
        api_key = self._secrets.get(SENDGRID_API_KEY)
        try:
            async with httpx.AsyncClient(
                base_url=self._api_uri, transport=self._transport
            ) as client:
                response = await client.post(
                    "/v3/mail/send",
                    json=self._build_payload(message),
                    headers={"Authorization": f"Bearer {api_key}"},
                )
        except httpx.HTTPError as e:
            raise TransportError(f"SendGrid request failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthError(f"SendGrid rejected the API key (HTTP {response.status_code})")
        if response.status_code >= 400:
            raise TransportError(
                f"SendGrid send failed with HTTP {response.status_code}: {response.text[:200]}"
            )
        return response.headers.get("X-Message-Id")


# ---------------------------------------------------------------------------
# Nylas
# ---------------------------------------------------------------------------

class NylasSender(EmailSender):
    name = "nylas"

    def __init__(self, nylas: NylasClient, grant_id: Optional[str] = None):
        self._nylas = nylas
        self.grant_id = grant_id

    def with_grant(self, grant_id: Optional[str]) -> "NylasSender":
        """Return a sender bound to one user's grant."""
        return NylasSender(self._nylas, grant_id)

    def is_configured(self) -> bool:
        return bool(self.grant_id) and self._nylas.is_configured()

    def _check_ready(self) -> None:
        if not self.grant_id:
            raise AuthError("unauthenticated: no Nylas grant in session")
        if not self._nylas.is_configured():
            raise ConfigurationError("Nylas API key not configured")

    async def _deliver(self, message: EmailMessage, index: int) -> Optional[str]:
        payload = {
            "subject": message.subject,
            "to": [{"email": message.to}],
            "body": message.body,
        }
        if message.reply_to:
            payload["reply_to"] = [{"email": message.reply_to}]

        logger.debug(f"nylas: sending to {message.to} via grant {short_grant(self.grant_id)}")
        sent = await self._nylas.send_message(self.grant_id, payload)
        return sent.get("id")


# ---------------------------------------------------------------------------
# Fallback (mock delivery)
# ---------------------------------------------------------------------------

class FallbackSender(EmailSender):
    """Always succeeds. Nothing is delivered; the email is only logged."""

    name = "fallback"

    def is_configured(self) -> bool:
        return True

    async def _deliver(self, message: EmailMessage, index: int) -> Optional[str]:
        sender = _sender_address(message)
        logger.info(
            "==== EMAIL SENT (DEVELOPMENT MODE) ====\n"
            f"From: {sender['name']} <{sender['email']}>\n"
            f"To: {message.to}\n"
            f"Subject: {message.subject}\n"
            f"Body:\n{message.body}"
        )
        return f"mock-msg-{int(time.time() * 1000)}-{index}"
