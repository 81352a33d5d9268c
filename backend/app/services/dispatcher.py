"""
Dispatch / fallback layer for outreach email.

EmailDispatcher is the single entry point the routes use to send email:

  1. read the active provider from the Config Store
  2. for Nylas, run the session bridge first (best effort); the send uses
     the grant the server session holds, never an unverified client grant
  3. resolve the sender; an unconfigured sender (no key, no grant) is
     replaced by the FallbackSender so the wizard flow never hard-fails
  4. send the batch and record it in the audit log

Only an *unconfigured* provider falls back. A configured provider whose sends
fail reports those failures. BatchSendResult.provider always names the sender
that actually handled the batch, so a mock delivery is visible to the UI.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from app.models.email import BatchSendResult, EmailMessage, SendResult
from app.models.session import SessionGrant
from app.services.config_store import ConfigService
from app.services.email_log import log_email_sends
from app.services.providers import EmailSender, FallbackSender, NylasSender

logger = logging.getLogger(__name__)

EnsureSession = Callable[[], Awaitable[Optional[SessionGrant]]]


class EmailDispatcher:
    def __init__(
        self,
        config: ConfigService,
        sendgrid: EmailSender,
        nylas: NylasSender,
        fallback: Optional[EmailSender] = None,
        audit_log: bool = True,
    ):
        self._config = config
        self._sendgrid = sendgrid
        self._nylas = nylas
        self._fallback = fallback or FallbackSender()
        self._audit_log = audit_log

    async def resolve_sender(
        self,
        ensure_session: Optional[EnsureSession] = None,
        grant_id: Optional[str] = None,
    ) -> EmailSender:
        """Pick the sender for the current config, falling back when unconfigured."""
        config = await self._config.get()
        provider = config.email_service.provider

        if provider == "sendgrid":
            sender: EmailSender = self._sendgrid
        elif provider == "nylas":
            if ensure_session is not None:
                grant_id = await self._run_session_bridge(ensure_session, grant_id)
            sender = self._nylas.with_grant(grant_id)
        else:
            sender = self._fallback

        if not sender.is_configured():
            logger.info(f"Provider {provider!r} is not configured; using fallback sender")
            return self._fallback
        return sender

    async def dispatch_send(
        self,
        messages: list[EmailMessage],
        ensure_session: Optional[EnsureSession] = None,
        grant_id: Optional[str] = None,
    ) -> BatchSendResult:
        sender = await self.resolve_sender(ensure_session, grant_id)
        result = await sender.send_batch(messages)
        if self._audit_log:
            await asyncio.to_thread(log_email_sends, messages, result.results, sender.name)
        return result

    async def dispatch_one(
        self,
        message: EmailMessage,
        ensure_session: Optional[EnsureSession] = None,
        grant_id: Optional[str] = None,
    ) -> SendResult:
        batch = await self.dispatch_send([message], ensure_session, grant_id)
        return batch.results[0]

    @staticmethod
    async def _run_session_bridge(
        ensure_session: EnsureSession, grant_id: Optional[str]
    ) -> Optional[str]:
        try:
            grant = await ensure_session()
        except Exception as e:
            # The send below surfaces the real error (unauthenticated).
            logger.warning(f"Session reconciliation failed, continuing with send: {e}")
            return grant_id

        # Only a grant the server session holds is sent with.
        if grant is not None and grant.established_in_server:
            return grant.grant_id
        return None
