"""
Outreach email router.

Sends the wizard's outreach emails through whichever provider the config
selects, and exposes the config itself.

Clients that keep their own copy of the Nylas grant (browser localStorage)
send it in the ``X-Nylas-Grant-Id`` header; the send routes reconcile it with
the server session before sending (see services/session_bridge.py).

Endpoints:
  POST  /send         send one email
  POST  /send-batch   send many emails concurrently
  GET   /status       which providers are usable right now
  GET   /config       current config document
  PATCH /config       partial config update (may carry an apiKey)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Request

from app.dependencies import (
    get_config_service,
    get_dispatcher,
    get_nylas_client,
    get_secrets,
)
from app.errors import ConfigurationError, PersistenceError
from app.models.email import BatchSendResult, EmailMessage, SendBatchRequest, SendResult
from app.services.config_store import ConfigService
from app.services.dispatcher import EmailDispatcher, EnsureSession
from app.services.nylas_client import NylasClient
from app.services.secrets import NYLAS_API_KEY, SENDGRID_API_KEY, SecretsProvider
from app.services.session_bridge import (
    SESSION_GRANT_KEY,
    SESSION_MOCK_GRANT_KEY,
    InMemoryGrantStore,
    SessionBridge,
    SessionGrantServer,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _session_reconciler(
    request: Request,
    nylas: NylasClient,
    client_grant_id: Optional[str],
) -> Optional[EnsureSession]:
    """
    Build the ensure_session callable for this request.

    Sessions flagged with a mock grant (POST /api/direct/set-direct-grant) get
    no reconciler, so the dispatcher falls back to mock delivery for Nylas.
    """
    if request.session.get(SESSION_MOCK_GRANT_KEY):
        return None
    bridge = SessionBridge(
        InMemoryGrantStore(client_grant_id),
        SessionGrantServer(request.session, nylas),
    )
    return bridge.ensure_session


@router.post("/send", response_model=SendResult)
async def send_email(
    message: EmailMessage,
    request: Request,
    x_nylas_grant_id: Optional[str] = Header(None),
    dispatcher: EmailDispatcher = Depends(get_dispatcher),
    nylas: NylasClient = Depends(get_nylas_client),
):
    ensure_session = _session_reconciler(request, nylas, x_nylas_grant_id)
    return await dispatcher.dispatch_one(message, ensure_session=ensure_session)


@router.post(
    "/send-batch",
    response_model=BatchSendResult,
    responses={
        200: {
            "description": "Every email settled; partial failures are listed in results",
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "sent": 2,
                        "failed": 1,
                        "total": 3,
                        "provider": "sendgrid",
                        "message": "2 of 3 emails sent successfully, 1 failed",
                        "results": [
                            {"success": True, "message_id": "abc123", "error": None, "error_type": None},
                            {"success": True, "message_id": "def456", "error": None, "error_type": None},
                            {
                                "success": False,
                                "message_id": None,
                                "error": "SendGrid send failed with HTTP 500",
                                "error_type": "transport",
                            },
                        ],
                    }
                }
            },
        },
        400: {"description": "No emails in the request"},
    },
)
async def send_batch(
    body: SendBatchRequest,
    request: Request,
    x_nylas_grant_id: Optional[str] = Header(None),
    dispatcher: EmailDispatcher = Depends(get_dispatcher),
    nylas: NylasClient = Depends(get_nylas_client),
):
    """
    Send outreach emails to the selected care providers.

    All emails are sent concurrently and the response is returned only when
    every one has settled. ``success`` is true when at least one email went
    out. ``provider`` names the backend that handled the batch; "fallback"
    means nothing was actually delivered.
    """
    if not body.emails:
        raise HTTPException(status_code=400, detail="No emails to send")

    ensure_session = _session_reconciler(request, nylas, x_nylas_grant_id)
    return await dispatcher.dispatch_send(body.emails, ensure_session=ensure_session)


@router.get("/status")
async def email_status(
    request: Request,
    reload: bool = False,
    config_service: ConfigService = Depends(get_config_service),
    secrets: SecretsProvider = Depends(get_secrets),
):
    if reload:
        config_service.invalidate()
    config = await config_service.get()
    return {
        "provider": config.email_service.provider,
        "sendgridAvailable": secrets.has(SENDGRID_API_KEY),
        "nylasAvailable": secrets.has(NYLAS_API_KEY),
        "grantInSession": bool(request.session.get(SESSION_GRANT_KEY)),
        "usingMockGrant": bool(request.session.get(SESSION_MOCK_GRANT_KEY)),
    }


@router.get("/config")
async def get_email_config(
    config_service: ConfigService = Depends(get_config_service),
):
    config = await config_service.get()
    return config.to_document()


@router.patch("/config")
async def update_email_config(
    partial: dict = Body(...),
    config_service: ConfigService = Depends(get_config_service),
):
    """
    Merge a partial config document. Provider sections may include an
    ``apiKey``; it is applied for this process and never written to disk.
    """
    try:
        config = await config_service.update(partial)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return config.to_document()
