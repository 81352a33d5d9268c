"""
Nylas account-linking router.

The server keeps the user's grant id in the signed session cookie
(``request.session["nylas_grant_id"]``). The browser keeps its own copy and
uses these endpoints to reconcile the two (see services/session_bridge.py).

Endpoints:
  GET  /grant-id           grant currently held by the session
  GET  /connection-status  is the session grant valid at Nylas?
  POST /set-grant-id       adopt a client-held grant into the session
  POST /auth-url           hosted OAuth URL for linking a mailbox
  POST /manual-exchange    exchange an OAuth code and adopt the grant
  POST /disconnect         drop the grant from the session
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from app.dependencies import get_nylas_client
from app.errors import AuthError, ConfigurationError, TransportError
from app.models.session import (
    AuthUrlRequest,
    ConnectionStatusResponse,
    ManualExchangeRequest,
    SetGrantIdRequest,
)
from app.services.nylas_client import NylasClient, short_grant
from app.services.session_bridge import (
    SESSION_GRANT_KEY,
    SESSION_MOCK_GRANT_KEY,
    SessionGrantServer,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _callback_url(request: Request) -> str:
    """OAuth callback URL on this host; https unless the proxy says otherwise."""
    protocol = request.headers.get("x-forwarded-proto") or "https"
    host = request.headers.get("host") or request.url.netloc
    return f"{protocol}://{host}/callback"


@router.get("/grant-id")
async def get_grant_id(request: Request):
    grant_id = request.session.get(SESSION_GRANT_KEY)
    return {"grantId": grant_id} if grant_id else {}


@router.get("/connection-status", response_model=ConnectionStatusResponse)
async def connection_status(
    request: Request,
    nylas: NylasClient = Depends(get_nylas_client),
):
    grant_id = request.session.get(SESSION_GRANT_KEY)
    if not grant_id:
        return ConnectionStatusResponse(connected=False)

    connected = await nylas.check_grant(grant_id)
    return ConnectionStatusResponse(connected=connected, grant_id=grant_id)


@router.post("/set-grant-id")
async def set_grant_id(
    body: SetGrantIdRequest,
    request: Request,
    nylas: NylasClient = Depends(get_nylas_client),
):
    """
    Adopt a client-held grant into the server session.

    The grant is stored only after Nylas confirms it; an unverifiable grant
    leaves the session untouched and returns 400.
    """
    if not body.grant_id:
        raise HTTPException(status_code=400, detail="Grant ID is required")

    logger.info(f"Restoring Nylas grant {short_grant(body.grant_id)} into session")
    adopted = await SessionGrantServer(request.session, nylas).restore(body.grant_id)
    if not adopted:
        raise HTTPException(
            status_code=400,
            detail="The provided Grant ID could not be verified with Nylas",
        )

    request.session.pop(SESSION_MOCK_GRANT_KEY, None)
    return {
        "success": True,
        "message": "Nylas Grant ID set successfully and connection verified",
    }


@router.post("/auth-url")
async def auth_url(
    body: AuthUrlRequest,
    request: Request,
    nylas: NylasClient = Depends(get_nylas_client),
):
    if not body.email:
        raise HTTPException(status_code=400, detail="Email address is required")

    try:
        url = nylas.build_auth_url(body.email, _callback_url(request))
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"authUrl": url}


@router.post("/manual-exchange")
async def manual_exchange(
    body: ManualExchangeRequest,
    request: Request,
    nylas: NylasClient = Depends(get_nylas_client),
):
    """Exchange an OAuth code by hand (for when the callback redirect fails)."""
    if not body.code:
        raise HTTPException(status_code=400, detail="Authorization code is required")

    try:
        grant_id = await nylas.exchange_code(body.code, _callback_url(request))
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransportError as e:
        logger.error(f"Nylas code exchange failed: {e}")
        raise HTTPException(status_code=502, detail="Failed to reach Nylas")

    request.session[SESSION_GRANT_KEY] = grant_id
    request.session.pop(SESSION_MOCK_GRANT_KEY, None)
    logger.info(f"Linked mailbox; grant {short_grant(grant_id)} saved in session")
    return {
        "success": True,
        "grantId": grant_id,
        "message": "Email account connected successfully",
    }


@router.post("/disconnect")
async def disconnect(request: Request):
    request.session.pop(SESSION_GRANT_KEY, None)
    request.session.pop(SESSION_MOCK_GRANT_KEY, None)
    return {"success": True}
