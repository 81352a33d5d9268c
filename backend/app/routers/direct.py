"""
Direct grant router (test / demo path only).

Puts a fixed grant id into the session without asking Nylas, and flags the
session as using a mock grant. Sends from such a session go through the
fallback sender.
"""

import logging

from fastapi import APIRouter, Request

from app import settings
from app.services.nylas_client import short_grant
from app.services.session_bridge import SESSION_GRANT_KEY, SESSION_MOCK_GRANT_KEY

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/set-direct-grant")
async def set_direct_grant(request: Request):
    grant_id = settings.DIRECT_TEST_GRANT_ID
    request.session[SESSION_GRANT_KEY] = grant_id
    request.session[SESSION_MOCK_GRANT_KEY] = True
    logger.info(f"Set test grant {short_grant(grant_id)} in session (verification bypassed)")
    return {
        "success": True,
        "message": "Grant ID set in session",
        "grantId": grant_id,
    }


@router.get("/current-grant")
async def current_grant(request: Request):
    grant_id = request.session.get(SESSION_GRANT_KEY)
    if grant_id:
        return {"success": True, "grantId": grant_id}
    return {"success": False, "message": "No grant ID set in session"}
