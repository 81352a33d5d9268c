"""
Best-effort audit log of outreach emails (Supabase ``email_logs`` table).

Logging never affects the send outcome: failures are logged as warnings and
swallowed, and the whole thing is a no-op when the Supabase admin client is
not configured.
"""

import logging
from datetime import datetime, timezone

from app import db, settings
from app.models.email import EmailMessage, SendResult

logger = logging.getLogger(__name__)

EMAIL_LOG_TABLE = "email_logs"


def build_log_row(message: EmailMessage, result: SendResult, provider: str) -> dict:
    return {
        "resource_id": message.resource_id,
        "questionnaire_id": message.questionnaire_id,
        "email_to": message.to,
        "email_from": message.from_email or settings.DEFAULT_FROM_EMAIL,
        "subject": message.subject,
        "body": message.body,
        "status": "sent" if result.success else "failed",
        "error_message": None if result.success else result.error,
        "provider": provider,
        "message_id": result.message_id,
        "sent_at": datetime.now(timezone.utc).isoformat(),
    }


def log_email_sends(
    messages: list[EmailMessage], results: list[SendResult], provider: str
) -> int:
    """
    Insert one email_logs row per message. Returns the number of rows written
    (0 when logging is disabled or fails).
    """
    if db.supabase_admin is None or not messages:
        return 0

    rows = [
        build_log_row(message, result, provider)
        for message, result in zip(messages, results)
    ]
    try:
        db.supabase_admin.table(EMAIL_LOG_TABLE).insert(rows).execute()
    except Exception as e:
        logger.warning(f"Failed to log {len(rows)} email sends: {e}")
        return 0
    return len(rows)
