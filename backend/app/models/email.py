"""
Pydantic models for outbound email.

Models:
  EmailMessage      one outreach email (transient, never persisted)
  SendResult        outcome of sending one message
  BatchSendResult   aggregated outcome of a batch
  SendBatchRequest  request body for POST /api/email/send-batch
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EmailMessage(BaseModel):
    """
    A single outreach email to a care provider.

    ``from`` is a Python keyword, so the sender is exposed as ``from_email``
    and accepted as either ``from`` or ``from_email`` in JSON.
    resource_id / questionnaire_id are only used for the audit log.
    """

    model_config = ConfigDict(populate_by_name=True)

    to: str
    subject: str
    body: str
    reply_to: Optional[str] = Field(default=None, alias="replyTo")
    from_email: Optional[str] = Field(default=None, alias="from")
    resource_id: Optional[int] = Field(default=None, alias="resourceId")
    questionnaire_id: Optional[int] = Field(default=None, alias="questionnaireId")


class SendResult(BaseModel):
    """Outcome of sending one message. error_type is set only on failure."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def failure(cls, exc: Exception) -> "SendResult":
        return cls(
            success=False,
            error=str(exc) or exc.__class__.__name__,
            error_type=getattr(exc, "error_type", "transport"),
        )


class BatchSendResult(BaseModel):
    """
    Aggregated batch outcome.

    Invariants: sent + failed == total == len(results), and
    success is True iff at least one message went out.
    """

    success: bool
    sent: int
    failed: int
    total: int
    results: list[SendResult] = []
    provider: Optional[str] = None
    message: str = ""

    @model_validator(mode="after")
    def _check_counts(self) -> "BatchSendResult":
        if self.sent + self.failed != self.total or self.total != len(self.results):
            raise ValueError(
                f"inconsistent batch counts: sent={self.sent} failed={self.failed} "
                f"total={self.total} results={len(self.results)}"
            )
        return self

    @classmethod
    def from_results(
        cls, results: list[SendResult], provider: Optional[str] = None
    ) -> "BatchSendResult":
        total = len(results)
        sent = sum(1 for r in results if r.success)
        failed = total - sent
        message = f"{sent} of {total} emails sent successfully"
        if failed:
            message += f", {failed} failed"
        return cls(
            success=sent > 0,
            sent=sent,
            failed=failed,
            total=total,
            results=results,
            provider=provider,
            message=message,
        )


class SendBatchRequest(BaseModel):
    emails: list[EmailMessage]
