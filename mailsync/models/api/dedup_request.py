# mailsync/models/api/dedup_request.py
"""
Deduplication API request models.
Used by routes for input validation.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

from mailsync.features.deduplication.domain import EmailToCheck, SenderAddress


class SenderAddressRequest(BaseModel):
    """Sender of an incoming email."""

    email: str = Field(..., min_length=1, description="Sender email address")
    name: str = Field(default="", description="Sender display name")


class EmailCheckRequest(BaseModel):
    """Incoming email descriptor to check against the store."""

    message_id: str = Field(..., min_length=1, description="Provider Message-ID")
    subject: str = Field(default="", description="Subject line")
    from_address: SenderAddressRequest = Field(..., description="Sender (email, name)")
    received_at: datetime = Field(..., description="When the email was received")
    body_preview: str | None = Field(default=None, description="Short body preview/snippet")
    account_id: str = Field(..., min_length=1, description="Owning mail account ID")

    @field_validator("received_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=UTC)

    def to_domain(self) -> EmailToCheck:
        return EmailToCheck(
            message_id=self.message_id,
            subject=self.subject,
            from_address=SenderAddress(email=self.from_address.email, name=self.from_address.name),
            received_at=self.received_at,
            body_preview=self.body_preview,
            account_id=self.account_id,
        )


class BatchCheckRequest(BaseModel):
    """Batch of incoming emails from one sync step."""

    emails: list[EmailCheckRequest] = Field(..., min_length=1, max_length=500)
    concurrency: int | None = Field(
        default=None, ge=1, le=16, description="Worker count (default from settings)"
    )


class MarkDuplicateRequest(BaseModel):
    """Link a stored email to the original it duplicates."""

    original_email_id: str = Field(..., min_length=1, description="ID of the original email")
