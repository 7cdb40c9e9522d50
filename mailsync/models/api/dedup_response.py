# mailsync/models/api/dedup_response.py
"""
Deduplication API response models.
Used by routes for output formatting.
"""

from pydantic import BaseModel, Field

from mailsync.features.deduplication.domain import DuplicateCheckResult


class DuplicateCheckResponse(BaseModel):
    """Outcome of a duplicate check."""

    is_duplicate: bool = Field(..., description="Whether the email is already stored")
    duplicate_id: str | None = Field(None, description="ID of the stored email it duplicates")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Duplicate likelihood (0-1)")
    reason: str | None = Field(None, description="Heuristics that triggered the match")

    @classmethod
    def from_result(cls, result: DuplicateCheckResult) -> "DuplicateCheckResponse":
        return cls(
            is_duplicate=result.is_duplicate,
            duplicate_id=result.duplicate_id,
            confidence=result.confidence,
            reason=result.reason,
        )


class BatchCheckResponse(BaseModel):
    """Results keyed by message ID, in request order."""

    results: dict[str, DuplicateCheckResponse] = Field(..., description="message_id -> result")
    duplicates_found: int = Field(..., description="Number of emails flagged as duplicates")


class MarkDuplicateResponse(BaseModel):
    email_id: str
    original_email_id: str
    updated: bool


class DeduplicationResponse(BaseModel):
    """Summary of a cleanup pass over one account."""

    account_id: str
    scanned: int = Field(..., description="Message IDs stored more than once")
    duplicates_found: int
    duplicates_removed: int
