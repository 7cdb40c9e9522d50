"""
Deduplication routes.

Internal endpoints the sync workers call while ingesting a provider batch,
plus an on-demand trigger for the per-account cleanup pass.
"""

from fastapi import APIRouter, HTTPException, status

from mailsync.db.helpers import DatabaseError
from mailsync.features.deduplication.domain import DuplicateDetectionError, InvalidEmailError
from mailsync.features.deduplication.jobs.cleanup_job import dedup_cleanup_job
from mailsync.features.deduplication.services.detector import duplicate_detector
from mailsync.infrastructure.observability.logging import get_logger
from mailsync.models.api.dedup_request import (
    BatchCheckRequest,
    EmailCheckRequest,
    MarkDuplicateRequest,
)
from mailsync.models.api.dedup_response import (
    BatchCheckResponse,
    DeduplicationResponse,
    DuplicateCheckResponse,
    MarkDuplicateResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/sync", tags=["sync-dedup"])


@router.post("/duplicates/check", response_model=DuplicateCheckResponse)
async def check_duplicate(payload: EmailCheckRequest):
    """Check one incoming email against the account's stored emails."""
    try:
        result = await duplicate_detector.check_for_duplicate(payload.to_domain())
    except InvalidEmailError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except DuplicateDetectionError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Duplicate check unavailable: {e}",
        )

    return DuplicateCheckResponse.from_result(result)


@router.post("/duplicates/batch", response_model=BatchCheckResponse)
async def check_duplicates_batch(payload: BatchCheckRequest):
    """Check a sync batch; results are keyed by message id."""
    try:
        results = await duplicate_detector.batch_check_for_duplicates(
            [item.to_domain() for item in payload.emails], concurrency=payload.concurrency
        )
    except InvalidEmailError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except DuplicateDetectionError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Duplicate check unavailable: {e}",
        )

    return BatchCheckResponse(
        results={
            message_id: DuplicateCheckResponse.from_result(result)
            for message_id, result in results.items()
        },
        duplicates_found=sum(1 for result in results.values() if result.is_duplicate),
    )


@router.post("/duplicates/{email_id}/mark", response_model=MarkDuplicateResponse)
async def mark_duplicate(email_id: str, payload: MarkDuplicateRequest):
    """Set the duplicate marker on a stored email."""
    try:
        updated = await duplicate_detector.mark_as_duplicate(email_id, payload.original_email_id)
    except DatabaseError as e:
        if not e.recoverable:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        logger.error("Failed to mark duplicate", email_id=email_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to mark duplicate",
        )

    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Email not found")

    return MarkDuplicateResponse(
        email_id=email_id, original_email_id=payload.original_email_id, updated=updated
    )


@router.post("/accounts/{account_id}/deduplicate", response_model=DeduplicationResponse)
async def deduplicate_account(account_id: str):
    """Collapse stored duplicates for one account now instead of waiting for the scheduler."""
    try:
        summary = await dedup_cleanup_job.deduplicate_emails(account_id)
    except Exception as e:
        logger.error("Account deduplication failed", account_id=account_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to deduplicate account",
        )

    return DeduplicationResponse(**summary.to_dict())


@router.get("/duplicates/cleanup/status")
async def cleanup_status() -> dict:
    """Last run and current state of the cleanup job."""
    return dedup_cleanup_job.get_job_status()
