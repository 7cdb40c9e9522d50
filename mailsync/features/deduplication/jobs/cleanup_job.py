"""
Duplicate cleanup background job.

Scans accounts for message ids stored more than once (a sync race or a
provider re-delivery) and collapses each group onto its earliest row:
1. Read/starred/important flags from every copy are OR-ed onto the kept row
2. The other copies are deleted in the same transaction
3. The message id cache entry is dropped so the next exact lookup hits the database

Design:
- One account failing never stops the rest of the run
- Every removal is logged
- Runs as async task, either once or on an interval scheduler

Usage:
    import asyncio
    from mailsync.features.deduplication.jobs.cleanup_job import start_dedup_cleanup_scheduler

    asyncio.create_task(start_dedup_cleanup_scheduler())
"""

import asyncio
from datetime import UTC, datetime

from mailsync.config import settings
from mailsync.db.pool import db_pool
from mailsync.features.deduplication.domain import DeduplicationSummary
from mailsync.features.deduplication.repository import EmailRepository
from mailsync.features.deduplication.services.detector import message_id_cache
from mailsync.features.deduplication.services.message_id_cache import MessageIdCache
from mailsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DeduplicationCleanupJob:
    """Collapses stored duplicates account by account."""

    def __init__(self, repository=EmailRepository, cache: MessageIdCache | None = None):
        self.repository = repository
        self.cache = cache
        self.is_running = False
        self.last_run_at: datetime | None = None
        self.last_result: dict | None = None

    async def deduplicate_emails(self, account_id: str) -> DeduplicationSummary:
        """Collapse every repeated message id in one account."""
        summary = DeduplicationSummary(account_id=account_id)

        message_ids = await self.repository.list_repeated_message_ids(account_id)

        for message_id in message_ids:
            summary.scanned += 1

            copies = await self.repository.find_duplicates(account_id, message_id)
            if len(copies) <= 1:
                continue

            summary.duplicates_found += len(copies) - 1

            keep, *remove = copies
            merged_flags = {
                "is_read": any(copy.is_read for copy in copies),
                "is_starred": any(copy.is_starred for copy in copies),
                "is_important": any(copy.is_important for copy in copies),
            }
            remove_ids = [copy.id for copy in remove]

            await self.repository.collapse_duplicates(keep, remove_ids, merged_flags)
            summary.duplicates_removed += len(remove_ids)
            summary.removed_ids.extend(remove_ids)

            if self.cache is not None:
                await self.cache.invalidate(account_id, message_id)

            logger.info(
                "Duplicate copies removed",
                account_id=account_id,
                message_id=message_id,
                kept_id=keep.id,
                removed_count=len(remove_ids),
            )

        return summary

    async def run_once(self, account_ids: list[str] | None = None) -> dict:
        """
        Run cleanup over the given accounts (default: every account with emails).

        Returns:
            dict: {
                "success": bool,
                "accounts_processed": int,
                "duplicates_found": int,
                "duplicates_removed": int,
                "errors": list,
            }
        """
        if self.is_running:
            logger.warning("Dedup cleanup already running, skipping")
            return {"success": False, "skipped": True, "error": "Already running"}

        self.is_running = True
        start_time = datetime.now(UTC)
        result = {
            "success": True,
            "accounts_processed": 0,
            "duplicates_found": 0,
            "duplicates_removed": 0,
            "errors": [],
        }

        try:
            if account_ids is None:
                account_ids = await self.repository.list_account_ids()

            logger.info("Starting dedup cleanup", account_count=len(account_ids))

            for account_id in account_ids:
                try:
                    summary = await self.deduplicate_emails(account_id)
                except Exception as e:
                    error_msg = f"Failed to deduplicate account {account_id}: {e}"
                    logger.error(
                        "Dedup cleanup failed for account",
                        account_id=account_id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    result["errors"].append(error_msg)
                    continue

                result["accounts_processed"] += 1
                result["duplicates_found"] += summary.duplicates_found
                result["duplicates_removed"] += summary.duplicates_removed

        except Exception as e:
            logger.error("Unexpected error in dedup cleanup", error=str(e))
            result["success"] = False
            result["errors"].append(f"Unexpected error: {e}")

        finally:
            self.is_running = False

        end_time = datetime.now(UTC)
        self.last_run_at = end_time
        self.last_result = result
        logger.info(
            "Dedup cleanup completed",
            duration_seconds=(end_time - start_time).total_seconds(),
            accounts_processed=result["accounts_processed"],
            duplicates_removed=result["duplicates_removed"],
            error_count=len(result["errors"]),
        )
        return result

    def get_job_status(self) -> dict:
        return {
            "is_running": self.is_running,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_result": self.last_result,
            "interval_hours": settings.DEDUP_CLEANUP_INTERVAL_HOURS,
        }


dedup_cleanup_job = DeduplicationCleanupJob(cache=message_id_cache)


async def deduplicate_emails(account_id: str) -> DeduplicationSummary:
    """Collapse stored duplicates for one account with the shared job instance."""
    return await dedup_cleanup_job.deduplicate_emails(account_id)


async def start_dedup_cleanup_scheduler() -> None:
    """Run the cleanup job forever on the configured interval."""
    interval_seconds = settings.DEDUP_CLEANUP_INTERVAL_HOURS * 3600
    logger.info(
        "Starting dedup cleanup scheduler", interval_hours=settings.DEDUP_CLEANUP_INTERVAL_HOURS
    )

    # Worker processes run outside the FastAPI lifespan
    await db_pool.initialize()

    while True:
        try:
            await dedup_cleanup_job.run_once()
            await asyncio.sleep(interval_seconds)
        except Exception as e:
            logger.error(
                "Error in dedup cleanup scheduler", error=str(e), error_type=type(e).__name__
            )
            # Back off before retrying
            await asyncio.sleep(min(interval_seconds, 1800))

