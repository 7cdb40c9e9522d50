"""
Background jobs for the deduplication feature.
"""

from .cleanup_job import (
    DeduplicationCleanupJob,
    dedup_cleanup_job,
    deduplicate_emails,
    start_dedup_cleanup_scheduler,
)

__all__ = [
    "DeduplicationCleanupJob",
    "dedup_cleanup_job",
    "deduplicate_emails",
    "start_dedup_cleanup_scheduler",
]
