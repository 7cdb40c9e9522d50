"""
Email deduplication feature package.

Keeps every layer of duplicate handling for the sync pipeline co-located:
domain models, the emails repository, the detector and conflict services,
the cleanup job and the HTTP router.
"""

# Re-export the primary building blocks for easy access.
from .domain.models import DuplicateCheckResult, EmailToCheck, SenderAddress  # noqa: F401
from .services.detector import DuplicateDetector, duplicate_detector  # noqa: F401
from .jobs.cleanup_job import start_dedup_cleanup_scheduler  # noqa: F401
from .api.router import router as dedup_router  # noqa: F401
