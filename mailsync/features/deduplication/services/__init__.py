"""
Service layer for the deduplication feature.
"""

from .conflict_service import ConflictService, conflict_service, resolve_conflict
from .detector import (
    DuplicateDetector,
    batch_check_for_duplicates,
    check_for_duplicate,
    duplicate_detector,
    message_id_cache,
)
from .message_id_cache import MessageIdCache

__all__ = [
    "ConflictService",
    "DuplicateDetector",
    "MessageIdCache",
    "batch_check_for_duplicates",
    "check_for_duplicate",
    "conflict_service",
    "duplicate_detector",
    "message_id_cache",
    "resolve_conflict",
]
