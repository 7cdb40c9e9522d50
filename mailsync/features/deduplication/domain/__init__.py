"""
Domain subpackage for the deduplication feature.
"""

from .models import (
    ConflictAction,
    ConflictResolution,
    DeduplicationSummary,
    DetectorConfig,
    DuplicateCheckResult,
    DuplicateDetectionError,
    DuplicateHandlingOutcome,
    EmailToCheck,
    ErrorStrategy,
    IncomingEmailUpdate,
    InvalidEmailError,
    SenderAddress,
    StoredEmail,
)

__all__ = [
    "ConflictAction",
    "ConflictResolution",
    "DeduplicationSummary",
    "DetectorConfig",
    "DuplicateCheckResult",
    "DuplicateDetectionError",
    "DuplicateHandlingOutcome",
    "EmailToCheck",
    "ErrorStrategy",
    "IncomingEmailUpdate",
    "InvalidEmailError",
    "SenderAddress",
    "StoredEmail",
]
