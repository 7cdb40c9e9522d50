"""
Domain models for the deduplication feature.

Plain dataclasses shared by the repository, detector, cleanup job and API
layers. Only small derived properties live here; scoring belongs to the
services.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class InvalidEmailError(ValueError):
    """Raised when an incoming email descriptor is missing a required field."""


class DuplicateDetectionError(Exception):
    """Raised by the fail_closed strategy when a duplicate check cannot complete."""

    def __init__(self, message: str, message_id: str | None = None):
        super().__init__(message)
        self.message_id = message_id


class ErrorStrategy(str, Enum):
    """What the detector does when a lookup or scoring step raises."""

    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"
    RETRY = "retry"

    @classmethod
    def parse(cls, value: "str | ErrorStrategy") -> "ErrorStrategy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower().replace("-", "_"))
        except ValueError:
            raise ValueError(
                f"Unknown dedup error strategy '{value}'. "
                f"Available: {', '.join(s.value for s in cls)}"
            ) from None


class ConflictAction(str, Enum):
    KEEP_FIRST = "keep_first"
    KEEP_LATEST = "keep_latest"
    MERGE = "merge"


@dataclass(slots=True)
class SenderAddress:
    email: str
    name: str = ""

    @classmethod
    def from_json(cls, value: dict | str | None) -> "SenderAddress":
        """Build from the jsonb ``from_address`` column (or a bare address string)."""
        if not value:
            return cls(email="")
        if isinstance(value, str):
            return cls(email=value)
        return cls(email=value.get("email") or "", name=value.get("name") or "")

    def to_json(self) -> dict[str, str]:
        return {"email": self.email, "name": self.name}


@dataclass(slots=True)
class EmailToCheck:
    """Incoming email descriptor handed to the detector during sync."""

    message_id: str
    subject: str
    from_address: SenderAddress
    received_at: datetime
    account_id: str
    body_preview: str | None = None

    def validate(self) -> None:
        """Raise InvalidEmailError when a required field is missing."""
        missing = [
            name
            for name, value in (
                ("message_id", self.message_id),
                ("account_id", self.account_id),
                ("received_at", self.received_at),
                ("from_address", self.from_address and (self.from_address.email or "").strip()),
            )
            if not value
        ]
        if self.subject is None:
            missing.append("subject")
        if missing:
            raise InvalidEmailError(f"Email descriptor missing required fields: {', '.join(missing)}")
        if not isinstance(self.received_at, datetime):
            raise InvalidEmailError("received_at must be a datetime")
        if self.received_at.tzinfo is None or self.received_at.utcoffset() is None:
            raise InvalidEmailError("received_at must be timezone-aware")


@dataclass(slots=True)
class StoredEmail:
    """Represents an emails row as the deduplication layer sees it."""

    id: str
    account_id: str
    message_id: str
    subject: str
    from_address: SenderAddress
    received_at: datetime
    snippet: str | None = None
    provider_message_id: str | None = None
    is_read: bool = False
    is_starred: bool = False
    is_important: bool = False
    duplicate_of: str | None = None


@dataclass(slots=True)
class IncomingEmailUpdate:
    """Fields a sync run may write onto an existing row when resolving a conflict."""

    message_id: str
    received_at: datetime | None = None
    provider_message_id: str | None = None
    subject: str | None = None
    snippet: str | None = None
    is_read: bool | None = None
    is_starred: bool | None = None
    is_important: bool | None = None


@dataclass(slots=True)
class DuplicateCheckResult:
    is_duplicate: bool
    confidence: float = 0.0
    duplicate_id: str | None = None
    reason: str | None = None

    @classmethod
    def not_duplicate(cls) -> "DuplicateCheckResult":
        return cls(is_duplicate=False, confidence=0.0)


@dataclass(slots=True)
class ConflictResolution:
    action: ConflictAction
    reason: str


@dataclass(slots=True)
class DuplicateHandlingOutcome:
    """Result of handle_duplicate: not_found, kept_existing, updated or merged."""

    action: str
    updated_id: str | None = None


@dataclass(slots=True)
class DeduplicationSummary:
    account_id: str
    scanned: int = 0
    duplicates_found: int = 0
    duplicates_removed: int = 0
    removed_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "scanned": self.scanned,
            "duplicates_found": self.duplicates_found,
            "duplicates_removed": self.duplicates_removed,
        }


@dataclass(slots=True)
class DetectorConfig:
    """Tunables for DuplicateDetector. Defaults mirror the DEDUP_* settings."""

    time_window_minutes: float = 5.0
    candidate_limit: int = 50
    confidence_threshold: float = 0.85
    body_compare_chars: int = 200
    error_strategy: ErrorStrategy = ErrorStrategy.FAIL_OPEN
    retry_attempts: int = 2
    retry_base_delay: float = 0.1
    batch_concurrency: int = 1
    select_best_match: bool = False

    @property
    def time_window_seconds(self) -> float:
        return self.time_window_minutes * 60
