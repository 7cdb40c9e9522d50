"""
Conflict resolution for duplicates found during sync.

When the sync pipeline learns that an incoming email already exists, this
service decides which copy survives and applies that decision to the store.
"""

from __future__ import annotations

from datetime import UTC, datetime

from mailsync.features.deduplication.domain import (
    ConflictAction,
    ConflictResolution,
    DuplicateHandlingOutcome,
    IncomingEmailUpdate,
    StoredEmail,
)
from mailsync.features.deduplication.repository import EmailRepository
from mailsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_EPOCH = datetime.fromtimestamp(0, tz=UTC)


def resolve_conflict(existing: StoredEmail, incoming: IncomingEmailUpdate) -> ConflictResolution:
    """Pick which copy wins when an incoming email collides with a stored one."""

    if existing.provider_message_id and existing.provider_message_id == incoming.provider_message_id:
        return ConflictResolution(
            action=ConflictAction.KEEP_FIRST,
            reason="Exact duplicate (same provider message ID)",
        )

    if (
        existing.message_id == incoming.message_id
        and existing.provider_message_id != incoming.provider_message_id
    ):
        existing_time = existing.received_at or _EPOCH
        incoming_time = incoming.received_at or _EPOCH
        if existing_time < incoming_time:
            return ConflictResolution(
                action=ConflictAction.KEEP_FIRST,
                reason="Existing email received earlier",
            )
        return ConflictResolution(
            action=ConflictAction.KEEP_LATEST,
            reason="Incoming email received earlier",
        )

    if existing.is_read != incoming.is_read or existing.is_starred != incoming.is_starred:
        return ConflictResolution(action=ConflictAction.MERGE, reason="Metadata differs - merge flags")

    return ConflictResolution(action=ConflictAction.KEEP_FIRST, reason="Default deduplication")


class ConflictService:
    def __init__(self, repository=EmailRepository):
        self.repository = repository

    async def handle_duplicate(
        self, account_id: str, existing_id: str, incoming: IncomingEmailUpdate
    ) -> DuplicateHandlingOutcome:
        """
        Apply the conflict resolution for an incoming copy of ``existing_id``.

        Returns:
            DuplicateHandlingOutcome with action not_found, kept_existing,
            updated or merged.
        """
        existing = await self.repository.load_email(existing_id)
        if existing is None:
            logger.warning("Duplicate target not found", account_id=account_id, existing_id=existing_id)
            return DuplicateHandlingOutcome(action="not_found")

        resolution = resolve_conflict(existing, incoming)
        logger.info(
            "Resolving duplicate conflict",
            account_id=account_id,
            existing_id=existing_id,
            action=resolution.action.value,
            reason=resolution.reason,
        )

        if resolution.action is ConflictAction.KEEP_FIRST:
            return DuplicateHandlingOutcome(action="kept_existing", updated_id=existing_id)

        if resolution.action is ConflictAction.KEEP_LATEST:
            await self.repository.overwrite_with_incoming(existing_id, incoming)
            return DuplicateHandlingOutcome(action="updated", updated_id=existing_id)

        await self.repository.update_flags(
            existing_id,
            is_read=_prefer(incoming.is_read, existing.is_read),
            is_starred=_prefer(incoming.is_starred, existing.is_starred),
            is_important=_prefer(incoming.is_important, existing.is_important),
        )
        return DuplicateHandlingOutcome(action="merged", updated_id=existing_id)


def _prefer(incoming: bool | None, existing: bool) -> bool:
    return existing if incoming is None else incoming


conflict_service = ConflictService()
