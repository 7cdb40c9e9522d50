"""Redis cache of (account, message id) -> stored email id for the exact-match path."""

from __future__ import annotations

import hashlib

from mailsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "dedup:msgid"


class MessageIdCache:
    """
    Short-lived lookup cache in front of the exact message-id query.

    A miss never means "not stored": callers always fall back to the
    database, and Redis errors surface as misses from the client.
    """

    def __init__(self, redis_client, ttl_seconds: int = 900, enabled: bool = True):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled

    @staticmethod
    def _key(account_id: str, message_id: str) -> str:
        # Message-ID headers can be long and contain arbitrary characters
        digest = hashlib.sha256(message_id.encode("utf-8")).hexdigest()
        return f"{KEY_PREFIX}:{account_id}:{digest}"

    async def lookup(self, account_id: str, message_id: str) -> str | None:
        if not self.enabled:
            return None
        return await self.redis.get(self._key(account_id, message_id))

    async def remember(self, account_id: str, message_id: str, email_id: str) -> None:
        if not self.enabled:
            return
        stored = await self.redis.set_with_ttl(
            self._key(account_id, message_id), email_id, self.ttl_seconds
        )
        if not stored:
            logger.debug("Message id not cached", account_id=account_id)

    async def invalidate(self, account_id: str, message_id: str) -> None:
        """Drop an entry; call whenever the cached row is deleted or re-keyed."""
        if not self.enabled:
            return
        await self.redis.delete(self._key(account_id, message_id))
