"""
Duplicate detector - decides whether an incoming email is already stored.

Two passes per email:
1. Exact message id match in the same account (authoritative, confidence 1.0).
2. Fuzzy match against the account's recent emails: same sender required,
   then weighted subject similarity (0.4), received-time proximity (0.3)
   and body preview similarity (0.3). When either side has no body the
   subject similarity fills the body slot.

Failures inside a check follow the configured ErrorStrategy.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from datetime import timedelta

from mailsync.config import settings
from mailsync.features.deduplication.domain import (
    DetectorConfig,
    DuplicateCheckResult,
    DuplicateDetectionError,
    EmailToCheck,
    ErrorStrategy,
    StoredEmail,
)
from mailsync.features.deduplication.matching import (
    calculate_similarity,
    normalize_email,
    normalize_subject,
    time_proximity,
)
from mailsync.features.deduplication.repository import EmailRepository
from mailsync.features.deduplication.services.message_id_cache import MessageIdCache
from mailsync.infrastructure.observability.logging import get_logger
from mailsync.services.redis_client import fast_redis

logger = get_logger(__name__)

SUBJECT_WEIGHT = 0.4
TIME_WEIGHT = 0.3
BODY_WEIGHT = 0.3

SIMILAR_TEXT_THRESHOLD = 0.9
CLOSE_ARRIVAL_SECONDS = 60

EXACT_MATCH_REASON = "Exact messageId match"


class DuplicateDetector:
    """Stateless between calls; the repository and cache are passed in by reference."""

    def __init__(
        self,
        repository=EmailRepository,
        cache: MessageIdCache | None = None,
        config: DetectorConfig | None = None,
    ):
        self.repository = repository
        self.cache = cache
        self.config = config or DetectorConfig()

    async def check_for_duplicate(self, email: EmailToCheck) -> DuplicateCheckResult:
        """
        Classify one incoming email.

        Raises:
            InvalidEmailError: descriptor is missing a required field
            DuplicateDetectionError: lookup failed and the strategy is fail_closed
        """
        email.validate()

        strategy = self.config.error_strategy
        attempts = 1 + (max(0, self.config.retry_attempts) if strategy is ErrorStrategy.RETRY else 0)
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                return await self._detect(email)
            except Exception as e:
                last_error = e
                if attempt < attempts - 1:
                    delay = self.config.retry_base_delay * (2**attempt)
                    logger.warning(
                        "Duplicate check failed, retrying",
                        message_id=email.message_id,
                        account_id=email.account_id,
                        attempt=attempt + 1,
                        max_attempts=attempts,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        if strategy is ErrorStrategy.FAIL_CLOSED:
            logger.error(
                "Duplicate check failed, holding email",
                message_id=email.message_id,
                account_id=email.account_id,
                error=str(last_error),
                error_type=type(last_error).__name__,
            )
            raise DuplicateDetectionError(
                f"Duplicate check failed: {last_error}", message_id=email.message_id
            ) from last_error

        # fail_open, or retry with attempts exhausted
        logger.error(
            "Duplicate check failed, treating as new email",
            message_id=email.message_id,
            account_id=email.account_id,
            strategy=strategy.value,
            attempts=attempts,
            error=str(last_error),
            error_type=type(last_error).__name__,
        )
        return DuplicateCheckResult.not_duplicate()

    async def batch_check_for_duplicates(
        self, emails: Iterable[EmailToCheck], concurrency: int | None = None
    ) -> dict[str, DuplicateCheckResult]:
        """
        Check every email and map message id -> result, in input order.

        Concurrency defaults to the configured worker count (1 = sequential).
        Emails in the same batch are not compared against each other.
        """
        emails = list(emails)
        workers = max(1, concurrency or self.config.batch_concurrency)

        if workers == 1:
            results = {}
            for email in emails:
                results[email.message_id] = await self.check_for_duplicate(email)
            return results

        semaphore = asyncio.Semaphore(workers)

        async def _bounded(email: EmailToCheck) -> DuplicateCheckResult:
            async with semaphore:
                return await self.check_for_duplicate(email)

        # Collect every check before surfacing the first failure
        checked = await asyncio.gather(
            *(_bounded(email) for email in emails), return_exceptions=True
        )
        for outcome in checked:
            if isinstance(outcome, BaseException):
                raise outcome

        return {email.message_id: result for email, result in zip(emails, checked)}

    async def mark_as_duplicate(self, email_id: str, original_email_id: str) -> bool:
        """Link a stored email to the original it duplicates."""
        return await self.repository.mark_as_duplicate(email_id, original_email_id)

    def score_candidate(
        self, email: EmailToCheck, candidate: StoredEmail
    ) -> tuple[float, list[str]] | None:
        """
        Weighted confidence that ``candidate`` duplicates ``email``.

        Returns None when the senders differ; the sender is a hard filter.
        """
        if normalize_email(candidate.from_address.email) != normalize_email(email.from_address.email):
            return None

        reasons: list[str] = []

        subject_similarity = calculate_similarity(
            normalize_subject(email.subject), normalize_subject(candidate.subject)
        )
        confidence = subject_similarity * SUBJECT_WEIGHT
        if subject_similarity >= SIMILAR_TEXT_THRESHOLD:
            reasons.append("Very similar subject")

        proximity = time_proximity(
            email.received_at, candidate.received_at, self.config.time_window_seconds
        )
        confidence += proximity * TIME_WEIGHT
        if abs((email.received_at - candidate.received_at).total_seconds()) < CLOSE_ARRIVAL_SECONDS:
            reasons.append("Received within 1 minute")

        if email.body_preview and candidate.snippet:
            limit = self.config.body_compare_chars
            body_similarity = calculate_similarity(email.body_preview[:limit], candidate.snippet[:limit])
            confidence += body_similarity * BODY_WEIGHT
            if body_similarity >= SIMILAR_TEXT_THRESHOLD:
                reasons.append("Very similar content")
        else:
            # No body on one side: subject stands in for the body slot
            confidence += subject_similarity * BODY_WEIGHT

        return min(1.0, max(0.0, confidence)), reasons

    async def _detect(self, email: EmailToCheck) -> DuplicateCheckResult:
        exact_id = await self._find_exact_match(email)
        if exact_id:
            logger.info(
                "Exact duplicate detected",
                message_id=email.message_id,
                account_id=email.account_id,
                duplicate_id=exact_id,
            )
            return DuplicateCheckResult(
                is_duplicate=True,
                duplicate_id=exact_id,
                confidence=1.0,
                reason=EXACT_MATCH_REASON,
            )

        window_start = email.received_at - timedelta(seconds=self.config.time_window_seconds)
        candidates = await self.repository.find_received_since(
            email.account_id, window_start, limit=self.config.candidate_limit
        )

        best: DuplicateCheckResult | None = None
        for candidate in candidates:
            scored = self.score_candidate(email, candidate)
            if scored is None:
                continue

            confidence, reasons = scored
            if confidence < self.config.confidence_threshold:
                continue

            match = DuplicateCheckResult(
                is_duplicate=True,
                duplicate_id=candidate.id,
                confidence=confidence,
                reason=", ".join(reasons),
            )
            if not self.config.select_best_match:
                best = match
                break
            if best is None or match.confidence > best.confidence:
                best = match

        if best is None:
            logger.debug(
                "No duplicate found",
                message_id=email.message_id,
                account_id=email.account_id,
                candidates=len(candidates),
            )
            return DuplicateCheckResult.not_duplicate()

        logger.info(
            "Fuzzy duplicate detected",
            message_id=email.message_id,
            account_id=email.account_id,
            duplicate_id=best.duplicate_id,
            confidence=round(best.confidence, 3),
            reason=best.reason,
        )
        return best

    async def _find_exact_match(self, email: EmailToCheck) -> str | None:
        if self.cache is not None:
            cached_id = await self.cache.lookup(email.account_id, email.message_id)
            if cached_id:
                return cached_id

        stored = await self.repository.find_by_message_id(email.account_id, email.message_id)
        if stored is None:
            return None

        if self.cache is not None:
            await self.cache.remember(email.account_id, email.message_id, stored.id)
        return stored.id


message_id_cache = MessageIdCache(
    fast_redis,
    ttl_seconds=settings.DEDUP_CACHE_TTL_SECONDS,
    enabled=settings.DEDUP_CACHE_ENABLED,
)

duplicate_detector = DuplicateDetector(
    repository=EmailRepository,
    cache=message_id_cache,
    config=settings.get_detector_config(),
)


async def check_for_duplicate(email: EmailToCheck) -> DuplicateCheckResult:
    """Check one email with the process-wide detector."""
    return await duplicate_detector.check_for_duplicate(email)


async def batch_check_for_duplicates(emails: Iterable[EmailToCheck]) -> dict[str, DuplicateCheckResult]:
    """Check a batch of emails with the process-wide detector."""
    return await duplicate_detector.batch_check_for_duplicates(emails)
