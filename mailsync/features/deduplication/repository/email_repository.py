"""
Persistence layer for the deduplication feature.

Every query the detector, conflict handling and cleanup job issue against
the ``emails`` table lives here so the services stay free of SQL.
"""

from datetime import UTC, datetime

from mailsync.db.helpers import (
    DatabaseError,
    execute_query,
    execute_transaction,
    fetch_all,
    fetch_one,
    fetch_val,
)
from mailsync.features.deduplication.domain import (
    IncomingEmailUpdate,
    SenderAddress,
    StoredEmail,
)
from mailsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EmailRepositoryError(DatabaseError):
    """More specific exception for email repository failures."""


class EmailRepository:
    """Read/write helpers over the emails table."""

    EMAIL_SELECT_COLUMNS = """
        id, account_id, message_id, provider_message_id, subject, snippet,
        from_address, received_at, is_read, is_starred, is_important, duplicate_of
    """

    @classmethod
    def _row_to_email(cls, row: dict | None) -> StoredEmail | None:
        if not row:
            return None

        received_at = row["received_at"]
        if received_at is not None and received_at.tzinfo is None:
            received_at = received_at.replace(tzinfo=UTC)

        duplicate_of = row.get("duplicate_of")
        return StoredEmail(
            id=str(row["id"]),
            account_id=str(row["account_id"]),
            message_id=row["message_id"],
            provider_message_id=row.get("provider_message_id"),
            subject=row.get("subject") or "",
            snippet=row.get("snippet"),
            from_address=SenderAddress.from_json(row.get("from_address")),
            received_at=received_at,
            is_read=bool(row.get("is_read")),
            is_starred=bool(row.get("is_starred")),
            is_important=bool(row.get("is_important")),
            duplicate_of=str(duplicate_of) if duplicate_of else None,
        )

    # ------------------------------------------------------------------
    # Lookups used by the detector
    # ------------------------------------------------------------------

    @classmethod
    async def find_by_message_id(cls, account_id: str, message_id: str) -> StoredEmail | None:
        """Return the stored email with this message id in the account, if any."""

        query = f"""
            SELECT {cls.EMAIL_SELECT_COLUMNS}
            FROM emails
            WHERE account_id = %s AND message_id = %s
            ORDER BY received_at ASC
            LIMIT 1
        """
        row = await fetch_one(query, (account_id, message_id))
        return cls._row_to_email(row)

    @classmethod
    async def find_received_since(
        cls, account_id: str, received_after: datetime, limit: int = 50
    ) -> list[StoredEmail]:
        """Candidate window: emails in the account received at or after ``received_after``."""

        query = f"""
            SELECT {cls.EMAIL_SELECT_COLUMNS}
            FROM emails
            WHERE account_id = %s AND received_at >= %s
            ORDER BY received_at ASC
            LIMIT %s
        """
        rows = await fetch_all(query, (account_id, received_after, limit))
        return [cls._row_to_email(row) for row in rows]

    @classmethod
    async def load_email(cls, email_id: str) -> StoredEmail | None:
        query = f"SELECT {cls.EMAIL_SELECT_COLUMNS} FROM emails WHERE id = %s"
        row = await fetch_one(query, (email_id,))
        return cls._row_to_email(row)

    # ------------------------------------------------------------------
    # Duplicate queries
    # ------------------------------------------------------------------

    @classmethod
    async def find_duplicates(cls, account_id: str, message_id: str) -> list[StoredEmail]:
        """All rows in the account sharing a message id, earliest first."""

        query = f"""
            SELECT {cls.EMAIL_SELECT_COLUMNS}
            FROM emails
            WHERE account_id = %s AND message_id = %s
            ORDER BY received_at ASC
        """
        rows = await fetch_all(query, (account_id, message_id))
        return [cls._row_to_email(row) for row in rows]

    @classmethod
    async def find_cross_account_duplicates(cls, user_id: str, message_id: str) -> list[StoredEmail]:
        """Rows sharing a message id across every account the user owns."""

        query = """
            SELECT e.id, e.account_id, e.message_id, e.provider_message_id, e.subject,
                   e.snippet, e.from_address, e.received_at, e.is_read, e.is_starred,
                   e.is_important, e.duplicate_of
            FROM emails e
            JOIN email_accounts ea ON e.account_id = ea.id
            WHERE ea.user_id = %s AND e.message_id = %s
            ORDER BY e.received_at ASC
        """
        rows = await fetch_all(query, (user_id, message_id))
        return [cls._row_to_email(row) for row in rows]

    @classmethod
    async def find_fuzzy_duplicates(
        cls,
        account_id: str,
        subject: str,
        sender_email: str,
        received_at: datetime,
        tolerance_seconds: int = 60,
    ) -> list[StoredEmail]:
        """Same sender and exact subject within +/- ``tolerance_seconds``."""

        query = f"""
            SELECT {cls.EMAIL_SELECT_COLUMNS}
            FROM emails
            WHERE account_id = %s
              AND lower(from_address->>'email') = lower(%s)
              AND subject = %s
              AND received_at BETWEEN %s - make_interval(secs => %s)
                                  AND %s + make_interval(secs => %s)
            ORDER BY received_at ASC
        """
        params = (
            account_id,
            sender_email.strip(),
            subject,
            received_at,
            tolerance_seconds,
            received_at,
            tolerance_seconds,
        )
        rows = await fetch_all(query, params)
        return [cls._row_to_email(row) for row in rows]

    @classmethod
    async def email_exists(
        cls, account_id: str, message_id: str, provider_message_id: str | None = None
    ) -> bool:
        if provider_message_id:
            query = """
                SELECT EXISTS (
                    SELECT 1 FROM emails
                    WHERE account_id = %s
                      AND (message_id = %s OR provider_message_id = %s)
                )
            """
            params = (account_id, message_id, provider_message_id)
        else:
            query = """
                SELECT EXISTS (
                    SELECT 1 FROM emails WHERE account_id = %s AND message_id = %s
                )
            """
            params = (account_id, message_id)

        return bool(await fetch_val(query, params))

    @classmethod
    async def list_repeated_message_ids(cls, account_id: str) -> list[str]:
        """Message ids stored more than once in the account."""

        query = """
            SELECT message_id
            FROM emails
            WHERE account_id = %s
            GROUP BY message_id
            HAVING COUNT(*) > 1
        """
        rows = await fetch_all(query, (account_id,))
        return [row["message_id"] for row in rows]

    @classmethod
    async def list_account_ids(cls) -> list[str]:
        rows = await fetch_all("SELECT DISTINCT account_id FROM emails")
        return [str(row["account_id"]) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @classmethod
    async def mark_as_duplicate(cls, email_id: str, original_email_id: str) -> bool:
        """Set the duplicate marker on a single row. Returns False when the row is missing."""

        if email_id == original_email_id:
            raise EmailRepositoryError(
                "An email cannot be marked as a duplicate of itself",
                operation="mark_as_duplicate",
                recoverable=False,
            )

        query = """
            UPDATE emails
            SET duplicate_of = %s,
                updated_at = NOW()
            WHERE id = %s
        """
        updated = await execute_query(query, (original_email_id, email_id))
        logger.info(
            "Email marked as duplicate",
            email_id=email_id,
            original_email_id=original_email_id,
            updated=updated,
        )
        return updated > 0

    @classmethod
    async def overwrite_with_incoming(cls, email_id: str, incoming: IncomingEmailUpdate) -> None:
        """Replace the mutable fields of an existing row with the incoming copy."""

        query = """
            UPDATE emails
            SET provider_message_id = COALESCE(%s, provider_message_id),
                subject = COALESCE(%s, subject),
                snippet = COALESCE(%s, snippet),
                received_at = COALESCE(%s, received_at),
                is_read = COALESCE(%s, is_read),
                is_starred = COALESCE(%s, is_starred),
                is_important = COALESCE(%s, is_important),
                updated_at = NOW()
            WHERE id = %s
        """
        params = (
            incoming.provider_message_id,
            incoming.subject,
            incoming.snippet,
            incoming.received_at,
            incoming.is_read,
            incoming.is_starred,
            incoming.is_important,
            email_id,
        )
        await execute_query(query, params)

    @classmethod
    async def update_flags(
        cls, email_id: str, *, is_read: bool, is_starred: bool, is_important: bool
    ) -> None:
        query = """
            UPDATE emails
            SET is_read = %s,
                is_starred = %s,
                is_important = %s,
                updated_at = NOW()
            WHERE id = %s
        """
        await execute_query(query, (is_read, is_starred, is_important, email_id))

    @classmethod
    async def collapse_duplicates(
        cls, keep: StoredEmail, remove_ids: list[str], merged_flags: dict[str, bool]
    ) -> None:
        """Apply merged flags to the kept row and delete the others in one transaction."""

        await execute_transaction(
            [
                (
                    """
                    UPDATE emails
                    SET is_read = %s, is_starred = %s, is_important = %s, updated_at = NOW()
                    WHERE id = %s
                    """,
                    (
                        merged_flags["is_read"],
                        merged_flags["is_starred"],
                        merged_flags["is_important"],
                        keep.id,
                    ),
                ),
                ("DELETE FROM emails WHERE id = ANY(%s)", (remove_ids,)),
            ]
        )
