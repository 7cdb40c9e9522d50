from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from mailsync.features.deduplication.repository import email_repository as repo_module
from mailsync.features.deduplication.repository.email_repository import (
    EmailRepository,
    EmailRepositoryError,
)
from tests.factories import BASE_TIME


def _row(**overrides):
    row = {
        "id": 42,
        "account_id": "acct-1",
        "message_id": "<m@mail>",
        "provider_message_id": "prov-1",
        "subject": None,
        "snippet": "hello",
        "from_address": {"email": "alice@co.com", "name": "Alice"},
        "received_at": datetime(2024, 3, 4, 9, 30),
        "is_read": None,
        "is_starred": True,
        "is_important": False,
        "duplicate_of": None,
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_find_by_message_id_maps_row(monkeypatch):
    fetch_one = AsyncMock(return_value=_row())
    monkeypatch.setattr(repo_module, "fetch_one", fetch_one)

    email = await EmailRepository.find_by_message_id("acct-1", "<m@mail>")

    assert email.id == "42"
    assert email.subject == ""
    assert email.received_at == BASE_TIME
    assert email.from_address.email == "alice@co.com"
    assert email.is_read is False
    assert email.is_starred is True
    assert fetch_one.await_args.args[1] == ("acct-1", "<m@mail>")


@pytest.mark.asyncio
async def test_find_by_message_id_missing_returns_none(monkeypatch):
    monkeypatch.setattr(repo_module, "fetch_one", AsyncMock(return_value=None))

    assert await EmailRepository.find_by_message_id("acct-1", "nope") is None


@pytest.mark.asyncio
async def test_find_received_since_passes_lower_bound_and_limit(monkeypatch):
    fetch_all = AsyncMock(return_value=[_row(id=1), _row(id=2, duplicate_of=1)])
    monkeypatch.setattr(repo_module, "fetch_all", fetch_all)

    emails = await EmailRepository.find_received_since("acct-1", BASE_TIME, limit=10)

    query, params = fetch_all.await_args.args
    assert "received_at >= %s" in query
    assert params == ("acct-1", BASE_TIME, 10)
    assert [e.id for e in emails] == ["1", "2"]
    assert emails[1].duplicate_of == "1"


@pytest.mark.asyncio
async def test_find_fuzzy_duplicates_uses_symmetric_tolerance(monkeypatch):
    fetch_all = AsyncMock(return_value=[])
    monkeypatch.setattr(repo_module, "fetch_all", fetch_all)

    await EmailRepository.find_fuzzy_duplicates("acct-1", "Invoice", " bill@v.com ", BASE_TIME)

    assert fetch_all.await_args.args[1] == (
        "acct-1",
        "bill@v.com",
        "Invoice",
        BASE_TIME,
        60,
        BASE_TIME,
        60,
    )


@pytest.mark.asyncio
async def test_find_cross_account_duplicates_scopes_by_user(monkeypatch):
    fetch_all = AsyncMock(return_value=[_row(account_id="acct-2")])
    monkeypatch.setattr(repo_module, "fetch_all", fetch_all)

    emails = await EmailRepository.find_cross_account_duplicates("user-1", "<m@mail>")

    query, params = fetch_all.await_args.args
    assert "JOIN email_accounts" in query
    assert params == ("user-1", "<m@mail>")
    assert emails[0].account_id == "acct-2"


@pytest.mark.asyncio
async def test_email_exists_checks_provider_id_when_given(monkeypatch):
    fetch_val = AsyncMock(return_value=True)
    monkeypatch.setattr(repo_module, "fetch_val", fetch_val)

    assert await EmailRepository.email_exists("acct-1", "<m@mail>", "prov-1") is True
    assert fetch_val.await_args.args[1] == ("acct-1", "<m@mail>", "prov-1")

    fetch_val.return_value = None
    assert await EmailRepository.email_exists("acct-1", "<m@mail>") is False
    assert fetch_val.await_args.args[1] == ("acct-1", "<m@mail>")


@pytest.mark.asyncio
async def test_mark_as_duplicate_reports_missing_row(monkeypatch):
    execute_query = AsyncMock(return_value=0)
    monkeypatch.setattr(repo_module, "execute_query", execute_query)

    assert await EmailRepository.mark_as_duplicate("copy", "original") is False
    assert execute_query.await_args.args[1] == ("original", "copy")


@pytest.mark.asyncio
async def test_mark_as_duplicate_rejects_self_reference(monkeypatch):
    execute_query = AsyncMock()
    monkeypatch.setattr(repo_module, "execute_query", execute_query)

    with pytest.raises(EmailRepositoryError) as excinfo:
        await EmailRepository.mark_as_duplicate("same", "same")

    assert excinfo.value.recoverable is False
    execute_query.assert_not_awaited()


@pytest.mark.asyncio
async def test_collapse_duplicates_runs_in_one_transaction(monkeypatch):
    execute_transaction = AsyncMock()
    monkeypatch.setattr(repo_module, "execute_transaction", execute_transaction)
    keep = EmailRepository._row_to_email(_row(id="keep"))

    await EmailRepository.collapse_duplicates(
        keep, ["a", "b"], {"is_read": True, "is_starred": False, "is_important": True}
    )

    (statements,) = execute_transaction.await_args.args
    assert len(statements) == 2
    assert statements[0][1] == (True, False, True, "keep")
    assert statements[1] == ("DELETE FROM emails WHERE id = ANY(%s)", (["a", "b"],))
