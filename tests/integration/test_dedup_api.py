from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mailsync.features.deduplication.api import router as router_module
from mailsync.features.deduplication.domain import (
    DeduplicationSummary,
    DetectorConfig,
    DuplicateDetectionError,
    ErrorStrategy,
)
from mailsync.features.deduplication.services.detector import DuplicateDetector
from tests.factories import BASE_TIME, FakeEmailStore, build_stored


def _payload(**overrides):
    payload = {
        "message_id": "<incoming@mail>",
        "subject": "Re: Budget Review",
        "from_address": {"email": "alice@co.com", "name": "Alice"},
        "received_at": BASE_TIME.isoformat(),
        "body_preview": None,
        "account_id": "acct-1",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def store():
    return FakeEmailStore(
        [
            build_stored("stored-1", message_id="abc123", subject="Quarterly numbers"),
            build_stored(
                "stored-2",
                message_id="<older@mail>",
                subject="Budget Review",
                received_at=BASE_TIME + timedelta(seconds=20),
            ),
        ]
    )


@pytest.fixture
def client(monkeypatch, store):
    detector = DuplicateDetector(repository=store, config=DetectorConfig())
    monkeypatch.setattr(router_module, "duplicate_detector", detector)

    app = FastAPI()
    app.include_router(router_module.router)
    return TestClient(app)


def test_check_exact_match(client):
    response = client.post("/sync/duplicates/check", json=_payload(message_id="abc123"))

    assert response.status_code == 200
    assert response.json() == {
        "is_duplicate": True,
        "duplicate_id": "stored-1",
        "confidence": 1.0,
        "reason": "Exact messageId match",
    }


def test_check_fuzzy_match(client):
    data = client.post("/sync/duplicates/check", json=_payload()).json()

    assert data["is_duplicate"] is True
    assert data["duplicate_id"] == "stored-2"
    assert data["confidence"] >= 0.85


def test_check_naive_timestamp_is_treated_as_utc(client):
    naive = BASE_TIME.replace(tzinfo=None).isoformat()

    data = client.post("/sync/duplicates/check", json=_payload(received_at=naive)).json()

    assert data["duplicate_id"] == "stored-2"


def test_check_rejects_missing_fields(client):
    payload = _payload()
    del payload["account_id"]

    response = client.post("/sync/duplicates/check", json=payload)

    assert response.status_code == 422


def test_check_rejects_blank_sender(client):
    response = client.post("/sync/duplicates/check", json=_payload(from_address={"email": ""}))

    assert response.status_code == 422


def test_check_rejects_whitespace_sender(client):
    response = client.post(
        "/sync/duplicates/check", json=_payload(from_address={"email": "   "})
    )

    assert response.status_code == 422


def test_check_fail_closed_returns_503(client, monkeypatch):
    failing = AsyncMock(side_effect=DuplicateDetectionError("store down", message_id="x"))
    monkeypatch.setattr(router_module.duplicate_detector, "check_for_duplicate", failing)

    response = client.post("/sync/duplicates/check", json=_payload())

    assert response.status_code == 503


def test_fail_closed_strategy_end_to_end(monkeypatch):
    class BrokenStore(FakeEmailStore):
        async def find_by_message_id(self, account_id, message_id):
            raise ConnectionError("no route to host")

    detector = DuplicateDetector(
        repository=BrokenStore(), config=DetectorConfig(error_strategy=ErrorStrategy.FAIL_CLOSED)
    )
    monkeypatch.setattr(router_module, "duplicate_detector", detector)
    app = FastAPI()
    app.include_router(router_module.router)

    response = TestClient(app).post("/sync/duplicates/check", json=_payload())

    assert response.status_code == 503


def test_batch_check(client):
    response = client.post(
        "/sync/duplicates/batch",
        json={
            "emails": [
                _payload(message_id="abc123"),
                _payload(message_id="<fresh@mail>", subject="Hello", from_address={"email": "z@z.z"}),
            ],
            "concurrency": 2,
        },
    )

    data = response.json()
    assert response.status_code == 200
    assert list(data["results"]) == ["abc123", "<fresh@mail>"]
    assert data["duplicates_found"] == 1
    assert data["results"]["<fresh@mail>"]["is_duplicate"] is False


def test_mark_duplicate(client, store):
    response = client.post("/sync/duplicates/stored-2/mark", json={"original_email_id": "stored-1"})

    assert response.status_code == 200
    assert response.json()["updated"] is True
    assert store.emails["stored-2"].duplicate_of == "stored-1"


def test_mark_duplicate_unknown_email(client):
    response = client.post("/sync/duplicates/missing/mark", json={"original_email_id": "stored-1"})

    assert response.status_code == 404


def test_deduplicate_account(client, monkeypatch):
    summary = DeduplicationSummary(
        account_id="acct-1", scanned=2, duplicates_found=3, duplicates_removed=3
    )
    monkeypatch.setattr(
        router_module.dedup_cleanup_job, "deduplicate_emails", AsyncMock(return_value=summary)
    )

    response = client.post("/sync/accounts/acct-1/deduplicate")

    assert response.status_code == 200
    assert response.json() == {
        "account_id": "acct-1",
        "scanned": 2,
        "duplicates_found": 3,
        "duplicates_removed": 3,
    }
