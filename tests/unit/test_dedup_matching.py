from datetime import timedelta

import pytest

from mailsync.features.deduplication.matching import (
    calculate_similarity,
    generate_email_hash,
    levenshtein_distance,
    normalize_email,
    normalize_subject,
    time_proximity,
)
from tests.factories import BASE_TIME

WINDOW = 300.0


@pytest.mark.parametrize(
    ("first", "second", "expected"),
    [
        ("", "", 0),
        ("abc", "", 3),
        ("kitten", "sitting", 3),
        ("flaw", "lawn", 2),
        ("budget", "budget", 0),
    ],
)
def test_levenshtein_distance(first, second, expected):
    assert levenshtein_distance(first, second) == expected
    assert levenshtein_distance(second, first) == expected


def test_similarity_identity_and_symmetry():
    assert calculate_similarity("quarterly report", "quarterly report") == 1.0
    assert calculate_similarity("abcd", "abxy") == pytest.approx(0.5)
    assert calculate_similarity("kitten", "sitting") == calculate_similarity("sitting", "kitten")


def test_similarity_ignores_case():
    assert calculate_similarity("Budget Review", "budget review") == 1.0


@pytest.mark.parametrize(
    ("first", "second"),
    [("İ", "a"), ("İstanbul", "x"), ("İİİ", "i"), ("Straße", "STRASSE")],
)
def test_similarity_stays_bounded_when_lowercasing_changes_length(first, second):
    assert 0.0 <= calculate_similarity(first, second) <= 1.0
    assert 0.0 <= calculate_similarity(second, first) <= 1.0


def test_similarity_empty_side_scores_zero():
    assert calculate_similarity("", "") == 0.0
    assert calculate_similarity("hello", "") == 0.0
    assert calculate_similarity(None, "hello") == 0.0


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Re: Budget Review", "budget review"),
        ("FWD:   Budget   Review ", "budget review"),
        ("Fw: [External] Budget Review", "budget review"),
        ("[ops] [alerts]  Disk   full", "disk full"),
        ("Re: Re: Budget", "re: budget"),
        ("Regarding lunch", "regarding lunch"),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_subject(raw, expected):
    assert normalize_subject(raw) == expected


def test_normalize_email():
    assert normalize_email("  Alice@Co.COM ") == "alice@co.com"
    assert normalize_email(None) == ""
    assert normalize_email("") == ""


def test_time_proximity_bounds_and_monotonic():
    assert time_proximity(BASE_TIME, BASE_TIME, WINDOW) == 1.0
    assert time_proximity(BASE_TIME, BASE_TIME + timedelta(minutes=5), WINDOW) == 0.0
    assert time_proximity(BASE_TIME, BASE_TIME - timedelta(minutes=9), WINDOW) == 0.0

    scores = [
        time_proximity(BASE_TIME, BASE_TIME + timedelta(seconds=offset), WINDOW)
        for offset in range(0, 330, 30)
    ]
    assert scores == sorted(scores, reverse=True)
    assert time_proximity(BASE_TIME, BASE_TIME + timedelta(seconds=150), WINDOW) == pytest.approx(0.5)


def test_time_proximity_is_direction_independent():
    earlier = BASE_TIME - timedelta(seconds=45)
    later = BASE_TIME + timedelta(seconds=45)
    assert time_proximity(BASE_TIME, earlier, WINDOW) == time_proximity(BASE_TIME, later, WINDOW)


def test_email_hash_buckets_by_minute():
    first = generate_email_hash(" Invoice 42 ", "Billing@Vendor.com", BASE_TIME + timedelta(seconds=5))
    second = generate_email_hash("invoice 42", "billing@vendor.com", BASE_TIME + timedelta(seconds=50))
    next_minute = generate_email_hash("invoice 42", "billing@vendor.com", BASE_TIME + timedelta(seconds=65))

    assert first == second
    assert first != next_minute
    assert len(first) == 16
