"""
String and time heuristics used by the duplicate detector.

All functions are pure so they can be unit-tested without a database.
"""

from __future__ import annotations

import hashlib
import re
from datetime import datetime

_REPLY_PREFIX_RE = re.compile(r"^(re|fwd|fw):\s*", re.IGNORECASE)
_BRACKET_TAG_RE = re.compile(r"\[.*?\]")
_WHITESPACE_RE = re.compile(r"\s+")


def levenshtein_distance(str1: str, str2: str) -> int:
    """Edit distance with unit cost for insertion, deletion and substitution."""
    if len(str1) < len(str2):
        str1, str2 = str2, str1

    # Two rolling rows of the DP matrix; columns follow the shorter string
    previous = list(range(len(str2) + 1))
    for i, char1 in enumerate(str1, start=1):
        current = [i]
        for j, char2 in enumerate(str2, start=1):
            cost = 0 if char1 == char2 else 1
            current.append(
                min(
                    previous[j] + 1,  # deletion
                    current[j - 1] + 1,  # insertion
                    previous[j - 1] + cost,  # substitution
                )
            )
        previous = current

    return previous[-1]


def calculate_similarity(str1: str | None, str2: str | None) -> float:
    """
    Case-insensitive normalized similarity between two strings.

    Returns 1.0 for identical strings and 0.0 when either side is empty.
    """
    if not str1 or not str2:
        return 0.0

    # Lowercasing can change length ("İ" -> "i̇"), so measure the lowered strings
    first, second = str1.lower(), str2.lower()
    distance = levenshtein_distance(first, second)
    max_length = max(len(first), len(second))
    return 1.0 - distance / max_length


def normalize_subject(subject: str | None) -> str:
    """Lowercase, drop one Re:/Fwd:/Fw: prefix and all [tags], collapse whitespace."""
    if not subject:
        return ""
    normalized = subject.lower()
    normalized = _REPLY_PREFIX_RE.sub("", normalized, count=1)
    normalized = _BRACKET_TAG_RE.sub("", normalized)
    normalized = _WHITESPACE_RE.sub(" ", normalized)
    return normalized.strip()


def normalize_email(email: str | None) -> str:
    if not email:
        return ""
    return email.lower().strip()


def time_proximity(first: datetime, second: datetime, window_seconds: float) -> float:
    """Linear decay from 1.0 at the same instant to 0.0 at or beyond the window."""
    if window_seconds <= 0:
        return 0.0
    delta = abs((first - second).total_seconds())
    return max(0.0, 1.0 - delta / window_seconds)


def generate_email_hash(subject: str, sender_email: str, received_at: datetime) -> str:
    """
    Stable content fingerprint: subject, sender and the received minute.

    Two copies of the same message delivered within the same minute hash
    identically even when their provider ids differ.
    """
    minute_bucket = int(received_at.timestamp() // 60)
    normalized = "|".join(
        [
            (subject or "").strip().lower(),
            normalize_email(sender_email),
            str(minute_bucket),
        ]
    )
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]
