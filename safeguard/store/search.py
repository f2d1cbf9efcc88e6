from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

from .types import PasswordRecord, SearchCriteria
from .utils import as_utc, parse_iso8601, timestamp_key

SortField = Literal["service", "username", "updated_at"]
SortOrder = Literal["asc", "desc"]

EXACT_MATCH_SCORE = 100.0
PREFIX_MATCH_SCORE = 50.0
SUBSTRING_MATCH_SCORE = 25.0
SIMILARITY_WEIGHT = 10.0


def _matches(record: PasswordRecord, needle: str) -> bool:
    return needle in record.service.lower() or needle in record.username.lower()


def filter_by_substring(records: Sequence[PasswordRecord], query: str) -> list[PasswordRecord]:
    needle = query.strip().lower()
    if not needle:
        return list(records)
    return [record for record in records if _matches(record, needle)]


def filter_by_criteria(
    records: Sequence[PasswordRecord], criteria: SearchCriteria
) -> list[PasswordRecord]:
    filtered = list(records)
    if criteria.query:
        filtered = filter_by_substring(filtered, criteria.query)
    if criteria.date_range is not None:
        start = as_utc(criteria.date_range.from_)
        end = as_utc(criteria.date_range.to)
        kept: list[PasswordRecord] = []
        for record in filtered:
            updated = parse_iso8601(record.updated_at)
            if updated is not None and start <= updated <= end:
                kept.append(record)
        filtered = kept
    if criteria.services:
        allowed = set(criteria.services)
        filtered = [record for record in filtered if record.service in allowed]
    return filtered


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance with unit insert, delete and substitute costs."""
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(current[j - 1] + 1, previous[j] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def character_similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - edit_distance(a, b)) / longest


def fuzzy_score(record: PasswordRecord, query: str) -> float:
    needle = query.lower()
    service = record.service.lower()
    username = record.username.lower()
    score = 0.0
    if service == needle or username == needle:
        score += EXACT_MATCH_SCORE
    if service.startswith(needle) or username.startswith(needle):
        score += PREFIX_MATCH_SCORE
    if needle in service or needle in username:
        score += SUBSTRING_MATCH_SCORE
    score += character_similarity(service, needle) * SIMILARITY_WEIGHT
    score += character_similarity(username, needle) * SIMILARITY_WEIGHT
    return score


def fuzzy_rank(records: Sequence[PasswordRecord], query: str) -> list[PasswordRecord]:
    query = query.strip()
    if not query:
        return list(records)
    scored = [(fuzzy_score(record, query), record) for record in records]
    scored = [item for item in scored if item[0] > 0]
    scored.sort(key=lambda item: item[0], reverse=True)
    return [record for _, record in scored]


def sort_records(
    records: Sequence[PasswordRecord],
    sort_by: SortField = "updated_at",
    order: SortOrder = "desc",
) -> list[PasswordRecord]:
    reverse = order == "desc"
    if sort_by == "updated_at":
        return sorted(records, key=lambda r: timestamp_key(r.updated_at), reverse=reverse)
    if sort_by == "service":
        return sorted(records, key=lambda r: r.service.casefold(), reverse=reverse)
    if sort_by == "username":
        return sorted(records, key=lambda r: r.username.casefold(), reverse=reverse)
    raise ValueError(f"unknown sort field: {sort_by!r}")
