from __future__ import annotations

from ._store import PasswordRepository
from .search import (
    character_similarity,
    edit_distance,
    filter_by_criteria,
    filter_by_substring,
    fuzzy_rank,
    sort_records,
)
from .types import DateRange, PasswordRecord, PasswordStats, SearchCriteria
from .utils import new_record_id

__all__ = [
    "DateRange",
    "PasswordRecord",
    "PasswordRepository",
    "PasswordStats",
    "SearchCriteria",
    "character_similarity",
    "edit_distance",
    "filter_by_criteria",
    "filter_by_substring",
    "fuzzy_rank",
    "new_record_id",
    "sort_records",
]
