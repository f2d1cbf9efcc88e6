from __future__ import annotations

import datetime as dt
import time
from uuid import uuid4

RECORD_ID_PREFIX = "pwd"


def new_record_id() -> str:
    return f"{RECORD_ID_PREFIX}_{time.time_ns()}_{uuid4().hex[:12]}"


def now_iso() -> str:
    return dt.datetime.now(dt.UTC).isoformat()


def parse_iso8601(value: str) -> dt.datetime | None:
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(raw)
    except ValueError:
        return None
    return as_utc(parsed)


def as_utc(value: dt.datetime) -> dt.datetime:
    """Aware UTC copy of ``value``; naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC)


def next_timestamp(previous: str | None) -> str:
    """Current time, nudged forward so it is strictly later than ``previous``."""
    now = dt.datetime.now(dt.UTC)
    last = parse_iso8601(previous) if previous else None
    if last is not None and now <= last:
        now = last + dt.timedelta(microseconds=1)
    return now.isoformat()


def timestamp_key(value: str) -> dt.datetime:
    parsed = parse_iso8601(value or "")
    if parsed is None:
        return dt.datetime.min.replace(tzinfo=dt.UTC)
    return parsed
