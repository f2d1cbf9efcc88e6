from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any

REQUIRED_FIELDS = ("service", "username", "password")
IMMUTABLE_FIELDS = ("id", "created_at", "updated_at")


@dataclass
class PasswordRecord:
    id: str
    service: str
    username: str
    password: str
    created_at: str
    updated_at: str
    # Optional attributes (url, notes, folder, tags, expires_at, ...) carried as-is.
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "service": self.service,
                "username": self.username,
                "password": self.password,
                "created_at": self.created_at,
                "updated_at": self.updated_at,
            }
        )
        return data


@dataclass(frozen=True)
class PasswordStats:
    total: int
    has_any: bool


@dataclass(frozen=True)
class DateRange:
    from_: dt.datetime
    to: dt.datetime


@dataclass(frozen=True)
class SearchCriteria:
    query: str | None = None
    date_range: DateRange | None = None
    services: list[str] | None = None

