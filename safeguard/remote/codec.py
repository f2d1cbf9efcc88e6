"""Mapping between domain records and the remote API's snake_case rows.

The remote service stores the same fields as :class:`PasswordRecord`, but
timestamps use snake_case names and optional attributes live at the top level
of the row. Domain records keep those attributes in ``extra`` under the same
keys, so a record survives ``record_to_wire`` followed by ``record_from_wire``
unchanged.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..store.types import IMMUTABLE_FIELDS, PasswordRecord

WIRE_CORE_FIELDS = ("id", "service", "username", "password", "created_at", "updated_at")
# Server-owned columns that never travel back in a request body.
WIRE_SERVER_FIELDS = ("user_id",)
# camelCase spellings some clients send for optional attributes.
CAMEL_TO_WIRE = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "expiresAt": "expires_at",
    "userId": "user_id",
}


def _wire_key(key: str) -> str:
    return CAMEL_TO_WIRE.get(key, key)


def record_from_wire(row: Mapping[str, Any]) -> PasswordRecord:
    missing = [name for name in WIRE_CORE_FIELDS if row.get(name) is None]
    if missing:
        raise ValueError(f"remote row missing fields: {', '.join(missing)}")
    extra = {
        _wire_key(key): value
        for key, value in row.items()
        if _wire_key(key) not in WIRE_CORE_FIELDS
    }
    return PasswordRecord(
        id=str(row["id"]),
        service=str(row["service"]),
        username=str(row["username"]),
        password=str(row["password"]),
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
        extra=extra,
    )


def record_to_wire(record: PasswordRecord) -> dict[str, Any]:
    row: dict[str, Any] = {_wire_key(key): value for key, value in record.extra.items()}
    row.update(
        {
            "id": record.id,
            "service": record.service,
            "username": record.username,
            "password": record.password,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }
    )
    return row


def insert_to_wire(data: Mapping[str, Any]) -> dict[str, Any]:
    """Request body for ``POST /passwords``."""

    body = patch_to_wire(data)
    for name in ("service", "username"):
        if isinstance(body.get(name), str):
            body[name] = body[name].strip()
    return body


def patch_to_wire(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Request body for ``PUT /passwords/{id}``; identity and timestamps are dropped."""

    body: dict[str, Any] = {}
    for key, value in patch.items():
        wire = _wire_key(key)
        if wire in IMMUTABLE_FIELDS or wire in WIRE_SERVER_FIELDS:
            continue
        body[wire] = value
    return body
