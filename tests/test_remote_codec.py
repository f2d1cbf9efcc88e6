from __future__ import annotations

import pytest

from safeguard.remote import codec
from safeguard.store.types import PasswordRecord


def _row() -> dict:
    return {
        "id": "0b4e7a9c-1111-2222-3333-444455556666",
        "user_id": "u-1",
        "service": "Gmail",
        "username": "me@gmail.com",
        "password": "pw",
        "url": "https://mail.google.com",
        "notes": "",
        "folder": "personal",
        "tags": ["mail"],
        "created_at": "2025-01-01T10:00:00.000Z",
        "updated_at": "2025-01-02T10:00:00.000Z",
        "expires_at": None,
    }


def test_record_from_wire_maps_timestamps_and_keeps_optional_fields() -> None:
    record = codec.record_from_wire(_row())

    assert record.created_at == "2025-01-01T10:00:00.000Z"
    assert record.updated_at == "2025-01-02T10:00:00.000Z"
    assert record.extra == {
        "user_id": "u-1",
        "url": "https://mail.google.com",
        "notes": "",
        "folder": "personal",
        "tags": ["mail"],
        "expires_at": None,
    }


def test_wire_round_trip_is_lossless() -> None:
    row = _row()
    assert codec.record_to_wire(codec.record_from_wire(row)) == row

    record = PasswordRecord(
        id="pwd_1",
        service="Bank",
        username="me",
        password="pw",
        created_at="2025-01-01T00:00:00+00:00",
        updated_at="2025-01-03T00:00:00+00:00",
        extra={"notes": "n", "expires_at": "2026-01-01T00:00:00+00:00"},
    )
    assert codec.record_from_wire(codec.record_to_wire(record)) == record


def test_camel_case_keys_are_normalised() -> None:
    row = _row()
    row.pop("expires_at")
    row["expiresAt"] = "2026-01-01"
    assert codec.record_from_wire(row).extra["expires_at"] == "2026-01-01"


def test_record_from_wire_rejects_incomplete_rows() -> None:
    row = _row()
    del row["updated_at"]
    with pytest.raises(ValueError, match="updated_at"):
        codec.record_from_wire(row)


def test_patch_to_wire_drops_identity_and_server_fields() -> None:
    body = codec.patch_to_wire(
        {
            "id": "x",
            "createdAt": "t",
            "updated_at": "t",
            "user_id": "u",
            "password": "new",
            "expiresAt": "2026-01-01",
        }
    )
    assert body == {"password": "new", "expires_at": "2026-01-01"}


def test_insert_to_wire_trims_identity_fields() -> None:
    body = codec.insert_to_wire({"service": " Gmail ", "username": " me ", "password": " pw "})
    assert body == {"service": "Gmail", "username": "me", "password": " pw "}
