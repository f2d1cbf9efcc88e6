from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any, TypeVar

from .. import db
from ..errors import NotFoundError, StoreError, ValidationError
from ..validation import missing_required
from . import search as store_search
from . import utils as store_utils
from .types import IMMUTABLE_FIELDS, REQUIRED_FIELDS, PasswordRecord, PasswordStats

logger = logging.getLogger(__name__)

T = TypeVar("T")

_COLUMNS = "id, service, username, password, created_at, updated_at, extra_json"


class PasswordRepository:
    """CRUD and search over password records kept in the local database.

    Identity and timestamps are assigned here; the engine only persists rows.
    Reads come back sorted by ``updated_at`` descending with insertion order
    breaking ties.
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        *,
        engine: db.StoreEngine | None = None,
    ):
        self.engine = engine or db.get_engine(db_path)
        self.db_path = self.engine.db_path

    def _run(
        self, operation: str, mode: db.Mode, fn: Callable[[sqlite3.Connection], T]
    ) -> T:
        try:
            return self.engine.run(mode, fn)
        except StoreError as exc:
            if exc.operation is None:
                exc.operation = operation
            raise

    @staticmethod
    def _record_from_row(row: sqlite3.Row) -> PasswordRecord:
        return PasswordRecord(
            id=row["id"],
            service=row["service"],
            username=row["username"],
            password=row["password"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            extra=db.from_json(row["extra_json"]),
        )

    @staticmethod
    def _row_params(record: PasswordRecord) -> tuple[Any, ...]:
        return (
            record.id,
            record.service,
            record.username,
            record.password,
            record.created_at,
            record.updated_at,
            db.to_json(record.extra),
        )

    @staticmethod
    def _fetch(conn: sqlite3.Connection, record_id: str) -> PasswordRecord | None:
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM {db.STORE_NAME} WHERE id = ?", (record_id,)
        ).fetchone()
        if row is None:
            return None
        return PasswordRepository._record_from_row(row)

    @staticmethod
    def _insert(conn: sqlite3.Connection, record: PasswordRecord) -> None:
        conn.execute(
            f"INSERT INTO {db.STORE_NAME}({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            PasswordRepository._row_params(record),
        )

    @staticmethod
    def _write(conn: sqlite3.Connection, record: PasswordRecord) -> None:
        conn.execute(
            f"""
            UPDATE {db.STORE_NAME}
            SET service = ?, username = ?, password = ?, updated_at = ?, extra_json = ?
            WHERE id = ?
            """,
            (
                record.service,
                record.username,
                record.password,
                record.updated_at,
                db.to_json(record.extra),
                record.id,
            ),
        )

    @staticmethod
    def _check_insert(data: Mapping[str, Any]) -> None:
        missing = missing_required(data)
        if missing:
            raise ValidationError([f"{name} is required" for name in missing])

    @staticmethod
    def _check_patch(patch: Mapping[str, Any]) -> None:
        missing = missing_required(patch, partial=True)
        if missing:
            raise ValidationError([f"{name} cannot be empty" for name in missing])

    @staticmethod
    def _new_record(data: Mapping[str, Any], now: str) -> PasswordRecord:
        extra = {
            key: value
            for key, value in data.items()
            if key not in REQUIRED_FIELDS and key not in IMMUTABLE_FIELDS
        }
        return PasswordRecord(
            id=store_utils.new_record_id(),
            service=str(data["service"]).strip(),
            username=str(data["username"]).strip(),
            password=str(data["password"]),
            created_at=now,
            updated_at=now,
            extra=extra,
        )

    @staticmethod
    def _merge(existing: PasswordRecord, patch: Mapping[str, Any]) -> PasswordRecord:
        merged = PasswordRecord(
            id=existing.id,
            service=existing.service,
            username=existing.username,
            password=existing.password,
            created_at=existing.created_at,
            updated_at=store_utils.next_timestamp(existing.updated_at),
            extra=dict(existing.extra),
        )
        for key, value in patch.items():
            if key in IMMUTABLE_FIELDS:
                continue
            if key in ("service", "username"):
                setattr(merged, key, str(value).strip())
            elif key == "password":
                merged.password = str(value)
            else:
                merged.extra[key] = value
        return merged

    def find_all(self) -> list[PasswordRecord]:
        def _select(conn: sqlite3.Connection) -> list[PasswordRecord]:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM {db.STORE_NAME} ORDER BY rowid"
            ).fetchall()
            return [self._record_from_row(row) for row in rows]

        records = self._run("find_all", "read", _select)
        return store_search.sort_records(records, "updated_at", "desc")

    def find_by_id(self, record_id: str) -> PasswordRecord | None:
        return self._run("find_by_id", "read", lambda conn: self._fetch(conn, record_id))

    def search(self, query: str) -> list[PasswordRecord]:
        if not query.strip():
            return self.find_all()
        return store_search.filter_by_substring(self.find_all(), query)

    def create(self, data: Mapping[str, Any]) -> PasswordRecord:
        self._check_insert(data)
        record = self._new_record(data, store_utils.now_iso())
        self._run("create", "readwrite", lambda conn: self._insert(conn, record))
        logger.info("password created", extra={"id": record.id, "service": record.service})
        return record

    def update(self, record_id: str, patch: Mapping[str, Any]) -> PasswordRecord:
        self._check_patch(patch)

        def _apply(conn: sqlite3.Connection) -> PasswordRecord:
            existing = self._fetch(conn, record_id)
            if existing is None:
                raise NotFoundError(record_id)
            merged = self._merge(existing, patch)
            self._write(conn, merged)
            return merged

        record = self._run("update", "readwrite", _apply)
        logger.info("password updated", extra={"id": record.id, "service": record.service})
        return record

    def delete(self, record_id: str) -> None:
        def _delete(conn: sqlite3.Connection) -> int:
            cur = conn.execute(f"DELETE FROM {db.STORE_NAME} WHERE id = ?", (record_id,))
            return cur.rowcount

        removed = self._run("delete", "readwrite", _delete)
        if removed:
            logger.info("password deleted", extra={"id": record_id})
        else:
            logger.debug("delete skipped, password not present", extra={"id": record_id})

    def clear(self) -> None:
        self._run("clear", "readwrite", lambda conn: conn.execute(f"DELETE FROM {db.STORE_NAME}"))
        logger.warning("all passwords cleared", extra={"db_path": str(self.db_path)})

    def get_stats(self) -> PasswordStats:
        def _count(conn: sqlite3.Connection) -> int:
            row = conn.execute(f"SELECT COUNT(*) AS total FROM {db.STORE_NAME}").fetchone()
            return int(row["total"]) if row else 0

        total = self._run("get_stats", "read", _count)
        return PasswordStats(total=total, has_any=total > 0)

    def batch_create(self, items: Sequence[Mapping[str, Any]]) -> list[PasswordRecord]:
        errors: list[str] = []
        for index, data in enumerate(items):
            errors.extend(f"item {index}: {name} is required" for name in missing_required(data))
        if errors:
            raise ValidationError(errors)
        now = store_utils.now_iso()
        records = [self._new_record(data, now) for data in items]

        def _insert_all(conn: sqlite3.Connection) -> None:
            for record in records:
                self._insert(conn, record)

        self._run("batch_create", "readwrite", _insert_all)
        logger.info("passwords created in batch", extra={"count": len(records)})
        return records

    def batch_update(
        self, updates: Iterable[tuple[str, Mapping[str, Any]]]
    ) -> list[PasswordRecord]:
        pending = list(updates)
        for _, patch in pending:
            self._check_patch(patch)

        def _apply_all(conn: sqlite3.Connection) -> list[PasswordRecord]:
            results: list[PasswordRecord] = []
            for record_id, patch in pending:
                existing = self._fetch(conn, record_id)
                if existing is None:
                    raise NotFoundError(record_id)
                merged = self._merge(existing, patch)
                self._write(conn, merged)
                results.append(merged)
            return results

        records = self._run("batch_update", "readwrite", _apply_all)
        logger.info("passwords updated in batch", extra={"count": len(records)})
        return records

    def health_check(self) -> bool:
        return self.engine.health_check()

    def close(self) -> None:
        self.engine.close()
