from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Literal, TypeVar

from .errors import OperationError, StoreConnectionError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".safeguard.sqlite"
SCHEMA_VERSION = 1
STORE_NAME = "passwords"
INDEXED_COLUMNS = ("service", "username", "updated_at")

Mode = Literal["read", "readwrite"]
T = TypeVar("T")


def connect(db_path: Path | str, check_same_thread: bool = True) -> sqlite3.Connection:
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    # Transactions are opened explicitly by StoreEngine.run.
    conn = sqlite3.connect(path, check_same_thread=check_same_thread, isolation_level=None)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA journal_mode = WAL")
    except sqlite3.OperationalError:
        conn.execute("PRAGMA journal_mode = DELETE")
    conn.execute("PRAGMA synchronous = NORMAL")
    return conn


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        f"""
        CREATE TABLE IF NOT EXISTS {STORE_NAME} (
            id TEXT PRIMARY KEY,
            service TEXT NOT NULL,
            username TEXT NOT NULL,
            password TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            extra_json TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_passwords_service ON {STORE_NAME}(service);
        CREATE INDEX IF NOT EXISTS idx_passwords_username ON {STORE_NAME}(username);
        CREATE INDEX IF NOT EXISTS idx_passwords_updated_at ON {STORE_NAME}(updated_at);
        """
    )
    conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")


def to_json(data: Any) -> str:
    if data is None:
        payload: Any = {}
    else:
        payload = data
    return json.dumps(payload, ensure_ascii=False)


def from_json(text: str | None) -> dict[str, Any]:
    if not text:
        return {}
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


class StoreEngine:
    """Owns the single connection to one password database file.

    Every read or write goes through :meth:`run`, which opens the connection on
    first use and wraps the callback in one transaction. Callbacks receive the
    raw connection and may issue several statements; they are committed or
    rolled back together.
    """

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH) -> None:
        self.db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def initialize(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is not None:
                return self._conn
            conn: sqlite3.Connection | None = None
            try:
                conn = connect(self.db_path, check_same_thread=False)
                initialize_schema(conn)
            except (sqlite3.Error, OSError) as exc:
                if conn is not None:
                    conn.close()
                raise StoreConnectionError(
                    f"cannot open password database at {self.db_path}: {exc}"
                ) from exc
            logger.debug("opened password database", extra={"db_path": str(self.db_path)})
            self._conn = conn
            return conn

    def run(self, mode: Mode, operation: Callable[[sqlite3.Connection], T]) -> T:
        if mode not in ("read", "readwrite"):
            raise ValueError(f"unknown transaction mode: {mode!r}")
        with self._lock:
            conn = self.initialize()
            try:
                conn.execute("BEGIN IMMEDIATE" if mode == "readwrite" else "BEGIN")
            except sqlite3.Error as exc:
                raise OperationError(str(exc) or "database operation failed") from exc
            try:
                result = operation(conn)
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                self._rollback(conn)
                raise OperationError(str(exc) or "database operation failed") from exc
            except BaseException:
                self._rollback(conn)
                raise
            return result

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def health_check(self) -> bool:
        try:
            self.initialize()
        except StoreConnectionError as exc:
            logger.warning("password database health check failed: %s", exc)
            return False
        return self._conn is not None

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None


_ENGINES: dict[Path, StoreEngine] = {}
_ENGINES_LOCK = threading.Lock()


def get_engine(db_path: Path | str | None = None) -> StoreEngine:
    """Return the process-wide engine for ``db_path``, creating it on first use."""

    key = Path(db_path or DEFAULT_DB_PATH).expanduser().resolve()
    with _ENGINES_LOCK:
        engine = _ENGINES.get(key)
        if engine is None:
            engine = StoreEngine(key)
            _ENGINES[key] = engine
        return engine


def reset_engines() -> None:
    with _ENGINES_LOCK:
        engines = list(_ENGINES.values())
        _ENGINES.clear()
    for engine in engines:
        engine.close()
