from __future__ import annotations

import logging
import queue
import threading
from collections import deque
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from . import db
from .config import SafeguardConfig, load_config
from .errors import RemoteError
from .remote import RemotePasswordRepository
from .store import PasswordRepository
from .store import search as store_search
from .store.types import PasswordRecord, PasswordStats, SearchCriteria
from .store.utils import now_iso

logger = logging.getLogger(__name__)

MAX_SYNC_NOTICES = 100


@dataclass(frozen=True)
class SyncNotice:
    """A write that was applied locally but could not be mirrored remotely."""

    operation: str
    record_id: str
    error: str
    at: str


class RemoteMirror:
    """Daemon worker that applies mirrored writes in submission order."""

    def __init__(self, name: str = "safeguard-remote-mirror") -> None:
        self.name = name
        self._tasks: queue.Queue[Callable[[], None] | None] = queue.Queue()
        self._pending = 0
        self._idle = threading.Condition()
        self._thread: threading.Thread | None = None
        self._start_lock = threading.Lock()

    def start(self) -> None:
        with self._start_lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()

    def submit(self, task: Callable[[], None]) -> None:
        with self._idle:
            self._pending += 1
        self._tasks.put(task)
        self.start()

    def _run(self) -> None:
        while True:
            task = self._tasks.get()
            if task is None:
                return
            try:
                task()
            finally:
                with self._idle:
                    self._pending -= 1
                    if self._pending == 0:
                        self._idle.notify_all()

    def flush(self, timeout: float | None = None) -> bool:
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def stop(self, timeout: float | None = None) -> None:
        with self._start_lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self._tasks.put(None)
        thread.join(timeout)


class PasswordService:
    """Single entry point for password operations.

    Reads are always served from the local repository. In hybrid mode each
    local write is mirrored to the remote repository afterwards; a failed
    mirror is logged and kept as a :class:`SyncNotice` but never undoes or
    fails the local write.
    """

    def __init__(
        self,
        local: PasswordRepository,
        remote: RemotePasswordRepository | None = None,
        *,
        hybrid: bool = False,
        mirror_async: bool = True,
    ):
        if hybrid and remote is None:
            raise ValueError("hybrid mode requires a remote repository")
        self.local = local
        self.remote = remote if hybrid else None
        self._notices: deque[SyncNotice] = deque(maxlen=MAX_SYNC_NOTICES)
        self._notices_lock = threading.Lock()
        self._mirror = RemoteMirror() if hybrid and mirror_async else None

    @property
    def hybrid(self) -> bool:
        return self.remote is not None

    def find_all(self) -> list[PasswordRecord]:
        return self.local.find_all()

    def find_by_id(self, record_id: str) -> PasswordRecord | None:
        return self.local.find_by_id(record_id)

    def search(self, query: str) -> list[PasswordRecord]:
        return self.local.search(query)

    def fuzzy_search(self, query: str) -> list[PasswordRecord]:
        return store_search.fuzzy_rank(self.local.find_all(), query)

    def filter(self, criteria: SearchCriteria) -> list[PasswordRecord]:
        return store_search.filter_by_criteria(self.local.find_all(), criteria)

    def get_stats(self) -> PasswordStats:
        return self.local.get_stats()

    def create(self, data: Mapping[str, Any]) -> PasswordRecord:
        record = self.local.create(data)
        self._mirror_write("create", record.id, lambda remote: remote.upsert(record))
        return record

    def update(self, record_id: str, patch: Mapping[str, Any]) -> PasswordRecord:
        previous = self.local.find_by_id(record_id) if self.hybrid else None
        record = self.local.update(record_id, patch)
        if previous is not None:
            survivor = self._survivor(previous, record)
            self._mirror_write(
                "update",
                record_id,
                lambda remote: _mirror_update(remote, previous, record, survivor),
            )
        return record

    def delete(self, record_id: str) -> None:
        previous = self.local.find_by_id(record_id) if self.hybrid else None
        self.local.delete(record_id)
        if previous is not None:
            survivor = self._survivor(previous)
            self._mirror_write(
                "delete", record_id, lambda remote: _mirror_release(remote, previous, survivor)
            )

    def clear(self) -> None:
        # Local reset only; the remote copy is never bulk-deleted from here.
        self.local.clear()

    def batch_create(self, items: Sequence[Mapping[str, Any]]) -> list[PasswordRecord]:
        records = self.local.batch_create(items)
        for record in records:
            self._mirror_write("create", record.id, lambda remote, r=record: remote.upsert(r))
        return records

    def batch_update(
        self, updates: Iterable[tuple[str, Mapping[str, Any]]]
    ) -> list[PasswordRecord]:
        pending = list(updates)
        previous: dict[str, PasswordRecord] = {}
        if self.hybrid:
            for record_id, _ in pending:
                found = self.local.find_by_id(record_id)
                if found is not None:
                    previous.setdefault(record_id, found)
        records = self.local.batch_update(pending)
        for record in records:
            before = previous.get(record.id)
            if before is None:
                continue
            survivor = self._survivor(before, record)
            self._mirror_write(
                "update",
                record.id,
                lambda remote, b=before, r=record, s=survivor: _mirror_update(remote, b, r, s),
            )
        return records

    def health_check(self) -> dict[str, bool | None]:
        return {
            "local": self.local.health_check(),
            "remote": self.remote.health_check() if self.remote is not None else None,
        }

    def sync_notices(self) -> list[SyncNotice]:
        with self._notices_lock:
            return list(self._notices)

    def pop_sync_notices(self) -> list[SyncNotice]:
        """Return the recorded notices and forget them."""
        with self._notices_lock:
            notices = list(self._notices)
            self._notices.clear()
        return notices

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until queued remote mirrors have finished; False on timeout."""
        if self._mirror is None:
            return True
        return self._mirror.flush(timeout)

    def close(self) -> None:
        if self._mirror is not None:
            self._mirror.stop()
        if self.remote is not None:
            self.remote.close()

    def _survivor(
        self, before: PasswordRecord, after: PasswordRecord | None = None
    ) -> PasswordRecord | None:
        """Newest other local record still using the pair ``before`` gives up, if any."""
        pair = (before.service, before.username)
        if after is not None and (after.service, after.username) == pair:
            return None
        for candidate in self.local.find_all():
            if candidate.id != before.id and (candidate.service, candidate.username) == pair:
                return candidate
        return None

    def _mirror_write(
        self,
        operation: str,
        record_id: str,
        apply: Callable[[RemotePasswordRepository], Any],
    ) -> None:
        remote = self.remote
        if remote is None:
            return

        def _task() -> None:
            try:
                apply(remote)
            except RemoteError as exc:
                self._record_notice(operation, record_id, exc)
            except Exception as exc:
                logger.exception(
                    "remote mirror crashed", extra={"operation": operation, "id": record_id}
                )
                self._record_notice(operation, record_id, exc)
            else:
                logger.debug("remote mirror ok", extra={"operation": operation, "id": record_id})

        if self._mirror is not None:
            self._mirror.submit(_task)
        else:
            _task()

    def _record_notice(self, operation: str, record_id: str, exc: Exception) -> None:
        logger.warning(
            "remote sync failed for %s %s: %s; local copy kept", operation, record_id, exc
        )
        notice = SyncNotice(operation=operation, record_id=record_id, error=str(exc), at=now_iso())
        with self._notices_lock:
            self._notices.append(notice)


def _mirror_release(
    remote: RemotePasswordRepository, before: PasswordRecord, survivor: PasswordRecord | None
) -> None:
    # The remote keeps one row per pair; hand it to a local duplicate if one is left.
    if survivor is not None:
        remote.upsert(survivor)
    else:
        remote.delete_matching(before.service, before.username)


def _mirror_update(
    remote: RemotePasswordRepository,
    before: PasswordRecord,
    after: PasswordRecord,
    survivor: PasswordRecord | None = None,
) -> None:
    if (before.service, before.username) != (after.service, after.username):
        _mirror_release(remote, before, survivor)
    remote.upsert(after)


@dataclass(frozen=True)
class _ServiceKey:
    db_path: Path
    hybrid: bool
    api_base_url: str | None
    mirror_async: bool


_SERVICES: dict[_ServiceKey, PasswordService] = {}
_SERVICES_LOCK = threading.Lock()


def _service_key(cfg: SafeguardConfig) -> _ServiceKey:
    return _ServiceKey(
        db_path=Path(cfg.db_path or db.DEFAULT_DB_PATH).expanduser().resolve(),
        hybrid=bool(cfg.hybrid_enabled),
        api_base_url=cfg.api_base_url if cfg.hybrid_enabled else None,
        mirror_async=bool(cfg.mirror_async),
    )


def get_service(config: SafeguardConfig | None = None) -> PasswordService:
    """Return the live service for ``config``, building it on first request."""

    cfg = config or load_config()
    key = _service_key(cfg)
    with _SERVICES_LOCK:
        service = _SERVICES.get(key)
        if service is not None:
            return service
        remote = None
        if key.hybrid:
            remote = RemotePasswordRepository(
                cfg.api_base_url or "",
                timeout_s=cfg.api_timeout_s,
                retry_attempts=cfg.api_retry_attempts,
                backoff_s=cfg.api_backoff_s,
            )
        service = PasswordService(
            PasswordRepository(key.db_path),
            remote,
            hybrid=key.hybrid,
            mirror_async=key.mirror_async,
        )
        _SERVICES[key] = service
        logger.info(
            "password service created",
            extra={"db_path": str(key.db_path), "hybrid": key.hybrid},
        )
        return service


def reset_services() -> None:
    """Drop every cached service and close the shared database connections."""

    with _SERVICES_LOCK:
        services = list(_SERVICES.values())
        _SERVICES.clear()
    for service in services:
        service.close()
    db.reset_engines()
