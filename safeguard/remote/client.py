from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any
from urllib.parse import quote, urlparse

import httpx

from ..errors import ApiError, NetworkError, NotFoundError, RemoteError, ValidationError
from ..store import search as store_search
from ..store.types import PasswordRecord, PasswordStats
from ..validation import missing_required
from . import codec

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_BACKOFF_S = 1.0


def build_base_url(address: str) -> str:
    trimmed = address.strip().rstrip("/")
    if not trimmed:
        return ""
    parsed = urlparse(trimmed)
    if parsed.scheme:
        return trimmed
    return f"https://{trimmed}"


def _decode(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        payload = response.json()
    except ValueError:
        snippet = response.content[:240].decode("utf-8", errors="replace").strip()
        return {
            "success": False,
            "error": f"non_json_response: {snippet}" if snippet else "non_json_response",
        }
    if isinstance(payload, dict):
        return payload
    return {"success": False, "error": f"unexpected_json_type: {type(payload).__name__}"}


class RemotePasswordRepository:
    """Password repository backed by the hosted REST API.

    Every call is bounded by ``timeout_s`` and retried up to ``retry_attempts``
    times on network failures and 5xx responses, sleeping ``backoff_s`` and
    doubling the delay after each failed attempt. 4xx responses and
    ``success: false`` envelopes fail immediately.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        backoff_s: float = DEFAULT_BACKOFF_S,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = build_base_url(base_url)
        if not self.base_url:
            raise ValueError("remote api base url is required")
        self.timeout_s = timeout_s
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_s = backoff_s
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout_s,
            transport=transport,
            headers={"Accept": "application/json"},
        )
        logger.info(
            "remote password repository ready",
            extra={"base_url": self.base_url, "timeout_s": timeout_s},
        )

    def _request_once(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
        require_success: bool = True,
    ) -> dict[str, Any]:
        try:
            response = self._client.request(method, path, params=params, json=body)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"{method} {path} timed out after {self.timeout_s}s") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}") from exc
        payload = _decode(response)
        failed = response.status_code >= 400
        if require_success and payload.get("success") is not True:
            failed = True
        if failed:
            message = (
                payload.get("error") or payload.get("message") or f"HTTP {response.status_code}"
            )
            raise ApiError(str(message), status=response.status_code)
        return payload

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        delay = self.backoff_s
        for attempt in range(1, self.retry_attempts + 1):
            logger.debug(
                "remote request", extra={"method": method, "path": path, "attempt": attempt}
            )
            try:
                return self._request_once(method, path, params=params, body=body)
            except RemoteError as exc:
                retryable = isinstance(exc, NetworkError) or (
                    isinstance(exc, ApiError) and exc.retryable
                )
                will_retry = retryable and attempt < self.retry_attempts
                logger.warning(
                    "remote request failed: %s",
                    exc,
                    extra={
                        "method": method,
                        "path": path,
                        "attempt": attempt,
                        "will_retry": will_retry,
                    },
                )
                if not will_retry:
                    raise
                self._sleep(delay)
                delay *= 2
        raise AssertionError("unreachable")

    @staticmethod
    def _item_path(record_id: str) -> str:
        return f"/passwords/{quote(record_id, safe='')}"

    def _records(self, payload: dict[str, Any]) -> list[PasswordRecord]:
        rows = payload.get("data")
        if not isinstance(rows, list):
            raise ApiError("remote response missing data list")
        try:
            records = [codec.record_from_wire(row) for row in rows if isinstance(row, dict)]
        except ValueError as exc:
            raise ApiError(f"malformed remote row: {exc}") from exc
        return store_search.sort_records(records, "updated_at", "desc")

    def _record(self, payload: dict[str, Any]) -> PasswordRecord:
        row = payload.get("data")
        if not isinstance(row, dict):
            raise ApiError("remote response missing data object")
        try:
            return codec.record_from_wire(row)
        except ValueError as exc:
            raise ApiError(f"malformed remote row: {exc}") from exc

    def find_all(self) -> list[PasswordRecord]:
        return self._records(self._request("GET", "/passwords"))

    def find_by_id(self, record_id: str) -> PasswordRecord | None:
        for record in self.find_all():
            if record.id == record_id:
                return record
        return None

    def search(self, query: str) -> list[PasswordRecord]:
        if not query.strip():
            return self.find_all()
        return self._records(self._request("GET", "/passwords", params={"search": query.strip()}))

    def create(self, data: Mapping[str, Any]) -> PasswordRecord:
        missing = missing_required(data)
        if missing:
            raise ValidationError([f"{name} is required" for name in missing])
        record = self._record(self._request("POST", "/passwords", body=codec.insert_to_wire(data)))
        logger.info("remote password created", extra={"id": record.id, "service": record.service})
        return record

    def update(self, record_id: str, patch: Mapping[str, Any]) -> PasswordRecord:
        try:
            payload = self._request(
                "PUT", self._item_path(record_id), body=codec.patch_to_wire(patch)
            )
        except ApiError as exc:
            if exc.status == 404:
                raise NotFoundError(record_id, operation="update") from exc
            raise
        return self._record(payload)

    def delete(self, record_id: str) -> None:
        try:
            self._request("DELETE", self._item_path(record_id))
        except ApiError as exc:
            if exc.status != 404:
                raise
            logger.debug("remote delete skipped, password not present", extra={"id": record_id})

    def upsert(self, record: PasswordRecord) -> PasswordRecord:
        """Create or overwrite the remote row sharing ``record``'s service and username."""

        body = codec.insert_to_wire(
            {"service": record.service, "username": record.username, "password": record.password}
        )
        body.update(codec.patch_to_wire(record.extra))
        remote = self._record(self._request("POST", "/passwords", body=body))
        logger.info("remote password upserted", extra={"id": remote.id, "service": remote.service})
        return remote

    def delete_matching(self, service: str, username: str) -> int:
        removed = 0
        for record in self.find_all():
            if record.service == service and record.username == username:
                self.delete(record.id)
                removed += 1
        return removed

    def clear(self) -> None:
        for record in self.find_all():
            self.delete(record.id)

    def get_stats(self) -> PasswordStats:
        total = len(self.find_all())
        return PasswordStats(total=total, has_any=total > 0)

    def batch_create(self, items: Sequence[Mapping[str, Any]]) -> list[PasswordRecord]:
        return [self.create(data) for data in items]

    def batch_update(
        self, updates: Iterable[tuple[str, Mapping[str, Any]]]
    ) -> list[PasswordRecord]:
        return [self.update(record_id, patch) for record_id, patch in updates]

    def health_check(self) -> bool:
        try:
            payload = self._request_once("GET", "/health", require_success=False)
        except RemoteError as exc:
            logger.warning("remote health check failed: %s", exc)
            return False
        return payload.get("success") is not False

    def close(self) -> None:
        self._client.close()
