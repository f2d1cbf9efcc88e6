from __future__ import annotations


class SafeguardError(Exception):
    """Base class for every error raised by safeguard."""


class StoreError(SafeguardError):
    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message


class StoreConnectionError(StoreError):
    """The local database could not be opened."""


class OperationError(StoreError):
    """A single read or write against the local database failed."""


class NotFoundError(StoreError):
    def __init__(self, record_id: str, *, operation: str | None = None) -> None:
        super().__init__(f"password {record_id} not found", operation=operation)
        self.record_id = record_id


class ValidationError(SafeguardError, ValueError):
    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors) or "invalid password entry")
        self.errors = list(errors)


class RemoteError(SafeguardError):
    """Base for failures talking to the remote password API."""


class NetworkError(RemoteError):
    """The remote API could not be reached or timed out."""


class ApiError(RemoteError):
    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.status is None or self.status >= 500
