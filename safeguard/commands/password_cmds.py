from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import asdict
from typing import Any

import typer
from rich import print
from rich.markup import escape

from ..errors import SafeguardError
from ..service import PasswordService
from ..store.search import SortField, sort_records
from ..store.types import PasswordRecord
from ..validation import ensure_valid, generate_password, password_strength

MASK = "********"
FLUSH_TIMEOUT_S = 30.0

ServiceFactory = Callable[[str | None], PasswordService]


def _fail(exc: Exception) -> None:
    print(f"[red]{escape(str(exc))}[/red]")
    raise typer.Exit(code=1)


def _line(record: PasswordRecord, *, reveal: bool = False) -> str:
    secret = record.password if reveal else MASK
    return (
        f"{escape('[' + record.id + ']')} [bold]{escape(record.service)}[/bold] "
        f"{escape(record.username)} {escape(secret)} (updated {record.updated_at})"
    )


def _emit(records: list[PasswordRecord], *, as_json: bool, reveal: bool = False) -> None:
    if as_json:
        payload = []
        for record in records:
            data = record.to_dict()
            if not reveal:
                data["password"] = MASK
            payload.append(data)
        typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        return
    if not records:
        print("[dim]No passwords stored.[/dim]")
        return
    for record in records:
        print(_line(record, reveal=reveal))


def _finish(service: PasswordService) -> None:
    """Wait for remote mirrors and report any that failed."""

    if not service.flush(FLUSH_TIMEOUT_S):
        print("[yellow]Remote sync still pending; changes are saved locally.[/yellow]")
    for notice in service.pop_sync_notices():
        print(
            f"[yellow]Saved locally, remote sync failed ({notice.operation} "
            f"{escape(notice.record_id)}): {escape(notice.error)}[/yellow]"
        )


def add_cmd(
    *,
    service_from_path: ServiceFactory,
    db_path: str | None,
    service_name: str,
    username: str,
    password: str | None,
    generate: bool,
    length: int,
    extra: dict[str, Any],
) -> None:
    """Store a new password."""

    if generate:
        password = generate_password(length)
    data: dict[str, Any] = {"service": service_name, "username": username, "password": password}
    data.update({key: value for key, value in extra.items() if value})
    try:
        ensure_valid(data)
        service = service_from_path(db_path)
        record = service.create(data)
    except SafeguardError as exc:
        _fail(exc)
        return
    print(f"[green]Saved[/green] {_line(record, reveal=generate)}")
    _finish(service)


def list_cmd(
    *,
    service_from_path: ServiceFactory,
    db_path: str | None,
    sort_by: SortField,
    ascending: bool,
    as_json: bool,
) -> None:
    """List stored passwords."""

    try:
        records = service_from_path(db_path).find_all()
    except SafeguardError as exc:
        _fail(exc)
        return
    if sort_by != "updated_at" or ascending:
        records = sort_records(records, sort_by, "asc" if ascending else "desc")
    _emit(records, as_json=as_json)


def search_cmd(
    *,
    service_from_path: ServiceFactory,
    db_path: str | None,
    query: str,
    fuzzy: bool,
    as_json: bool,
) -> None:
    """Search passwords by service or username."""

    try:
        service = service_from_path(db_path)
        records = service.fuzzy_search(query) if fuzzy else service.search(query)
    except SafeguardError as exc:
        _fail(exc)
        return
    _emit(records, as_json=as_json)


def show_cmd(
    *, service_from_path: ServiceFactory, db_path: str | None, record_id: str, reveal: bool
) -> None:
    """Show one password."""

    try:
        record = service_from_path(db_path).find_by_id(record_id)
    except SafeguardError as exc:
        _fail(exc)
        return
    if record is None:
        print(f"[red]Password {escape(record_id)} not found[/red]")
        raise typer.Exit(code=1)
    print(_line(record, reveal=reveal))
    for key, value in sorted(record.extra.items()):
        print(f"  {escape(key)}: {escape(str(value))}")
    print(f"  created: {record.created_at}")
    if reveal:
        score, feedback = password_strength(record.password)
        hints = f" ({escape(', '.join(feedback))})" if feedback else ""
        print(f"  strength: {score}/5{hints}")


def update_cmd(
    *,
    service_from_path: ServiceFactory,
    db_path: str | None,
    record_id: str,
    changes: dict[str, Any],
) -> None:
    """Change fields of a stored password."""

    patch = {key: value for key, value in changes.items() if value is not None}
    if not patch:
        print("[yellow]Nothing to update.[/yellow]")
        return
    try:
        ensure_valid(patch, partial=True)
        service = service_from_path(db_path)
        record = service.update(record_id, patch)
    except SafeguardError as exc:
        _fail(exc)
        return
    print(f"[green]Updated[/green] {_line(record)}")
    _finish(service)


def delete_cmd(*, service_from_path: ServiceFactory, db_path: str | None, record_id: str) -> None:
    """Delete a password (no error when it is already gone)."""

    try:
        service = service_from_path(db_path)
        service.delete(record_id)
    except SafeguardError as exc:
        _fail(exc)
        return
    print(f"[green]Deleted[/green] {escape(record_id)}")
    _finish(service)


def stats_cmd(*, service_from_path: ServiceFactory, db_path: str | None, as_json: bool) -> None:
    """Show password counts."""

    try:
        stats = service_from_path(db_path).get_stats()
    except SafeguardError as exc:
        _fail(exc)
        return
    if as_json:
        typer.echo(json.dumps(asdict(stats)))
        return
    print(f"total: {stats.total}")


def clear_cmd(*, service_from_path: ServiceFactory, db_path: str | None, yes: bool) -> None:
    """Remove every local password."""

    if not yes:
        print("[red]Refusing to clear without --yes[/red]")
        raise typer.Exit(code=1)
    try:
        service_from_path(db_path).clear()
    except SafeguardError as exc:
        _fail(exc)
        return
    print("[green]All local passwords removed.[/green]")


def health_cmd(*, service_from_path: ServiceFactory, db_path: str | None) -> None:
    """Check local and remote storage."""

    status = service_from_path(db_path).health_check()
    ok = bool(status["local"]) and status["remote"] is not False
    for name, value in status.items():
        label = "n/a" if value is None else ("ok" if value else "unavailable")
        color = "green" if value else ("dim" if value is None else "red")
        print(f"{name}: [{color}]{label}[/{color}]")
    if not ok:
        raise typer.Exit(code=1)
