from __future__ import annotations

import logging

import typer
from rich import print

from . import __version__
from .commands.common import read_config_or_exit, write_config_or_exit
from .commands.config_cmds import config_set_cmd, config_show_cmd, config_unset_cmd
from .commands.password_cmds import (
    add_cmd,
    clear_cmd,
    delete_cmd,
    health_cmd,
    list_cmd,
    search_cmd,
    show_cmd,
    stats_cmd,
    update_cmd,
)
from .config import get_config_path, load_config
from .service import PasswordService, get_service
from .store.search import SortField
from .validation import PASSWORD_MAX_CHARS, generate_password, password_strength

app = typer.Typer(help="safeguard: personal password manager")
config_app = typer.Typer(help="Show or change the config file")
app.add_typer(config_app, name="config")


def _service(db_path: str | None) -> PasswordService:
    cfg = load_config()
    if db_path:
        cfg.db_path = db_path
    return get_service(cfg)


@app.callback()
def _configure_logging() -> None:
    level = load_config().log_level.upper()
    logging.basicConfig(level=getattr(logging, level, logging.WARNING))


@app.command("add")
def add(
    service: str,
    username: str,
    password: str = typer.Option(
        None, "--password", "-p", help="Password (prompted when omitted)"
    ),
    generate: bool = typer.Option(False, "--generate", "-g", help="Generate a random password"),
    length: int = typer.Option(16, help="Length of a generated password"),
    url: str = typer.Option(None, help="Login URL"),
    notes: str = typer.Option(None, help="Free-form notes"),
    folder: str = typer.Option(None, help="Folder name"),
    tags: list[str] = typer.Option(None, "--tag", help="Repeat for multiple tags"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Store a new password."""

    if password is None and not generate:
        password = typer.prompt("Password", hide_input=True, confirmation_prompt=True)
    add_cmd(
        service_from_path=_service,
        db_path=db_path,
        service_name=service,
        username=username,
        password=password,
        generate=generate,
        length=length,
        extra={"url": url, "notes": notes, "folder": folder, "tags": list(tags or [])},
    )


@app.command("list")
def list_passwords(
    sort: str = typer.Option("updated_at", help="Sort by service, username or updated_at"),
    asc: bool = typer.Option(False, "--asc", help="Ascending order"),
    json_output: bool = typer.Option(False, "--json", help="Print JSON"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """List stored passwords, most recently changed first."""

    if sort not in ("service", "username", "updated_at"):
        print(f"[red]Unknown sort field: {sort}[/red]")
        raise typer.Exit(code=1)
    sort_by: SortField = sort  # type: ignore[assignment]
    list_cmd(
        service_from_path=_service,
        db_path=db_path,
        sort_by=sort_by,
        ascending=asc,
        as_json=json_output,
    )


@app.command("search")
def search(
    query: str,
    fuzzy: bool = typer.Option(False, "--fuzzy", help="Rank by approximate match"),
    json_output: bool = typer.Option(False, "--json", help="Print JSON"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Search passwords by service or username."""

    search_cmd(
        service_from_path=_service,
        db_path=db_path,
        query=query,
        fuzzy=fuzzy,
        as_json=json_output,
    )


@app.command("show")
def show(
    record_id: str,
    reveal: bool = typer.Option(False, "--reveal", help="Print the password itself"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Show one password."""

    show_cmd(service_from_path=_service, db_path=db_path, record_id=record_id, reveal=reveal)


@app.command("update")
def update(
    record_id: str,
    service: str = typer.Option(None, help="New service name"),
    username: str = typer.Option(None, help="New username"),
    password: str = typer.Option(None, "--password", "-p", help="New password"),
    url: str = typer.Option(None, help="New login URL"),
    notes: str = typer.Option(None, help="New notes"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Change fields of a stored password."""

    update_cmd(
        service_from_path=_service,
        db_path=db_path,
        record_id=record_id,
        changes={
            "service": service,
            "username": username,
            "password": password,
            "url": url,
            "notes": notes,
        },
    )


@app.command("delete")
def delete(
    record_id: str,
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Delete a password."""

    delete_cmd(service_from_path=_service, db_path=db_path, record_id=record_id)


@app.command("stats")
def stats(
    json_output: bool = typer.Option(False, "--json", help="Print JSON"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Show password counts."""

    stats_cmd(service_from_path=_service, db_path=db_path, as_json=json_output)


@app.command("clear")
def clear(
    yes: bool = typer.Option(False, "--yes", help="Confirm removal of every local password"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Remove every local password."""

    clear_cmd(service_from_path=_service, db_path=db_path, yes=yes)


@app.command("generate")
def generate(
    length: int = typer.Option(16, help=f"Password length (1-{PASSWORD_MAX_CHARS})"),
) -> None:
    """Print a random password and its strength."""

    try:
        value = generate_password(length)
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    score, _ = password_strength(value)
    typer.echo(value)
    print(f"[dim]strength: {score}/5[/dim]")


@app.command("health")
def health(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Check local storage and, in hybrid mode, the remote API."""

    health_cmd(service_from_path=_service, db_path=db_path)


@config_app.command("show")
def config_show() -> None:
    """Print the effective configuration."""

    config_show_cmd(load_config=load_config, get_config_path=get_config_path)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Config key, e.g. hybrid_enabled"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    """Store a value in the config file."""

    config_set_cmd(
        read_config_or_exit=read_config_or_exit,
        write_config_or_exit=write_config_or_exit,
        key=key,
        value=value,
    )


@config_app.command("unset")
def config_unset(key: str = typer.Argument(..., help="Config key to remove")) -> None:
    """Remove a value from the config file."""

    config_unset_cmd(
        read_config_or_exit=read_config_or_exit,
        write_config_or_exit=write_config_or_exit,
        key=key,
    )


@app.command("version")
def version() -> None:
    """Print version."""

    print(__version__)


def main() -> None:
    app()
