from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import asdict
from pathlib import Path
from typing import Any

import typer
from rich import print
from rich.markup import escape

from ..config import CONFIG_KEYS, SafeguardConfig, parse_config_value


def config_show_cmd(
    *,
    load_config: Callable[[], SafeguardConfig],
    get_config_path: Callable[[], Path],
) -> None:
    """Print the effective configuration (file plus environment overrides)."""

    print(f"[dim]config file: {escape(str(get_config_path()))}[/dim]")
    typer.echo(json.dumps(asdict(load_config()), indent=2))


def config_set_cmd(
    *,
    read_config_or_exit: Callable[[], dict[str, Any]],
    write_config_or_exit: Callable[[dict[str, Any]], None],
    key: str,
    value: str,
) -> None:
    try:
        parsed = parse_config_value(key, value)
    except ValueError as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        print(f"[dim]known keys: {', '.join(CONFIG_KEYS)}[/dim]")
        raise typer.Exit(code=1) from exc
    data = read_config_or_exit()
    data[key] = parsed
    write_config_or_exit(data)
    print(f"[green]Set[/green] {key} = {escape(json.dumps(parsed))}")


def config_unset_cmd(
    *,
    read_config_or_exit: Callable[[], dict[str, Any]],
    write_config_or_exit: Callable[[dict[str, Any]], None],
    key: str,
) -> None:
    data = read_config_or_exit()
    if key not in data:
        print(f"[yellow]{escape(key)} is not set[/yellow]")
        return
    del data[key]
    write_config_or_exit(data)
    print(f"[green]Removed[/green] {escape(key)}")
