from __future__ import annotations

import json
from typing import Any

import typer
from rich import print

from scansync.config import SECRET_KEYS, coerce_config_value, get_config_path


def _redacted(data: dict[str, Any]) -> dict[str, Any]:
    return {key: ("***" if key in SECRET_KEYS and value else value) for key, value in data.items()}


def config_show_cmd(*, read_config_or_exit) -> None:
    """Print the config file with secrets masked."""

    data = read_config_or_exit()
    typer.echo(json.dumps(_redacted(data), indent=2, sort_keys=True))


def config_set_cmd(*, read_config_or_exit, write_config_or_exit, key: str, value: str) -> None:
    try:
        parsed = coerce_config_value(key, value)
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    data = read_config_or_exit()
    data[key] = parsed
    write_config_or_exit(data)
    shown = "***" if key in SECRET_KEYS else parsed
    print(f"[green]Set {key} = {shown}[/green] in {get_config_path()}")


def config_unset_cmd(*, read_config_or_exit, write_config_or_exit, key: str) -> None:
    data = read_config_or_exit()
    if key not in data:
        print(f"[yellow]{key} is not set[/yellow]")
        return
    del data[key]
    write_config_or_exit(data)
    print(f"[green]Removed {key}[/green] from {get_config_path()}")
