from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
from rich import print

from scansync.config import ScanSyncConfig, load_config, read_config_file, write_config_file
from scansync.kv import SqliteKeyValueStore
from scansync.store import ScanStore
from scansync.sync.context import SyncContext, build_context


def read_config_or_exit() -> dict[str, Any]:
    try:
        return read_config_file()
    except ValueError as exc:
        print(f"[red]Invalid config file: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def write_config_or_exit(data: dict[str, Any]) -> None:
    try:
        write_config_file(data)
    except OSError as exc:
        print(f"[red]Failed to write config: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def load_config_or_exit() -> ScanSyncConfig:
    read_config_or_exit()
    return load_config()


def store_from_path(state_path: str | None, config: ScanSyncConfig | None = None) -> ScanStore:
    path = state_path or (config or load_config()).state_path
    return ScanStore(SqliteKeyValueStore(Path(path).expanduser()))


def context_or_exit(config: ScanSyncConfig, store: ScanStore) -> SyncContext:
    try:
        return build_context(config, store=store)
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        print("Set remote_url in the config file or SCANSYNC_REMOTE_URL.")
        raise typer.Exit(code=1) from exc


def format_record(record: dict[str, Any]) -> str:
    status = "synced" if record.get("synced") else "pending"
    server = record.get("serverId") or "-"
    payload = str(record.get("payload") or "")
    if len(payload) > 60:
        payload = payload[:57] + "..."
    return f"{record.get('createdAt')}|{record.get('kind')}|{status}|{server}|{payload}"
