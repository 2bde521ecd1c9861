from __future__ import annotations

import json

import typer
from rich import print

from .common import format_record


def record_cmd(
    *,
    store_from_path,
    load_config,
    payload: str,
    kind: str,
    meta: str | None,
    state_path: str | None,
) -> None:
    """Capture a scan locally and queue it for push."""

    metadata = None
    if meta:
        try:
            metadata = json.loads(meta)
        except json.JSONDecodeError as exc:
            print(f"[red]--meta must be a JSON object: {exc}[/red]")
            raise typer.Exit(code=1) from exc
        if not isinstance(metadata, dict):
            print("[red]--meta must be a JSON object[/red]")
            raise typer.Exit(code=1)
    config = load_config()
    store = store_from_path(state_path, config)
    try:
        record = store.record_scan(
            payload,
            kind=kind,
            metadata=metadata,
            user_id=config.user_id,
            tenant_id=config.tenant_id,
        )
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    finally:
        store.close()
    print(f"Queued {record['localId']} (token {record['idempotencyToken']})")


def history_cmd(*, store_from_path, state_path: str | None, limit: int, as_json: bool) -> None:
    """Show merged history, newest first."""

    store = store_from_path(state_path)
    try:
        history = store.history()[: max(limit, 0)]
    finally:
        store.close()
    if as_json:
        typer.echo(json.dumps(history, ensure_ascii=False, indent=2))
        return
    if not history:
        print("[dim]No records[/dim]")
        return
    for record in history:
        print(format_record(dict(record)))


def outbox_cmd(*, store_from_path, state_path: str | None, as_json: bool) -> None:
    """Show records waiting for push, oldest first."""

    store = store_from_path(state_path)
    try:
        outbox = store.outbox()
    finally:
        store.close()
    if as_json:
        typer.echo(json.dumps(outbox, ensure_ascii=False, indent=2))
        return
    if not outbox:
        print("[green]Outbox empty[/green]")
        return
    for record in outbox:
        print(format_record(dict(record)))
