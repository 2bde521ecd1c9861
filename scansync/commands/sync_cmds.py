from __future__ import annotations

import json
import threading

import typer
from rich import print

from scansync.sync.daemon import run_sync_daemon
from scansync.sync.migrator import migrate_once
from scansync.sync.orchestrator import SyncRunner, sync_all
from scansync.sync.pull import pull_server
from scansync.sync.push import push_outbox
from scansync.sync.triggers import ConnectivityWatcher, probe_for_url

from .common import context_or_exit


def _emit(result: object, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps(result, ensure_ascii=False))
        return
    print(result)


def sync_once_cmd(*, store_from_path, load_config, state_path: str | None, as_json: bool) -> None:
    """Run migrate, push and pull once."""

    config = load_config()
    store = store_from_path(state_path, config)
    try:
        ctx = context_or_exit(config, store)
        result = sync_all(ctx)
    finally:
        store.close()
    _emit(result, as_json)
    if result["error"]:
        raise typer.Exit(code=1)


def sync_push_cmd(*, store_from_path, load_config, state_path: str | None, as_json: bool) -> None:
    """Push queued records only."""

    config = load_config()
    store = store_from_path(state_path, config)
    try:
        result = push_outbox(context_or_exit(config, store))
    finally:
        store.close()
    _emit(result, as_json)


def sync_pull_cmd(*, store_from_path, load_config, state_path: str | None, as_json: bool) -> None:
    """Pull remote records only."""

    config = load_config()
    store = store_from_path(state_path, config)
    try:
        result = pull_server(context_or_exit(config, store))
    finally:
        store.close()
    _emit(result, as_json)
    if result.get("reason") == "pull-error":
        raise typer.Exit(code=1)


def migrate_cmd(*, store_from_path, state_path: str | None) -> None:
    """Remove keys left by the retired sync queue."""

    store = store_from_path(state_path)
    try:
        ran = migrate_once(store)
    finally:
        store.close()
    if ran:
        print("[green]Legacy sync artifacts cleared[/green]")
    else:
        print("Legacy cleanup already done")


def sync_status_cmd(*, store_from_path, load_config, state_path: str | None, as_json: bool) -> None:
    """Show queue depth, watermark and the last pass outcome."""

    config = load_config()
    store = store_from_path(state_path, config)
    try:
        history = store.history()
        status = {
            "outbox": len(store.outbox()),
            "history": len(history),
            "unsynced": sum(1 for h in history if not h.get("synced")),
            "last_pulled_at": store.last_pulled_at(),
            "legacy_cleaned": store.legacy_cleaned(),
            "tenant_id": config.tenant_id or store.cached_tenant_id(),
            "session": bool(config.user_id and config.access_token),
            "remote_url": config.remote_url,
            **store.get_sync_state(),
        }
    finally:
        store.close()
    if as_json:
        typer.echo(json.dumps(status, ensure_ascii=False))
        return
    print("[bold]Sync status[/bold]")
    print(f"- Remote: {status['remote_url'] or 'not configured'}")
    print(f"- Session: {'yes' if status['session'] else 'no'}")
    print(f"- Tenant: {status['tenant_id'] or 'unresolved'}")
    print(f"- Outbox: {status['outbox']} queued")
    print(f"- History: {status['history']} records ({status['unsynced']} unsynced)")
    print(f"- Last pulled at: {status['last_pulled_at']}")
    print(f"- Legacy cleaned: {'yes' if status['legacy_cleaned'] else 'no'}")
    if status.get("last_ok_at"):
        print(f"- Last ok: {status['last_ok_at']}")
    if status.get("last_error"):
        print(f"- Last error: {status['last_error']} ({status.get('last_error_at')})")
    if status.get("last_skipped"):
        print(f"- Last skipped: {status['last_skipped']} ({status.get('last_skipped_at')})")


def sync_daemon_cmd(
    *,
    store_from_path,
    load_config,
    state_path: str | None,
    interval_s: int | None,
    watch_network: bool,
) -> None:
    """Run sync passes periodically and on reconnect."""

    config = load_config()
    store = store_from_path(state_path, config)
    try:
        runner = SyncRunner(context_or_exit(config, store))
        watcher = None
        if watch_network and config.remote_url:
            watcher = ConnectivityWatcher(
                probe_for_url(config.remote_url),
                interval_s=config.connectivity_check_interval_s,
            )
        interval = interval_s or config.sync_interval_s
        print(f"[green]Sync daemon running[/green] (every {interval}s)")
        stop = threading.Event()
        try:
            run_sync_daemon(runner, interval, watcher=watcher, stop_event=stop)
        except KeyboardInterrupt:
            stop.set()
    finally:
        store.close()
