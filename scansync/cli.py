from __future__ import annotations

import logging

import typer

from . import __version__
from .commands.common import (
    load_config_or_exit,
    read_config_or_exit,
    store_from_path,
    write_config_or_exit,
)
from .commands.config_cmds import config_set_cmd, config_show_cmd, config_unset_cmd
from .commands.record_cmds import history_cmd, outbox_cmd, record_cmd
from .commands.sync_cmds import (
    migrate_cmd,
    sync_daemon_cmd,
    sync_once_cmd,
    sync_pull_cmd,
    sync_push_cmd,
    sync_status_cmd,
)

app = typer.Typer(help="scansync: local-first scan record sync")
sync_app = typer.Typer(help="Sync local records with the remote store")
app.add_typer(sync_app, name="sync")
config_app = typer.Typer(help="Read and edit the config file")
app.add_typer(config_app, name="config")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log sync activity to stderr"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version"
    ),
) -> None:
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


@app.command()
def record(
    payload: str = typer.Argument(..., help="Scanned value"),
    kind: str = typer.Option("barcode", help="qrcode or barcode"),
    meta: str = typer.Option(None, help="JSON object stored with the record"),
    state_path: str = typer.Option(None, help="Path to the local state database"),
) -> None:
    """Capture a scan locally and queue it for push."""

    record_cmd(
        store_from_path=store_from_path,
        load_config=load_config_or_exit,
        payload=payload,
        kind=kind,
        meta=meta,
        state_path=state_path,
    )


@app.command()
def history(
    state_path: str = typer.Option(None, help="Path to the local state database"),
    limit: int = typer.Option(20, help="Number of records to show"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Show merged history, newest first."""

    history_cmd(store_from_path=store_from_path, state_path=state_path, limit=limit, as_json=as_json)


@app.command()
def outbox(
    state_path: str = typer.Option(None, help="Path to the local state database"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Show records waiting for push."""

    outbox_cmd(store_from_path=store_from_path, state_path=state_path, as_json=as_json)


@app.command()
def migrate(state_path: str = typer.Option(None, help="Path to the local state database")) -> None:
    """Remove keys left by the retired sync queue."""

    migrate_cmd(store_from_path=store_from_path, state_path=state_path)


@sync_app.command("once")
def sync_once(
    state_path: str = typer.Option(None, help="Path to the local state database"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Run migrate, push and pull once."""

    sync_once_cmd(
        store_from_path=store_from_path,
        load_config=load_config_or_exit,
        state_path=state_path,
        as_json=as_json,
    )


@sync_app.command("push")
def sync_push(
    state_path: str = typer.Option(None, help="Path to the local state database"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Push queued records only."""

    sync_push_cmd(
        store_from_path=store_from_path,
        load_config=load_config_or_exit,
        state_path=state_path,
        as_json=as_json,
    )


@sync_app.command("pull")
def sync_pull(
    state_path: str = typer.Option(None, help="Path to the local state database"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Pull remote records only."""

    sync_pull_cmd(
        store_from_path=store_from_path,
        load_config=load_config_or_exit,
        state_path=state_path,
        as_json=as_json,
    )


@sync_app.command("status")
def sync_status(
    state_path: str = typer.Option(None, help="Path to the local state database"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Show queue depth, watermark and the last pass outcome."""

    sync_status_cmd(
        store_from_path=store_from_path,
        load_config=load_config_or_exit,
        state_path=state_path,
        as_json=as_json,
    )


@sync_app.command("daemon")
def sync_daemon(
    state_path: str = typer.Option(None, help="Path to the local state database"),
    interval_s: int = typer.Option(None, help="Seconds between passes"),
    watch_network: bool = typer.Option(True, help="Sync when the remote becomes reachable"),
) -> None:
    """Run sync passes periodically and on reconnect."""

    sync_daemon_cmd(
        store_from_path=store_from_path,
        load_config=load_config_or_exit,
        state_path=state_path,
        interval_s=interval_s,
        watch_network=watch_network,
    )


@config_app.command("show")
def config_show() -> None:
    """Print the config file (secrets masked)."""

    config_show_cmd(read_config_or_exit=read_config_or_exit)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Config key, e.g. remote_url"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    """Write one key to the config file."""

    config_set_cmd(
        read_config_or_exit=read_config_or_exit,
        write_config_or_exit=write_config_or_exit,
        key=key,
        value=value,
    )


@config_app.command("unset")
def config_unset(key: str = typer.Argument(..., help="Config key to remove")) -> None:
    """Remove one key from the config file."""

    config_unset_cmd(
        read_config_or_exit=read_config_or_exit,
        write_config_or_exit=write_config_or_exit,
        key=key,
    )


if __name__ == "__main__":
    app()
