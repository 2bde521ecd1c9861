import json
from pathlib import Path

from typer.testing import CliRunner

from scansync.cli import app
from scansync.kv import SqliteKeyValueStore
from scansync.store import ScanStore

runner = CliRunner()


def test_root_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("record", "history", "outbox", "migrate", "sync", "config"):
        assert name in result.stdout


def test_sync_help_lists_subcommands() -> None:
    result = runner.invoke(app, ["sync", "--help"])
    assert result.exit_code == 0
    for name in ("once", "push", "pull", "status", "daemon"):
        assert name in result.stdout


def test_record_then_list(tmp_path: Path) -> None:
    state_path = tmp_path / "state.sqlite"

    result = runner.invoke(
        app,
        ["record", "4006381333931", "--kind", "qrcode", "--meta", '{"lot": 3}', "--state-path", str(state_path)],
    )
    assert result.exit_code == 0, result.output
    assert "Queued" in result.stdout

    outbox = runner.invoke(app, ["outbox", "--json", "--state-path", str(state_path)])
    assert outbox.exit_code == 0
    queued = json.loads(outbox.stdout)
    assert len(queued) == 1
    assert queued[0]["payload"] == "4006381333931"
    assert queued[0]["kind"] == "qrcode"
    assert queued[0]["metadata"] == {"lot": 3}

    history = runner.invoke(app, ["history", "--json", "--state-path", str(state_path)])
    assert json.loads(history.stdout)[0]["localId"] == queued[0]["localId"]


def test_record_rejects_bad_meta(tmp_path: Path) -> None:
    result = runner.invoke(
        app, ["record", "x", "--meta", "[1]", "--state-path", str(tmp_path / "s.sqlite")]
    )
    assert result.exit_code == 1


def test_record_rejects_unknown_kind(tmp_path: Path) -> None:
    result = runner.invoke(
        app, ["record", "x", "--kind", "nfc", "--state-path", str(tmp_path / "s.sqlite")]
    )
    assert result.exit_code == 1


def test_migrate_runs_once(tmp_path: Path) -> None:
    state_path = tmp_path / "state.sqlite"
    kv = SqliteKeyValueStore(state_path)
    kv.set("PENDING_QUEUE", "[]")
    kv.close()

    first = runner.invoke(app, ["migrate", "--state-path", str(state_path)])
    second = runner.invoke(app, ["migrate", "--state-path", str(state_path)])

    assert "cleared" in first.stdout
    assert "already done" in second.stdout
    kv = SqliteKeyValueStore(state_path)
    try:
        assert kv.get("PENDING_QUEUE") is None
    finally:
        kv.close()


def test_sync_once_without_remote_exits(tmp_path: Path) -> None:
    result = runner.invoke(app, ["sync", "once", "--state-path", str(tmp_path / "s.sqlite")])
    assert result.exit_code == 1
    assert "remote_url" in result.stdout


def test_sync_status_json(tmp_path: Path) -> None:
    state_path = tmp_path / "state.sqlite"
    store = ScanStore(SqliteKeyValueStore(state_path))
    store.record_scan("a")
    store.set_sync_ok({"push": {"pushed": 0}})
    store.close()

    result = runner.invoke(
        app,
        ["sync", "status", "--json", "--state-path", str(state_path)],
        env={"SCANSYNC_REMOTE_URL": "https://example.supabase.co"},
    )

    assert result.exit_code == 0, result.output
    status = json.loads(result.stdout)
    assert status["outbox"] == 1
    assert status["unsynced"] == 1
    assert status["last_pulled_at"] == "1970-01-01T00:00:00+00:00"
    assert status["remote_url"] == "https://example.supabase.co"
    assert status["session"] is False
    assert status["last_ok_at"]


def test_sync_push_reports_missing_session(tmp_path: Path) -> None:
    result = runner.invoke(
        app,
        ["sync", "push", "--json", "--state-path", str(tmp_path / "s.sqlite")],
        env={"SCANSYNC_REMOTE_URL": "https://example.supabase.co"},
    )

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == {"pushed": 0, "reason": "no-session"}


def test_invalid_config_exits(tmp_path: Path, monkeypatch) -> None:
    config_path = tmp_path / "bad.json"
    config_path.write_text("{oops")
    monkeypatch.setenv("SCANSYNC_CONFIG", str(config_path))

    result = runner.invoke(app, ["sync", "status", "--state-path", str(tmp_path / "s.sqlite")])

    assert result.exit_code == 1
    assert "Invalid config file" in result.stdout


def test_config_set_writes_file_used_by_sync(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"

    result = runner.invoke(app, ["config", "set", "remote_url", "https://example.supabase.co"])
    assert result.exit_code == 0, result.output
    result = runner.invoke(app, ["config", "set", "pull_overlap_s", "60"])
    assert result.exit_code == 0, result.output

    assert json.loads(config_path.read_text()) == {
        "remote_url": "https://example.supabase.co",
        "pull_overlap_s": 60,
    }
    status = runner.invoke(app, ["sync", "status", "--json", "--state-path", str(tmp_path / "s.sqlite")])
    assert status.exit_code == 0, status.output
    assert json.loads(status.stdout)["remote_url"] == "https://example.supabase.co"


def test_config_set_rejects_unknown_key_and_bad_number(tmp_path: Path) -> None:
    unknown = runner.invoke(app, ["config", "set", "colour", "blue"])
    assert unknown.exit_code == 1
    assert "unknown config key" in unknown.stdout

    bad = runner.invoke(app, ["config", "set", "sync_interval_s", "soon"])
    assert bad.exit_code == 1
    assert not (tmp_path / "config.json").exists()


def test_config_show_masks_secrets_and_unset_removes(tmp_path: Path) -> None:
    runner.invoke(app, ["config", "set", "access_token", "secret-token"])
    runner.invoke(app, ["config", "set", "user_id", "user-1"])

    shown = runner.invoke(app, ["config", "show"])
    assert shown.exit_code == 0, shown.output
    assert json.loads(shown.stdout) == {"access_token": "***", "user_id": "user-1"}
    assert "secret-token" not in shown.stdout

    removed = runner.invoke(app, ["config", "unset", "access_token"])
    assert removed.exit_code == 0, removed.output
    assert json.loads((tmp_path / "config.json").read_text()) == {"user_id": "user-1"}
