from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/scansync/config.json").expanduser()
DEFAULT_STATE_PATH = "~/.scansync/state.sqlite"

CONFIG_ENV_OVERRIDES = {
    "state_path": "SCANSYNC_STATE_PATH",
    "remote_url": "SCANSYNC_REMOTE_URL",
    "api_key": "SCANSYNC_API_KEY",
    "access_token": "SCANSYNC_ACCESS_TOKEN",
    "user_id": "SCANSYNC_USER_ID",
    "tenant_id": "SCANSYNC_TENANT_ID",
    "records_table": "SCANSYNC_RECORDS_TABLE",
    "memberships_table": "SCANSYNC_MEMBERSHIPS_TABLE",
    "pull_overlap_s": "SCANSYNC_PULL_OVERLAP_S",
    "sync_interval_s": "SCANSYNC_SYNC_INTERVAL_S",
    "http_timeout_s": "SCANSYNC_HTTP_TIMEOUT_S",
    "connectivity_check_interval_s": "SCANSYNC_CONNECTIVITY_CHECK_INTERVAL_S",
}

_INT_KEYS = {"pull_overlap_s", "sync_interval_s", "connectivity_check_interval_s"}
_FLOAT_KEYS = {"http_timeout_s"}
SECRET_KEYS = {"api_key", "access_token"}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("SCANSYNC_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


def coerce_config_value(key: str, value: str) -> Any:
    """Parse a command-line value for ``key`` the way the config file stores it."""

    if key not in CONFIG_ENV_OVERRIDES:
        raise ValueError(f"unknown config key: {key}")
    try:
        if key in _INT_KEYS:
            return int(value)
        if key in _FLOAT_KEYS:
            return float(value)
    except ValueError as exc:
        raise ValueError(f"{key} must be a number, got {value!r}") from exc
    text = value.strip()
    if not text:
        raise ValueError(f"{key} must not be empty")
    return text


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class ScanSyncConfig:
    state_path: str = DEFAULT_STATE_PATH
    remote_url: str | None = None
    api_key: str | None = None
    # Session material is provisioned by the host app; scansync never logs in.
    access_token: str | None = None
    user_id: str | None = None
    # Pin a tenant to skip membership lookup when a user belongs to several.
    tenant_id: str | None = None
    records_table: str = "scans"
    memberships_table: str = "memberships"
    pull_overlap_s: int = 300
    sync_interval_s: int = 120
    http_timeout_s: float = 10.0
    connectivity_check_interval_s: int = 15


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _coerce_optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def load_config(path: Path | None = None) -> ScanSyncConfig:
    cfg = ScanSyncConfig()
    config_path = get_config_path(path)
    if config_path.exists():
        try:
            data = read_config_file(config_path)
        except ValueError as exc:
            warnings.warn(f"Invalid config file {config_path}: {exc}", RuntimeWarning, stacklevel=2)
            data = {}
        cfg = _apply_dict(cfg, data)
    cfg = _apply_dict(cfg, get_env_overrides())
    return cfg


def _apply_dict(cfg: ScanSyncConfig, data: dict[str, Any]) -> ScanSyncConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key in _FLOAT_KEYS:
            setattr(cfg, key, _parse_float(value, getattr(cfg, key), key=key))
            continue
        if key in {"state_path", "records_table", "memberships_table"}:
            setattr(cfg, key, _coerce_optional_str(value) or getattr(cfg, key))
            continue
        setattr(cfg, key, _coerce_optional_str(value))
    return cfg
