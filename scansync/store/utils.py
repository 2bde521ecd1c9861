from __future__ import annotations

import datetime as dt

EPOCH_ISO = "1970-01-01T00:00:00+00:00"


def now_iso() -> str:
    return dt.datetime.now(dt.UTC).isoformat()


def parse_iso8601(value: str) -> dt.datetime | None:
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed.astimezone(dt.UTC)


def normalize_iso8601(value: str) -> str | None:
    parsed = parse_iso8601(value)
    if parsed is None:
        return None
    return parsed.isoformat()


def sort_key(created_at: str) -> dt.datetime:
    # Unparseable timestamps sink to the bottom of a newest-first listing.
    return parse_iso8601(created_at) or dt.datetime.min.replace(tzinfo=dt.UTC)


def later_of(current: str | None, candidate: str) -> str:
    if not current:
        return candidate
    return candidate if sort_key(candidate) > sort_key(current) else current
