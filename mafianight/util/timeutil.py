# mafianight/util/timeutil.py
from __future__ import annotations

import time
from datetime import datetime, timezone


def now_ts() -> int:
    """Unix seconds."""
    return int(time.time())


def ts_to_iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def iso_to_ts(value: str) -> float:
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def now_iso() -> str:
    return ts_to_iso(now_ts())
