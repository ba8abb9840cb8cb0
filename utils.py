"""
Capsule Notifier utility helpers

Shared datetime/formatting functions used across app.py, db.py and apns_client.py
"""

from __future__ import annotations
import datetime as dt
from typing import Optional


# ---- datetime parsing/conversion ----

def now_utc() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def to_utc_iso(d: dt.datetime) -> str:
    """ISO string in UTC; naive datetimes are taken as UTC."""
    if d.tzinfo is None:
        d = d.replace(tzinfo=dt.timezone.utc)
    return d.astimezone(dt.timezone.utc).isoformat()


# ---- log formatting ----

def mask_token(token: Optional[str], keep: int = 10) -> str:
    """Device tokens only ever hit the logs truncated."""
    if not token:
        return "<none>"
    return f"{token[:keep]}..."
