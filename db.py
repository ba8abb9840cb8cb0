"""
Capsule Notifier Supabase helpers

Tables
------
time_capsules(id, title, recipient_id, created_by, unlock_date, is_locked, notification_sent, ...)
profiles(id, apns_token, username, ...)

Key helpers
-----------
get_supabase() -> supabase.Client
CapsuleStore.select_due_capsules(now) -> list[Capsule]
CapsuleStore.get_profile(user_id) -> RecipientProfile | None
CapsuleStore.get_display_name(user_id) -> str | None
CapsuleStore.mark_notification_sent(capsule_id) -> None

This service only ever writes notification_sent. is_locked belongs to the app:
it flips when the recipient actually opens the capsule.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, List, Optional

from supabase import Client, ClientOptions, create_client

from config import SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY, STORE_TIMEOUT_SECONDS
from errors import ConfigError, StoreError, StoreUnavailableError
from models import Capsule, RecipientProfile
from utils import to_utc_iso

log = logging.getLogger(__name__)

CAPSULES_TABLE = "time_capsules"
PROFILES_TABLE = "profiles"
DUE_CAPSULE_FIELDS = "id, title, recipient_id, created_by"


def get_supabase() -> Client:
    if not SUPABASE_URL or not SUPABASE_SERVICE_ROLE_KEY:
        raise ConfigError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
    return create_client(
        SUPABASE_URL,
        SUPABASE_SERVICE_ROLE_KEY,
        options=ClientOptions(postgrest_client_timeout=STORE_TIMEOUT_SECONDS),
    )


class CapsuleStore:
    def __init__(self, client: Client):
        self.client = client

    # -------------------- due capsules --------------------

    def select_due_capsules(self, now: dt.datetime) -> List[Capsule]:
        """Unlock date passed, not yet notified, still locked."""
        try:
            res = (
                self.client.table(CAPSULES_TABLE)
                .select(DUE_CAPSULE_FIELDS)
                .lte("unlock_date", to_utc_iso(now))
                .eq("notification_sent", False)
                .eq("is_locked", True)
                .execute()
            )
        except Exception as e:
            raise StoreUnavailableError(f"Capsule query error: {e}") from e
        return [Capsule(**row) for row in (res.data or [])]

    # -------------------- profiles --------------------

    def _profile_row(self, user_id: str, fields: str) -> Optional[dict[str, Any]]:
        res = (
            self.client.table(PROFILES_TABLE)
            .select(fields)
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None

    def get_profile(self, user_id: str) -> Optional[RecipientProfile]:
        try:
            row = self._profile_row(user_id, "id, apns_token, username")
        except Exception as e:
            raise StoreError(f"Profile error for {user_id}: {e}") from e
        if row is None:
            return None
        row.setdefault("id", user_id)
        return RecipientProfile(**row)

    def get_display_name(self, user_id: Optional[str]) -> Optional[str]:
        """Best-effort; the caller falls back to a placeholder on None."""
        if not user_id:
            return None
        try:
            row = self._profile_row(user_id, "username")
        except Exception as e:
            log.info("Sender lookup failed for %s: %s", user_id, e)
            return None
        return (row or {}).get("username") or None

    # -------------------- capsule state --------------------

    def mark_notification_sent(self, capsule_id: str) -> None:
        """Set notification_sent; a second call on the same capsule changes nothing."""
        try:
            (
                self.client.table(CAPSULES_TABLE)
                .update({"notification_sent": True})
                .eq("id", capsule_id)
                .eq("notification_sent", False)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Could not mark capsule {capsule_id} notified: {e}") from e
