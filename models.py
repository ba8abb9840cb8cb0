"""
Capsule Notifier Pydantic Models
"""
from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

DEFAULT_SENDER_NAME = "Partneriniz"
DEFAULT_CAPSULE_BODY = "Zaman kapsülün açıldı!"


class Capsule(BaseModel):
    id: str
    title: Optional[str] = None
    recipient_id: Optional[str] = None
    created_by: Optional[str] = None
    unlock_date: Optional[dt.datetime] = None
    is_locked: bool = True
    notification_sent: bool = False

    def is_due(self, now: dt.datetime) -> bool:
        if self.unlock_date is None:
            return False
        return self.unlock_date <= now and not self.notification_sent and self.is_locked


class RecipientProfile(BaseModel):
    id: str
    apns_token: Optional[str] = None
    username: Optional[str] = None

    @property
    def has_device_token(self) -> bool:
        return bool(self.apns_token and self.apns_token.strip())


class SignedToken(BaseModel):
    value: str
    issued_at: int
    max_age: int

    def is_fresh(self, now: float) -> bool:
        return now - self.issued_at < self.max_age


class PushNotification(BaseModel):
    title: str
    body: str
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def for_capsule(cls, capsule: Capsule, sender_name: Optional[str]) -> "PushNotification":
        sender = sender_name or DEFAULT_SENDER_NAME
        return cls(
            title=f"💌 {sender}'ten Gizli Mesaj!",
            body=capsule.title or DEFAULT_CAPSULE_BODY,
            data={"capsule_id": capsule.id},
        )

    def to_apns_payload(self) -> Dict[str, Any]:
        # Custom keys sit next to "aps" so the app can deep-link on capsule_id
        payload: Dict[str, Any] = {
            "aps": {
                "alert": {"title": self.title, "body": self.body},
                "sound": "default",
                "badge": 1,
                "mutable-content": 1,
            }
        }
        payload.update(self.data)
        return payload


class CapsuleOutcome(BaseModel):
    capsule_id: str
    ok: bool
    reason: Optional[str] = None

    @classmethod
    def sent(cls, capsule_id: str) -> "CapsuleOutcome":
        return cls(capsule_id=capsule_id, ok=True)

    @classmethod
    def failed(cls, capsule_id: str, reason: str) -> "CapsuleOutcome":
        return cls(capsule_id=capsule_id, ok=False, reason=reason)


class BatchResult(BaseModel):
    outcomes: List[CapsuleOutcome] = Field(default_factory=list)

    @property
    def success(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    def to_response(self) -> Dict[str, Any]:
        return {"message": "Capsules processed", "success": self.success, "failed": self.failed}
