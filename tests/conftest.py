"""
Capsule Notifier — shared pytest fixtures

    ec_private_key_pem : a real P-256 key in PKCS#8 PEM, same shape as an APNs .p8
    token_cache        : TokenCache signed with that key, driven by a fake clock
    fake_store         : in-memory stand-in for CapsuleStore (time_capsules + profiles)
    apns_gateway       : httpx.MockTransport that records requests and answers per device token
    apns               : APNsClient wired to apns_gateway
"""

import datetime as dt
import os

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

# Keep a developer's .env from leaking into the test run
os.environ["SIMULATE_PUSH"] = "0"
os.environ["SCHEDULER_ENABLED"] = "0"
os.environ["LOG_LEVEL"] = "WARNING"

from apns_client import APNsClient, TokenCache
from errors import StoreError, StoreUnavailableError
from models import Capsule, RecipientProfile

NOW = dt.datetime(2026, 2, 14, 9, 0, tzinfo=dt.timezone.utc)


class FakeClock:
    def __init__(self, start: float = 1_771_059_600.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStore:
    """Implements the CapsuleStore surface over plain dicts."""

    def __init__(self):
        self.capsules: dict[str, dict] = {}
        self.profiles: dict[str, dict] = {}
        self.scan_error: Exception | None = None
        self.broken_profiles: set[str] = set()
        self.mark_calls: list[str] = []

    def add_capsule(self, capsule_id, recipient_id="r1", created_by="s1", title="Open me",
                    unlock_date=NOW - dt.timedelta(hours=1), is_locked=True, notification_sent=False):
        self.capsules[capsule_id] = {
            "id": capsule_id,
            "title": title,
            "recipient_id": recipient_id,
            "created_by": created_by,
            "unlock_date": unlock_date,
            "is_locked": is_locked,
            "notification_sent": notification_sent,
        }

    def add_profile(self, user_id, apns_token=None, username=None):
        self.profiles[user_id] = {"id": user_id, "apns_token": apns_token, "username": username}

    def select_due_capsules(self, now):
        if self.scan_error is not None:
            raise StoreUnavailableError(f"Capsule query error: {self.scan_error}")
        due = [Capsule(**row) for row in self.capsules.values()]
        return [
            Capsule(id=c.id, title=c.title, recipient_id=c.recipient_id, created_by=c.created_by)
            for c in due if c.is_due(now)
        ]

    def get_profile(self, user_id):
        if user_id in self.broken_profiles:
            raise StoreError(f"Profile error for {user_id}: connection reset")
        row = self.profiles.get(user_id)
        return RecipientProfile(**row) if row else None

    def get_display_name(self, user_id):
        return (self.profiles.get(user_id) or {}).get("username")

    def mark_notification_sent(self, capsule_id):
        self.mark_calls.append(capsule_id)
        row = self.capsules[capsule_id]
        if not row["notification_sent"]:
            row["notification_sent"] = True


class FakeGateway:
    """Answers 200 unless a device token was given another status."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.statuses: dict[str, int] = {}
        self.reasons: dict[str, str] = {}
        self.timeouts: set[str] = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        device_token = request.url.path.rsplit("/", 1)[-1]
        if device_token in self.timeouts:
            raise httpx.ReadTimeout("timed out", request=request)
        status = self.statuses.get(device_token, 200)
        if status == 200:
            return httpx.Response(200, headers={"apns-id": "A1B2"})
        reason = self.reasons.get(device_token, "Unregistered" if status == 410 else "BadDeviceToken")
        return httpx.Response(status, json={"reason": reason})


@pytest.fixture
def ec_private_key_pem() -> str:
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def token_cache(ec_private_key_pem, clock):
    return TokenCache(
        key_id="ABC123DEFG",
        team_id="TEAM123456",
        private_key=ec_private_key_pem,
        max_age=50 * 60,
        clock=clock,
    )


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def apns_gateway():
    return FakeGateway()


@pytest.fixture
def apns(token_cache, apns_gateway):
    return APNsClient(
        host="api.sandbox.push.apple.com",
        bundle_id="com.example.usandtime",
        token_cache=token_cache,
        timeout=5,
        transport=httpx.MockTransport(apns_gateway.handler),
    )
