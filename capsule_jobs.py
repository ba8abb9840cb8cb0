"""
Capsule Notifier jobs

One run:
  - Scan for capsules whose unlock_date has passed (not yet notified, still locked)
  - For each: find the recipient's APNs token, push "secret message" alert,
    then mark notification_sent (is_locked is left alone)
  - Per-capsule failures are counted and logged; the batch keeps going
  - Fatal errors (scan failed, no signing key) bubble up to the caller

install_scheduler() runs the same job on an interval inside the FastAPI app,
for deployments without an external cron hitting /check-capsules.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from starlette.concurrency import run_in_threadpool

from apns_client import APNsClient
from db import CapsuleStore
from errors import SigningError, StoreError
from models import BatchResult, Capsule, CapsuleOutcome, PushNotification
from utils import mask_token, now_utc

log = logging.getLogger(__name__)

NOTHING_DUE = {"message": "No capsules to unlock", "count": 0}


async def scan_due_capsules(store: CapsuleStore, now: Optional[dt.datetime] = None) -> List[Capsule]:
    now = now or now_utc()
    capsules = await run_in_threadpool(store.select_due_capsules, now)
    log.info("Found %d capsules to process", len(capsules))
    return capsules


async def dispatch_capsule(capsule: Capsule, store: CapsuleStore, apns: APNsClient) -> CapsuleOutcome:
    """Deliver one capsule's push. Never raises except for SigningError."""
    cid = capsule.id
    try:
        log.info("Processing capsule %s for recipient %s", cid, capsule.recipient_id)

        if not capsule.recipient_id:
            log.warning("Capsule %s: no recipient set", cid)
            return CapsuleOutcome.failed(cid, "profile_lookup_failed")

        try:
            profile = await run_in_threadpool(store.get_profile, capsule.recipient_id)
        except StoreError as e:
            log.warning("Capsule %s: %s", cid, e)
            return CapsuleOutcome.failed(cid, "profile_lookup_failed")

        if profile is None:
            log.warning("Capsule %s: no profile for recipient %s", cid, capsule.recipient_id)
            return CapsuleOutcome.failed(cid, "profile_lookup_failed")
        if not profile.has_device_token:
            log.warning("Capsule %s: no APNs token for recipient %s", cid, capsule.recipient_id)
            return CapsuleOutcome.failed(cid, "no_device_token")

        sender_name = await run_in_threadpool(store.get_display_name, capsule.created_by)
        notification = PushNotification.for_capsule(capsule, sender_name)

        try:
            result = await apns.send(profile.apns_token, notification)
        except httpx.HTTPError as e:
            log.warning("Capsule %s: APNs unreachable for %s: %r", cid, mask_token(profile.apns_token), e)
            return CapsuleOutcome.failed(cid, "gateway_unreachable")

        if not result.ok:
            return CapsuleOutcome.failed(cid, f"gateway_rejected:{result.status}")

        try:
            await run_in_threadpool(store.mark_notification_sent, cid)
        except StoreError as e:
            log.error("Capsule %s: push delivered but %s", cid, e)
            return CapsuleOutcome.failed(cid, "mark_failed")

        log.info("Sent notification for capsule %s", cid)
        return CapsuleOutcome.sent(cid)
    except SigningError:
        raise
    except Exception:
        log.exception("Error processing capsule %s", cid)
        return CapsuleOutcome.failed(cid, "unexpected_error")


async def dispatch_batch(
    capsules: Iterable[Capsule],
    store: CapsuleStore,
    apns: APNsClient,
    concurrency: int = 1,
) -> BatchResult:
    capsules = list(capsules)
    if concurrency <= 1:
        outcomes = [await dispatch_capsule(c, store, apns) for c in capsules]
        return BatchResult(outcomes=outcomes)

    sem = asyncio.Semaphore(concurrency)

    async def _one(c: Capsule) -> CapsuleOutcome:
        async with sem:
            return await dispatch_capsule(c, store, apns)

    outcomes = await asyncio.gather(*(_one(c) for c in capsules))
    return BatchResult(outcomes=list(outcomes))


async def run_capsule_check(
    store: CapsuleStore,
    apns: APNsClient,
    now: Optional[dt.datetime] = None,
    concurrency: int = 1,
) -> Dict[str, Any]:
    """
    Full run -> response body.
    Raises StoreUnavailableError / SigningError / ConfigError on fatal problems.
    """
    log.info("Checking for unlockable capsules...")
    capsules = await scan_due_capsules(store, now)
    if not capsules:
        log.info("No capsules to unlock")
        return dict(NOTHING_DUE)

    # Sign (or reuse) once up front: a bad key fails the run before any capsule is touched
    if not apns.simulate:
        apns.ensure_token()

    async with apns.batch() as sender:
        result = await dispatch_batch(capsules, store, sender, concurrency=concurrency)

    log.info("Capsule run done: success=%d failed=%d", result.success, result.failed)
    return result.to_response()


def install_scheduler(app, interval_minutes: int) -> AsyncIOScheduler:
    """Run the check on an interval; app.state must carry store_factory and apns."""

    async def _scheduled_check():
        try:
            store = app.state.store_factory()
            await run_capsule_check(store, app.state.apns, concurrency=app.state.concurrency)
        except Exception as e:
            log.exception("Scheduled capsule check failed: %s", e)

    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        _scheduled_check,
        "interval",
        minutes=interval_minutes,
        id="capsule_check",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    app.state.scheduler = scheduler
    return scheduler
