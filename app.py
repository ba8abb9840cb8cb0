from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

import config
from apns_client import APNsClient, TokenCache
from capsule_jobs import install_scheduler, run_capsule_check
from db import CapsuleStore, get_supabase

# ---------------- Logging ----------------
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("capsule_notifier")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


def default_store() -> CapsuleStore:
    return CapsuleStore(get_supabase())


@asynccontextmanager
async def lifespan(app: FastAPI):
    if config.SCHEDULER_ENABLED:
        logger.info("In-process scheduler on: every %d min", config.CHECK_INTERVAL_MINUTES)
        install_scheduler(app, config.CHECK_INTERVAL_MINUTES)
    try:
        yield
    finally:
        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            scheduler.shutdown(wait=False)


app = FastAPI(title="Capsule Notifier", lifespan=lifespan)

# Token cache lives as long as the process; a cold start just signs again.
app.state.apns = APNsClient(
    host=config.APNS_HOST,
    bundle_id=config.APNS_BUNDLE_ID,
    token_cache=TokenCache(
        key_id=config.APNS_KEY_ID,
        team_id=config.APNS_TEAM_ID,
        private_key=config.APNS_PRIVATE_KEY,
        max_age=config.APNS_TOKEN_MAX_AGE_SECONDS,
    ),
    timeout=config.APNS_TIMEOUT_SECONDS,
    simulate=config.SIMULATE_PUSH,
)
app.state.store_factory = default_store
app.state.concurrency = config.DISPATCH_CONCURRENCY


@app.middleware("http")
async def timing_and_errors(request, call_next):
    start = time.time()
    try:
        resp = await call_next(request)
        return resp
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        raise
    finally:
        dur_ms = int((time.time() - start) * 1000)
        logger.info("%s %s -> %dms", request.method, request.url.path, dur_ms)


# ---------------- API Routes ----------------
@app.get("/health")
def health():
    return {"ok": True}


@app.options("/check-capsules")
def check_capsules_preflight():
    return PlainTextResponse("ok", headers=CORS_HEADERS)


@app.api_route("/check-capsules", methods=["GET", "POST"])
async def check_capsules(request: Request):
    state = request.app.state
    try:
        store = state.store_factory()
        body = await run_capsule_check(store, state.apns, concurrency=state.concurrency)
    except Exception as e:
        logger.exception("Capsule check failed: %s", e)
        return JSONResponse({"error": str(e)}, status_code=500, headers=CORS_HEADERS)
    return JSONResponse(body, headers=CORS_HEADERS)
