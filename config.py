"""
Capsule Notifier config loader

Reads settings from .env (python-dotenv) and exposes them as module constants.
Missing APNs/Supabase creds don't stop the app from booting; they surface as a
500 on the first check run instead.
"""

from dotenv import load_dotenv
load_dotenv()

import os

# --- Supabase (data store) ---
SUPABASE_URL              = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
STORE_TIMEOUT_SECONDS     = float(os.getenv("STORE_TIMEOUT_SECONDS", "10"))

# --- APNs ---
APNS_KEY_ID      = os.getenv("APNS_KEY_ID")
APNS_TEAM_ID     = os.getenv("APNS_TEAM_ID")
APNS_PRIVATE_KEY = os.getenv("APNS_PRIVATE_KEY")    # inline PEM, escaped PEM, bare base64 or path to .p8
APNS_BUNDLE_ID   = os.getenv("APNS_BUNDLE_ID")
APNS_PRODUCTION  = os.getenv("APNS_PRODUCTION", "false").lower() == "true"
APNS_HOST        = "api.push.apple.com" if APNS_PRODUCTION else "api.sandbox.push.apple.com"
APNS_TIMEOUT_SECONDS       = float(os.getenv("APNS_TIMEOUT_SECONDS", "10"))
# APNs accepts a provider token for up to an hour; re-sign well before that.
APNS_TOKEN_MAX_AGE_SECONDS = int(os.getenv("APNS_TOKEN_MAX_AGE_SECONDS", str(50 * 60)))

# --- Job settings ---
DISPATCH_CONCURRENCY   = max(1, int(os.getenv("DISPATCH_CONCURRENCY", "1")))
SCHEDULER_ENABLED      = os.getenv("SCHEDULER_ENABLED", "0") == "1"
CHECK_INTERVAL_MINUTES = int(os.getenv("CHECK_INTERVAL_MINUTES", "5"))
LOG_LEVEL              = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Simulation toggle ---
SIMULATE_PUSH = os.getenv("SIMULATE_PUSH", "0") == "1"
