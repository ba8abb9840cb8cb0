"""
Capsule Notifier exceptions

Fatal errors (abort the whole run -> HTTP 500):
    StoreUnavailableError, SigningError, ConfigError

Per-capsule errors (counted as a failure, batch continues):
    StoreError
"""


class NotifierError(Exception):
    """Base class for everything the notifier raises on purpose."""


class ConfigError(NotifierError):
    pass


class StoreError(NotifierError):
    """A single read/write against Supabase failed."""


class StoreUnavailableError(StoreError):
    """The due-capsule scan itself failed; nothing can be processed."""


class SigningError(NotifierError):
    """No APNs provider token could be produced from the configured key."""
