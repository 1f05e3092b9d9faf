"""
Client session configuration — all environment variables in one place.

Read from environment at import time. Every setting has a default; the
session core runs without any environment set.
"""

from __future__ import annotations

import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Settings:
    """Client settings from environment variables."""

    # Logging
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Reconciliation
    # Drop widget state not referenced by a successfully finished run
    SWEEP_UNSEEN_WIDGETS: bool = _env_bool("SWEEP_UNSEEN_WIDGETS", True)

    # Transport pump
    OUTBOX_MAX_SIZE: int = _env_int("OUTBOX_MAX_SIZE", 100)


# Singleton instance
settings = Settings()

if settings.OUTBOX_MAX_SIZE < 1:
    raise RuntimeError("OUTBOX_MAX_SIZE must be at least 1")
