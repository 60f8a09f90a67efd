# src/tourhub/db/time.py
"""Timestamps for model defaults and retention cutoffs.

All stored timestamps are UTC.
"""

from datetime import UTC, datetime, timedelta


def utcnow() -> datetime:
    return datetime.now(UTC)


def seconds_ago(seconds: float) -> datetime:
    """Return the UTC instant ``seconds`` before now, e.g. a retention cutoff."""
    return utcnow() - timedelta(seconds=seconds)
