"""
netatmo_bridge/core/staleness.py
Age checks, kept pure so the cache and the projector agree on them.
  • refresh_due() → per source: has the refresh interval elapsed?
  • classify()    → per reading: is the measurement too old to publish?
"""

from enum import Enum
from typing import Optional


class Freshness(str, Enum):
    FRESH   = "fresh"
    EXPIRED = "expired"


def classify(measured_at: Optional[float], now: float, stale_threshold: float) -> Freshness:
    """EXPIRED when the reading is older than stale_threshold or has no timestamp."""
    if measured_at is None:
        return Freshness.EXPIRED
    if now - measured_at > stale_threshold:
        return Freshness.EXPIRED
    return Freshness.FRESH


def refresh_due(last_attempt: Optional[float], now: float, refresh_interval: float) -> bool:
    if last_attempt is None:
        return True
    return now - last_attempt >= refresh_interval
