"""Urgency buckets for the pending-verification queue."""

from __future__ import annotations

import json
from datetime import datetime
from functools import lru_cache

from core.config import get_settings
from verification.records import VerificationRecord, VerificationStatus

# Minimum days waiting for each bucket.
DEFAULT_URGENCY_THRESHOLDS = {
    "critical": 14,  # 2+ weeks
    "high": 7,  # 1+ week
    "medium": 3,  # 3+ days
}


@lru_cache
def load_urgency_thresholds() -> dict[str, int]:
    """
    Optional override payload from env:
      VERIFICATION_URGENCY_THRESHOLDS='{"critical":10,"high":5}'
    Keys that are missing or not integers keep their defaults.
    """
    thresholds = dict(DEFAULT_URGENCY_THRESHOLDS)
    raw = get_settings().verification_urgency_thresholds
    if not raw:
        return thresholds
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return thresholds
    if not isinstance(payload, dict):
        return thresholds
    for level in thresholds:
        value = payload.get(level)
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            thresholds[level] = value
    return thresholds


def classify_urgency(days_waiting: int, thresholds: dict[str, int] | None = None) -> str:
    """Classify a pending submission by how long it has been waiting."""
    thresholds = thresholds or load_urgency_thresholds()
    if days_waiting >= thresholds["critical"]:
        return "critical"
    elif days_waiting >= thresholds["high"]:
        return "high"
    elif days_waiting >= thresholds["medium"]:
        return "medium"
    return "low"


def record_urgency(
    record: VerificationRecord | None,
    now: datetime | None = None,
    thresholds: dict[str, int] | None = None,
) -> str:
    if record is None or record.status != VerificationStatus.PENDING:
        return "none"
    return classify_urgency(record.waiting_days(now), thresholds)
