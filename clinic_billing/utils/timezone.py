# FILE: clinic_billing/utils/timezone.py
from __future__ import annotations

from datetime import date, datetime, time, timezone


def utcnow() -> datetime:
    """
    Naive UTC timestamp; every DateTime column in the ledger is naive UTC.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def naive_utc(dt: datetime | None) -> datetime | None:
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min)


def end_of_day(d: date) -> datetime:
    return datetime.combine(d, time.max)
