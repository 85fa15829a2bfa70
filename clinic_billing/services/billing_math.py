# clinic_billing/services/billing_math.py
from __future__ import annotations

import calendar
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

Q2 = Decimal("0.01")
ZERO = Decimal("0.00")


def D(x: Any) -> Decimal:
    try:
        return Decimal(str(x or 0))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")


def money2(x: Any) -> Decimal:
    return D(x).quantize(Q2, rounding=ROUND_HALF_UP)


def line_total(price: Any, quantity: Any, discount: Any) -> Decimal:
    """price * quantity - discount for one invoice line (not clamped)."""
    return money2(D(price) * D(quantity) - D(discount))


def invoice_total(items: Iterable[Any], discount: Any) -> Decimal:
    """
    sum(line totals) - header discount.

    `items` may be ORM rows or DTOs; anything with price/quantity/discount.
    The result can be negative, callers decide how to reject it.
    """
    subtotal = Decimal("0")
    for it in items:
        subtotal += line_total(
            getattr(it, "price", 0),
            getattr(it, "quantity", 0),
            getattr(it, "discount", 0),
        )
    return money2(subtotal - D(discount))


def fmt_money(x: Any) -> str:
    return f"{money2(x):.2f}"


def add_months(dt: datetime, months: int) -> datetime:
    """Calendar month arithmetic, day clamped to the target month's end."""
    idx = dt.month - 1 + months
    year = dt.year + idx // 12
    month = idx % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def days_overdue(expires_at: datetime | None, now: datetime) -> int:
    """Whole days elapsed past the due date; 0 when not due or no due date."""
    if expires_at is None:
        return 0
    seconds = (now - expires_at).total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // 86400)
