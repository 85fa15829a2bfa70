# FILE: clinic_billing/services/billing_numbers.py
from __future__ import annotations

import logging
import time
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from clinic_billing.core.config import settings
from clinic_billing.models.billing import Invoice
from clinic_billing.utils.timezone import utcnow

logger = logging.getLogger(__name__)

PADDING = 5


def _year_prefix(now: datetime, prefix: str | None = None) -> str:
    return f"{prefix or settings.INVOICE_CODE_PREFIX}-{now.year}-"


def next_invoice_code(db: Session,
                      *,
                      now: datetime | None = None,
                      prefix: str | None = None) -> str:
    """
    FAC-<year>-<5 digit sequence>, sequence = codes already issued this year + 1.

    If that code is already taken (deleted rows, concurrent creation) the
    last five digits of the current epoch milliseconds are used instead.
    The unique index on invoices.code stays the final arbiter.
    """
    now = now or utcnow()
    year_prefix = _year_prefix(now, prefix)

    issued = (db.query(func.count(Invoice.id)).filter(
        Invoice.code.like(f"{year_prefix}%")).scalar()) or 0

    code = f"{year_prefix}{str(int(issued) + 1).zfill(PADDING)}"

    taken = db.query(Invoice.id).filter(Invoice.code == code).first()
    if taken:
        fallback = f"{year_prefix}{str(int(time.time() * 1000))[-PADDING:]}"
        logger.warning("Invoice code %s already taken, using %s", code,
                       fallback)
        return fallback

    return code
