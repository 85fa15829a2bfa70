# FILE: clinic_billing/services/receivables.py
"""
Accounts receivable: open invoice balances grouped per patient.

Nothing here is persisted. Rows are folded through `ReceivableAccumulator`,
which gives the same result whether it is fed all invoices at once or in
batches (the CSV export feeds it page by page).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Query, Session, joinedload

from clinic_billing.core.config import settings
from clinic_billing.models.billing import CLOSED_INVOICE_STATUSES, Invoice
from clinic_billing.models.directory import Patient
from clinic_billing.schemas.common import PageMeta
from clinic_billing.schemas.receivables import (
    AgingAnalysisOut,
    ReceivablePriority,
    ReceivableStatisticsOut,
)
from clinic_billing.services.billing_math import ZERO, days_overdue, money2
from clinic_billing.utils.pagination import iter_batches, paginate_list
from clinic_billing.utils.timezone import end_of_day, start_of_day, utcnow

logger = logging.getLogger(__name__)


RECEIVABLE_SORT_FIELDS = {
    "patient_id",
    "patient_name",
    "phone_number",
    "email",
    "total_debt",
    "days_overdue",
    "priority",
}


def priority_for(days: int) -> ReceivablePriority:
    if days > settings.RECEIVABLE_HIGH_DAYS:
        return ReceivablePriority.HIGH
    if days > settings.RECEIVABLE_MEDIUM_DAYS:
        return ReceivablePriority.MEDIUM
    return ReceivablePriority.LOW


@dataclass
class ReceivableInvoice:
    id: int
    code: str
    date: datetime
    total_debt: Decimal


@dataclass
class ReceivableEntry:
    patient_id: int
    patient_name: str
    phone_number: Optional[str] = None
    email: Optional[str] = None
    invoices: List[ReceivableInvoice] = field(default_factory=list)
    total_debt: Decimal = ZERO
    days_overdue: int = 0
    priority: ReceivablePriority = ReceivablePriority.LOW

    @property
    def contact(self) -> str:
        return self.phone_number or self.email or "N/A"


@dataclass
class ReceivableFilters:
    search: Optional[str] = None
    days_overdue_min: Optional[int] = None
    days_overdue_max: Optional[int] = None
    priority: Optional[ReceivablePriority] = None
    invoice_date_from: Optional[date] = None
    invoice_date_to: Optional[date] = None
    sort_by: str = "created_at"
    sort_order: str = "desc"


class ReceivableAccumulator:
    """
    Streaming fold of invoice rows into per-patient entries.

    `now` is fixed at construction so every batch is aged against the same
    instant. Entries keep first-seen order.
    """

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or utcnow()
        self._entries: Dict[int, ReceivableEntry] = {}

    def feed(self, rows: Iterable[Invoice]) -> "ReceivableAccumulator":
        for inv in rows:
            patient = inv.patient
            if inv.patient_id is None or patient is None:
                continue

            balance = money2(inv.total_amount) - money2(inv.paid_amount)
            if balance <= 0:
                continue

            entry = self._entries.get(inv.patient_id)
            if entry is None:
                entry = ReceivableEntry(
                    patient_id=inv.patient_id,
                    patient_name=patient.full_name,
                    phone_number=patient.phone_number or None,
                    email=patient.email or None,
                )
                self._entries[inv.patient_id] = entry

            entry.invoices.append(
                ReceivableInvoice(id=inv.id,
                                  code=inv.code,
                                  date=inv.created_at,
                                  total_debt=balance))
            entry.total_debt += balance
            entry.days_overdue = max(entry.days_overdue,
                                     days_overdue(inv.expires_at, self.now))
        return self

    def results(self) -> List[ReceivableEntry]:
        out = list(self._entries.values())
        for entry in out:
            entry.priority = priority_for(entry.days_overdue)
        return out


def receivable_invoice_query(db: Session, f: ReceivableFilters) -> Query:
    q = (db.query(Invoice).options(joinedload(Invoice.patient)).filter(
        Invoice.status.notin_(CLOSED_INVOICE_STATUSES)))

    s = (f.search or "").strip().lower()
    if s:
        q = q.join(Patient, Invoice.patient_id == Patient.id).filter(
            func.lower(Patient.full_name).like(f"%{s}%"))

    if f.invoice_date_from:
        q = q.filter(Invoice.created_at >= start_of_day(f.invoice_date_from))
    if f.invoice_date_to:
        q = q.filter(Invoice.created_at <= end_of_day(f.invoice_date_to))

    return q.order_by(Invoice.id.asc())


def filter_entries(entries: List[ReceivableEntry],
                   f: ReceivableFilters) -> List[ReceivableEntry]:
    out = entries
    if f.days_overdue_min is not None:
        out = [e for e in out if e.days_overdue >= f.days_overdue_min]
    if f.days_overdue_max is not None:
        out = [e for e in out if e.days_overdue <= f.days_overdue_max]
    if f.priority:
        out = [e for e in out if e.priority == f.priority]
    return out


def _sort_value(v: Any) -> Any:
    return v.value if isinstance(v, Enum) else v


def sort_entries(entries: List[ReceivableEntry], sort_by: str,
                 sort_order: str) -> List[ReceivableEntry]:
    """
    Stable sort on one entry field. Unknown fields keep insertion order;
    entries missing the value go last in either direction.
    """
    if sort_by not in RECEIVABLE_SORT_FIELDS:
        return list(entries)

    present = [e for e in entries if getattr(e, sort_by) is not None]
    missing = [e for e in entries if getattr(e, sort_by) is None]
    present.sort(key=lambda e: _sort_value(getattr(e, sort_by)),
                 reverse=(sort_order or "").lower() != "asc")
    return present + missing


def collect_receivables(db: Session,
                        f: ReceivableFilters,
                        now: Optional[datetime] = None,
                        batch_size: Optional[int] = None
                        ) -> List[ReceivableEntry]:
    """Fold, filter and sort. With `batch_size` the source is read in pages."""
    acc = ReceivableAccumulator(now)
    q = receivable_invoice_query(db, f)
    if batch_size:
        for rows in iter_batches(q, batch_size):
            acc.feed(rows)
    else:
        acc.feed(q.all())

    entries = filter_entries(acc.results(), f)
    logger.debug("Receivables folded into %s account(s)", len(entries))
    return sort_entries(entries, f.sort_by, f.sort_order)


def list_receivables(
        db: Session,
        f: ReceivableFilters,
        page: int,
        limit: int,
        now: Optional[datetime] = None
) -> Tuple[List[ReceivableEntry], PageMeta]:
    return paginate_list(collect_receivables(db, f, now), page, limit)


def receivables_statistics(
        db: Session,
        now: Optional[datetime] = None) -> ReceivableStatisticsOut:
    entries = collect_receivables(db, ReceivableFilters(), now)

    buckets = {
        "days_0_to_15": ZERO,
        "days_16_to_30": ZERO,
        "days_31_to_60": ZERO,
        "days_over_60": ZERO,
    }
    for e in entries:
        if e.days_overdue <= 15:
            buckets["days_0_to_15"] += e.total_debt
        elif e.days_overdue <= 30:
            buckets["days_16_to_30"] += e.total_debt
        elif e.days_overdue <= 60:
            buckets["days_31_to_60"] += e.total_debt
        else:
            buckets["days_over_60"] += e.total_debt

    total = sum((e.total_debt for e in entries), ZERO)
    average = money2(total / len(entries)) if entries else ZERO

    return ReceivableStatisticsOut(
        total_to_collect=money2(total),
        total_accounts=len(entries),
        overdue_accounts=sum(1 for e in entries if e.days_overdue > 0),
        high_priority_accounts=sum(
            1 for e in entries if e.priority == ReceivablePriority.HIGH),
        average_debt_per_client=average,
        aging_analysis=AgingAnalysisOut(
            **{k: money2(v)
               for k, v in buckets.items()}),
    )
