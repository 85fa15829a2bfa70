# FILE: clinic_billing/services/ledger_export.py
"""
Streaming CSV exports.

Each exporter is a generator: a header line, then one line per record,
reading the database EXPORT_BATCH_SIZE rows at a time. The HTTP layer adds
the UTF-8 BOM and wraps the generator in a StreamingResponse.
"""
from __future__ import annotations

import csv
from datetime import datetime
from io import StringIO
from typing import Any, Iterator, Optional, Sequence

from sqlalchemy.orm import Session, joinedload

from clinic_billing.core.config import settings
from clinic_billing.models.billing import Invoice, Payment
from clinic_billing.services.billing_math import fmt_money
from clinic_billing.services.invoice_service import (
    InvoiceFilters,
    invoice_query,
)
from clinic_billing.services.payment_service import (
    PaymentFilters,
    payment_query,
)
from clinic_billing.services.receivables import (
    ReceivableFilters,
    collect_receivables,
)
from clinic_billing.utils.pagination import iter_batches

INVOICE_HEADERS = [
    "Invoice", "Patient", "Date", "Due date", "Total", "Paid", "Balance",
    "Status"
]
PAYMENT_HEADERS = [
    "Receipt", "Date", "Patient", "Invoice", "Payment method", "Reference",
    "Amount", "Status"
]
RECEIVABLE_HEADERS = [
    "Patient", "Contact", "Invoices", "Days overdue", "Total debt", "Priority"
]

INVOICE_STATUS_LABELS = {
    "PENDING": "Issued",
    "PAID": "Paid",
    "CANCELED": "Canceled",
    "EXPIRED": "Expired",
    "DELETED": "Deleted",
}
PAYMENT_METHOD_LABELS = {
    "CASH": "Cash",
    "CREDIT_CARD": "Credit card",
    "DEBIT_CARD": "Debit card",
    "TRANSFER": "Transfer",
    "OTHER": "Other",
}
PAYMENT_STATUS_LABELS = {
    "PENDING": "Pending",
    "PAID": "Completed",
    "CANCELED": "Canceled",
}
PRIORITY_LABELS = {
    "HIGH": "High",
    "MEDIUM": "Medium",
    "LOW": "Low",
}


def csv_line(values: Sequence[Any]) -> str:
    """One CSV record, minimal quoting, terminated by a bare newline."""
    out = StringIO()
    csv.writer(out, lineterminator="\n").writerow(values)
    return out.getvalue()


def _label(labels: dict, value: Any) -> str:
    key = getattr(value, "value", value)
    return labels.get(key, key or "")


def _day(dt: Optional[datetime]) -> str:
    return dt.date().isoformat() if dt else ""


def _batch_size(batch_size: Optional[int]) -> int:
    return batch_size or settings.EXPORT_BATCH_SIZE


def iter_invoices_csv(db: Session,
                      f: InvoiceFilters,
                      batch_size: Optional[int] = None) -> Iterator[str]:
    yield csv_line(INVOICE_HEADERS)

    q = invoice_query(db, f).options(joinedload(Invoice.patient))
    for rows in iter_batches(q, _batch_size(batch_size)):
        for inv in rows:
            yield csv_line([
                inv.code,
                getattr(inv.patient, "full_name", None) or "N/A",
                _day(inv.created_at),
                _day(inv.expires_at),
                fmt_money(inv.total_amount),
                fmt_money(inv.paid_amount),
                fmt_money(inv.balance),
                _label(INVOICE_STATUS_LABELS, inv.status),
            ])


def iter_payments_csv(db: Session,
                      f: PaymentFilters,
                      batch_size: Optional[int] = None) -> Iterator[str]:
    yield csv_line(PAYMENT_HEADERS)

    q = payment_query(db, f).options(
        joinedload(Payment.invoice).joinedload(Invoice.patient))
    for rows in iter_batches(q, _batch_size(batch_size)):
        for pay in rows:
            inv = pay.invoice
            yield csv_line([
                pay.code,
                _day(pay.payment_date or pay.created_at),
                getattr(getattr(inv, "patient", None), "full_name", None)
                or "N/A",
                getattr(inv, "code", None) or "N/A",
                _label(PAYMENT_METHOD_LABELS, pay.payment_method),
                pay.reference or "-",
                fmt_money(pay.amount),
                _label(PAYMENT_STATUS_LABELS, pay.status),
            ])


def iter_receivables_csv(db: Session,
                         f: ReceivableFilters,
                         batch_size: Optional[int] = None,
                         now: Optional[datetime] = None) -> Iterator[str]:
    """
    Two passes: every batch is folded first (an account can span batches),
    then the filtered, sorted accounts are written.
    """
    yield csv_line(RECEIVABLE_HEADERS)

    entries = collect_receivables(db,
                                  f,
                                  now=now,
                                  batch_size=_batch_size(batch_size))
    for e in entries:
        yield csv_line([
            e.patient_name,
            e.contact,
            "; ".join(i.code for i in e.invoices),
            e.days_overdue,
            fmt_money(e.total_debt),
            _label(PRIORITY_LABELS, e.priority),
        ])
