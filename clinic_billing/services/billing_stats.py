# FILE: clinic_billing/services/billing_stats.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, case as sa_case, func
from sqlalchemy.orm import Session

from clinic_billing.models.billing import (
    CLOSED_INVOICE_STATUSES,
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from clinic_billing.schemas.billing import (
    InvoiceStatisticsOut,
    PaymentStatisticsOut,
)
from clinic_billing.services.billing_math import D, ZERO, money2
from clinic_billing.utils.timezone import end_of_day, start_of_day, utcnow


def _sum_if(cond, value):
    return func.coalesce(func.sum(sa_case((cond, value), else_=0)), 0)


def invoice_statistics(db: Session,
                       now: Optional[datetime] = None) -> InvoiceStatisticsOut:
    """Totals over every invoice that is not DELETED."""
    now = now or utcnow()
    is_open = Invoice.status.notin_(CLOSED_INVOICE_STATUSES)

    row = (db.query(
        func.count(Invoice.id).label("total_invoices"),
        func.coalesce(func.sum(Invoice.total_amount), 0).label("invoiced"),
        func.coalesce(func.sum(Invoice.paid_amount), 0).label("collected"),
        _sum_if(is_open, Invoice.total_amount -
                Invoice.paid_amount).label("to_collect"),
        _sum_if(Invoice.status == InvoiceStatus.PENDING, 1).label("pending"),
        _sum_if(
            and_(is_open, Invoice.expires_at.isnot(None),
                 Invoice.expires_at < now,
                 Invoice.paid_amount < Invoice.total_amount),
            1,
        ).label("overdue"),
    ).filter(Invoice.status != InvoiceStatus.DELETED).one())

    invoiced = money2(row.invoiced)
    collected = money2(row.collected)
    pct = ZERO
    if invoiced > 0:
        pct = money2(collected / invoiced * Decimal("100"))

    return InvoiceStatisticsOut(
        total_invoiced=invoiced,
        total_invoices=int(row.total_invoices or 0),
        total_collected=collected,
        collected_percentage=pct,
        total_to_collect=money2(row.to_collect),
        pending_invoices=int(D(row.pending)),
        overdue_invoices=int(D(row.overdue)),
    )


def payment_statistics(db: Session,
                       now: Optional[datetime] = None) -> PaymentStatisticsOut:
    """Completed (PAID) payments only; "today" is the current UTC day."""
    now = now or utcnow()
    today = now.date()
    is_today = and_(Payment.payment_date >= start_of_day(today),
                    Payment.payment_date <= end_of_day(today))

    row = (db.query(
        func.count(Payment.id).label("transactions"),
        func.coalesce(func.sum(Payment.amount), 0).label("total"),
        _sum_if(is_today, Payment.amount).label("today"),
        _sum_if(Payment.payment_method == PaymentMethod.CASH,
                Payment.amount).label("cash"),
    ).filter(Payment.status == PaymentStatus.PAID).one())

    return PaymentStatisticsOut(
        total_payments=money2(row.total),
        payments_today=money2(row.today),
        cash_payments=money2(row.cash),
        total_transactions=int(row.transactions or 0),
    )
