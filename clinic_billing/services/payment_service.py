# FILE: clinic_billing/services/payment_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import asc, case, desc, func, or_, update
from sqlalchemy.orm import Query, Session, joinedload

from clinic_billing.core.errors import InvalidArgument, InvalidState, NotFound
from clinic_billing.models.billing import (
    CLOSED_INVOICE_STATUSES,
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from clinic_billing.models.directory import Patient
from clinic_billing.schemas.billing import PaymentCreate
from clinic_billing.schemas.common import PageMeta
from clinic_billing.services.billing_math import fmt_money, money2
from clinic_billing.utils.pagination import paginate_query
from clinic_billing.utils.timezone import end_of_day, start_of_day, utcnow

logger = logging.getLogger(__name__)

PAYMENT_SORT_FIELDS = {
    "created_at",
    "payment_date",
    "amount",
    "payment_method",
    "status",
}


@dataclass
class PaymentFilters:
    search: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    status: Optional[PaymentStatus] = None
    patient_id: Optional[int] = None
    invoice_id: Optional[int] = None
    payment_date_from: Optional[date] = None
    payment_date_to: Optional[date] = None
    sort_by: str = "created_at"
    sort_order: str = "desc"


def _with_relations(q: Query) -> Query:
    return q.options(joinedload(Payment.invoice).joinedload(Invoice.patient))


def payment_query(db: Session, f: PaymentFilters) -> Query:
    q = db.query(Payment).join(Invoice, Payment.invoice_id == Invoice.id)

    s = (f.search or "").strip().lower()
    if s:
        q = q.outerjoin(Patient, Invoice.patient_id == Patient.id).filter(
            or_(
                func.lower(Invoice.code).like(f"%{s}%"),
                func.lower(Patient.full_name).like(f"%{s}%"),
                func.lower(func.coalesce(Payment.reference,
                                         "")).like(f"%{s}%"),
            ))

    if f.payment_method:
        q = q.filter(Payment.payment_method == f.payment_method)
    if f.status:
        q = q.filter(Payment.status == f.status)
    if f.patient_id:
        q = q.filter(Invoice.patient_id == f.patient_id)
    if f.invoice_id:
        q = q.filter(Payment.invoice_id == f.invoice_id)
    if f.payment_date_from:
        q = q.filter(Payment.payment_date >= start_of_day(f.payment_date_from))
    if f.payment_date_to:
        q = q.filter(Payment.payment_date <= end_of_day(f.payment_date_to))

    sort_key = f.sort_by if f.sort_by in PAYMENT_SORT_FIELDS else "created_at"
    order_fn = asc if (f.sort_order or "").lower() == "asc" else desc
    return q.order_by(order_fn(getattr(Payment, sort_key)),
                      order_fn(Payment.id))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_payment(db: Session, payment_id: int) -> Payment:
    pay = _with_relations(db.query(Payment)).filter(
        Payment.id == int(payment_id)).first()
    if not pay:
        raise NotFound("Payment not found")
    return pay


def list_payments(db: Session, f: PaymentFilters, page: int,
                  limit: int) -> Tuple[List[Payment], PageMeta]:
    return paginate_query(_with_relations(payment_query(db, f)), page, limit)


def list_payments_for_invoice(db: Session, invoice_id: int) -> List[Payment]:
    exists = db.query(Invoice.id).filter(Invoice.id == int(invoice_id)).first()
    if not exists:
        raise NotFound("Invoice not found")
    return (_with_relations(db.query(Payment)).filter(
        Payment.invoice_id == int(invoice_id)).order_by(
            Payment.created_at.desc(), Payment.id.desc()).all())


# ---------------------------------------------------------------------------
# Apply payment
# ---------------------------------------------------------------------------
def _overpayment(total, paid, amount) -> InvalidArgument:
    return InvalidArgument(
        f"Payment exceeds the invoice total. Total: {fmt_money(total)}, "
        f"Paid: {fmt_money(paid)}, New payment: {fmt_money(amount)}",
        details={
            "total_amount": fmt_money(total),
            "paid_amount": fmt_money(paid),
            "attempted_amount": fmt_money(amount),
        },
    )


def apply_payment(db: Session, data: PaymentCreate) -> Payment:
    """
    Record a payment and add it to the invoice's paid_amount atomically.

    The invoice row is read FOR UPDATE for validation, and the increment
    itself is a conditional UPDATE guarded on
    `paid_amount + amount <= total_amount` and an open status, so two
    concurrent payments can never both land past the total. Zero rows
    matched means the amount no longer fits: reported as an overpayment.
    """
    amount = money2(data.amount)
    if amount <= 0:
        raise InvalidArgument("Payment amount must be > 0")

    inv = (db.query(Invoice).filter(
        Invoice.id == int(data.invoice_id)).with_for_update().first())
    if not inv:
        raise NotFound("Invoice not found")

    if inv.status == InvoiceStatus.PAID:
        raise InvalidState("Invoice is already fully paid")
    if inv.status == InvoiceStatus.CANCELED:
        raise InvalidState("A canceled invoice cannot receive payments")
    if inv.status == InvoiceStatus.DELETED:
        raise InvalidState("A deleted invoice cannot receive payments")

    total = money2(inv.total_amount)
    paid = money2(inv.paid_amount)
    if paid + amount > total:
        logger.warning("Overpayment rejected on %s: total=%s paid=%s got=%s",
                       inv.code, total, paid, amount)
        raise _overpayment(total, paid, amount)

    now = utcnow()
    new_paid = Invoice.paid_amount + amount
    completes = new_paid >= Invoice.total_amount

    res = db.execute(
        update(Invoice).where(
            Invoice.id == inv.id,
            Invoice.status.notin_(CLOSED_INVOICE_STATUSES),
            new_paid <= Invoice.total_amount,
        ).values(
            paid_amount=new_paid,
            is_paid=case((completes, True), else_=Invoice.is_paid),
            status=case((completes, InvoiceStatus.PAID.value),
                        else_=Invoice.status),
            paid_at=case((completes, now), else_=Invoice.paid_at),
            payment_method=case((completes, data.payment_method.value),
                                else_=Invoice.payment_method),
            updated_at=now,
        ).execution_options(synchronize_session=False))

    if res.rowcount != 1:
        db.rollback()
        fresh = db.get(Invoice, int(data.invoice_id))
        logger.warning("Concurrent payment guard tripped on invoice %s",
                       data.invoice_id)
        raise _overpayment(
            getattr(fresh, "total_amount", total),
            getattr(fresh, "paid_amount", paid),
            amount,
        )

    pay = Payment(
        invoice_id=inv.id,
        amount=amount,
        payment_method=data.payment_method,
        payment_date=data.payment_date or now,
        reference=(data.reference or None),
        notes=(data.notes or None),
        status=PaymentStatus.PAID,
    )
    db.add(pay)
    db.commit()

    logger.info("Payment %s applied to %s amount=%s method=%s", pay.id,
                inv.code, amount, data.payment_method.value)
    return get_payment(db, pay.id)
