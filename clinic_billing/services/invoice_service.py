# FILE: clinic_billing/services/invoice_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import asc, desc, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session, joinedload, selectinload

from clinic_billing.core.config import settings
from clinic_billing.core.errors import InvalidArgument, InvalidState, NotFound
from clinic_billing.models.billing import Invoice, InvoiceItem, InvoiceStatus
from clinic_billing.models.directory import Patient
from clinic_billing.schemas.billing import InvoiceCreate, InvoiceUpdate
from clinic_billing.schemas.common import PageMeta
from clinic_billing.services.billing_math import D, ZERO, invoice_total, money2
from clinic_billing.services.billing_numbers import next_invoice_code
from clinic_billing.services.directory import validate_references
from clinic_billing.utils.pagination import paginate_query
from clinic_billing.utils.timezone import end_of_day, start_of_day, utcnow

logger = logging.getLogger(__name__)

INVOICE_SORT_FIELDS = {
    "created_at",
    "expires_at",
    "paid_at",
    "total_amount",
    "paid_amount",
    "code",
    "status",
}

REFERENCE_FIELDS = (
    "patient_id",
    "doctor_id",
    "branch_id",
    "treatment_id",
    "treatment_step_id",
)

# statuses that still take money and can therefore settle to PAID
PAYABLE_STATUSES = (InvoiceStatus.PENDING, InvoiceStatus.EXPIRED)


@dataclass
class InvoiceFilters:
    search: Optional[str] = None
    status: Optional[InvoiceStatus] = None
    patient_id: Optional[int] = None
    branch_id: Optional[int] = None
    created_from: Optional[date] = None
    created_to: Optional[date] = None
    expires_from: Optional[date] = None
    expires_to: Optional[date] = None
    sort_by: str = "created_at"
    sort_order: str = "desc"


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------
def _with_relations(q: Query) -> Query:
    return q.options(
        joinedload(Invoice.patient),
        joinedload(Invoice.doctor),
        joinedload(Invoice.branch),
        selectinload(Invoice.items),
    )


def invoice_query(db: Session, f: InvoiceFilters) -> Query:
    """
    Filtered + ordered invoice query shared by the list endpoint and the
    CSV export. DELETED rows are hidden unless explicitly asked for.
    """
    q = db.query(Invoice)

    if f.status:
        q = q.filter(Invoice.status == f.status)
    else:
        q = q.filter(Invoice.status != InvoiceStatus.DELETED)

    s = (f.search or "").strip().lower()
    if s:
        q = q.outerjoin(Patient, Invoice.patient_id == Patient.id).filter(
            or_(
                func.lower(Invoice.code).like(f"%{s}%"),
                func.lower(Patient.full_name).like(f"%{s}%"),
            ))

    if f.patient_id:
        q = q.filter(Invoice.patient_id == f.patient_id)
    if f.branch_id:
        q = q.filter(Invoice.branch_id == f.branch_id)

    if f.created_from:
        q = q.filter(Invoice.created_at >= start_of_day(f.created_from))
    if f.created_to:
        q = q.filter(Invoice.created_at <= end_of_day(f.created_to))
    if f.expires_from:
        q = q.filter(Invoice.expires_at >= start_of_day(f.expires_from))
    if f.expires_to:
        q = q.filter(Invoice.expires_at <= end_of_day(f.expires_to))

    sort_key = f.sort_by if f.sort_by in INVOICE_SORT_FIELDS else "created_at"
    order_fn = asc if (f.sort_order or "").lower() == "asc" else desc
    return q.order_by(order_fn(getattr(Invoice, sort_key)),
                      order_fn(Invoice.id))


def _lock_invoice(db: Session, invoice_id: int) -> Invoice:
    inv = (db.query(Invoice).filter(
        Invoice.id == int(invoice_id)).with_for_update().first())
    if not inv:
        raise NotFound("Invoice not found")
    return inv


def _new_items(items) -> List[InvoiceItem]:
    return [
        InvoiceItem(
            name=it.name,
            price=money2(it.price),
            quantity=int(it.quantity),
            discount=money2(it.discount or 0),
            inventory_id=it.inventory_id,
        ) for it in items
    ]


def _ensure_non_negative(total: Decimal) -> None:
    if total < 0:
        raise InvalidArgument(
            "Invoice total cannot be negative",
            details={"total_amount": f"{total:.2f}"},
        )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_invoice(db: Session, invoice_id: int) -> Invoice:
    inv = _with_relations(db.query(Invoice)).filter(
        Invoice.id == int(invoice_id)).first()
    if not inv:
        raise NotFound("Invoice not found")
    return inv


def list_invoices(db: Session, f: InvoiceFilters, page: int,
                  limit: int) -> Tuple[List[Invoice], PageMeta]:
    return paginate_query(_with_relations(invoice_query(db, f)), page, limit)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def create_invoice(db: Session, data: InvoiceCreate) -> Invoice:
    validate_references(
        db,
        patient_id=data.patient_id,
        doctor_id=data.doctor_id,
        branch_id=data.branch_id,
        treatment_id=data.treatment_id,
        treatment_step_id=data.treatment_step_id,
    )

    total = invoice_total(data.items, data.discount)
    _ensure_non_negative(total)

    inv = Invoice(
        code=next_invoice_code(db),
        patient_id=data.patient_id,
        doctor_id=data.doctor_id,
        branch_id=data.branch_id,
        treatment_id=data.treatment_id,
        treatment_step_id=data.treatment_step_id,
        discount=money2(data.discount),
        currency=(data.currency or settings.DEFAULT_CURRENCY).upper(),
        total_amount=total,
        paid_amount=ZERO,
        is_paid=False,
        status=InvoiceStatus.PENDING,
        expires_at=data.expires_at,
    )
    inv.items = _new_items(data.items)
    db.add(inv)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Invoice code %s collided on commit", inv.code)
        raise InvalidState("Could not allocate a unique invoice code, retry")

    logger.info("Invoice %s created for patient %s total=%s", inv.code,
                inv.patient_id, total)
    return get_invoice(db, inv.id)


def update_invoice(db: Session, invoice_id: int,
                   data: InvoiceUpdate) -> Invoice:
    """
    Items present: the active item set is replaced (old rows soft-deleted).
    Only discount present: total recomputed against the current active items.
    Everything happens in one commit.
    """
    inv = _lock_invoice(db, invoice_id)

    if inv.status == InvoiceStatus.PAID:
        raise InvalidState("A paid invoice cannot be modified")
    if inv.status == InvoiceStatus.DELETED:
        raise InvalidState("A deleted invoice cannot be modified")

    patch = {k: v for k, v in data.model_dump(exclude_unset=True).items()
             if v is not None}

    validate_references(db, **{k: patch.get(k) for k in REFERENCE_FIELDS})

    discount = money2(patch["discount"]) if "discount" in patch else D(
        inv.discount)

    if data.items is not None:
        total = invoice_total(data.items, discount)
    elif "discount" in patch:
        total = invoice_total(inv.active_items, discount)
    else:
        total = money2(inv.total_amount)

    _ensure_non_negative(total)

    paid = money2(inv.paid_amount)
    if total < paid:
        raise InvalidArgument(
            "Invoice total cannot be lower than the amount already paid",
            details={
                "total_amount": f"{total:.2f}",
                "paid_amount": f"{paid:.2f}",
            },
        )

    now = utcnow()
    if data.items is not None:
        for it in inv.active_items:
            it.is_deleted = True
            it.deleted_at = now
        inv.items.extend(_new_items(data.items))

    for field in REFERENCE_FIELDS + ("expires_at", ):
        if field in patch:
            setattr(inv, field, patch[field])
    if "currency" in patch:
        inv.currency = patch["currency"].upper()

    inv.discount = discount
    inv.total_amount = total

    if paid > 0 and paid >= total and inv.status in PAYABLE_STATUSES:
        last = inv.payments[-1] if inv.payments else None
        inv.is_paid = True
        inv.status = InvoiceStatus.PAID
        inv.paid_at = now
        inv.payment_method = getattr(last, "payment_method", None)

    db.commit()
    logger.info("Invoice %s updated total=%s", inv.code, total)
    return get_invoice(db, inv.id)


def change_status(db: Session, invoice_id: int,
                  status: InvoiceStatus) -> Invoice:
    """
    PAID is terminal and only reachable through payments; DELETED is terminal.
    PAID -> PAID is accepted as a no-op.
    """
    inv = _lock_invoice(db, invoice_id)

    if inv.status == InvoiceStatus.PAID:
        if status == InvoiceStatus.PAID:
            db.rollback()
            return get_invoice(db, invoice_id)
        raise InvalidState("Cannot change the status of a paid invoice")

    if inv.status == InvoiceStatus.DELETED:
        raise InvalidState("Cannot change the status of a deleted invoice")

    if status == InvoiceStatus.PAID:
        raise InvalidState(
            "Invoices become PAID only when payments cover the total")

    previous = inv.status
    inv.status = status
    db.commit()
    logger.info("Invoice %s status %s -> %s", inv.code, previous.value,
                status.value)
    return get_invoice(db, inv.id)

