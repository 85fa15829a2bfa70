# FILE: clinic_billing/api/routes_invoices.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from clinic_billing.api.deps import get_db
from clinic_billing.api.response import ok
from clinic_billing.api.streaming import csv_response
from clinic_billing.models.billing import InvoiceStatus
from clinic_billing.schemas.billing import (
    InvoiceCreate,
    InvoiceOut,
    InvoiceStatusIn,
    InvoiceUpdate,
    PaymentOut,
)
from clinic_billing.services import invoice_service as svc
from clinic_billing.services.billing_stats import invoice_statistics
from clinic_billing.services.ledger_export import iter_invoices_csv
from clinic_billing.services.payment_service import list_payments_for_invoice

router = APIRouter()


def invoice_filters(
        search: Optional[str] = Query(None),
        status: Optional[InvoiceStatus] = Query(None),
        patient_id: Optional[int] = Query(None),
        branch_id: Optional[int] = Query(None),
        created_from: Optional[date] = Query(None),
        created_to: Optional[date] = Query(None),
        expires_from: Optional[date] = Query(None),
        expires_to: Optional[date] = Query(None),
        sort_by: str = Query("created_at"),
        sort_order: str = Query("desc", pattern="^(asc|desc)$"),
) -> svc.InvoiceFilters:
    return svc.InvoiceFilters(
        search=search,
        status=status,
        patient_id=patient_id,
        branch_id=branch_id,
        created_from=created_from,
        created_to=created_to,
        expires_from=expires_from,
        expires_to=expires_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.post("")
def create_invoice(payload: InvoiceCreate, db: Session = Depends(get_db)):
    inv = svc.create_invoice(db, payload)
    return ok(InvoiceOut.from_invoice(inv), status_code=201)


@router.get("")
def list_invoices(
        f: svc.InvoiceFilters = Depends(invoice_filters),
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=200),
        db: Session = Depends(get_db),
):
    rows, meta = svc.list_invoices(db, f, page, limit)
    return ok([InvoiceOut.from_invoice(r) for r in rows], meta=meta)


@router.get("/export/csv")
def export_invoices_csv(
        f: svc.InvoiceFilters = Depends(invoice_filters),
        db: Session = Depends(get_db),
) -> StreamingResponse:
    return csv_response(iter_invoices_csv(db, f), "invoices")


@router.get("/statistics")
def get_invoice_statistics(db: Session = Depends(get_db)):
    return ok(invoice_statistics(db))


@router.get("/{invoice_id}")
def get_invoice(invoice_id: int, db: Session = Depends(get_db)):
    return ok(InvoiceOut.from_invoice(svc.get_invoice(db, invoice_id)))


@router.patch("/{invoice_id}")
def update_invoice(invoice_id: int,
                   payload: InvoiceUpdate,
                   db: Session = Depends(get_db)):
    inv = svc.update_invoice(db, invoice_id, payload)
    return ok(InvoiceOut.from_invoice(inv))


@router.patch("/{invoice_id}/status")
def change_invoice_status(invoice_id: int,
                          payload: InvoiceStatusIn,
                          db: Session = Depends(get_db)):
    inv = svc.change_status(db, invoice_id, payload.status)
    return ok(InvoiceOut.from_invoice(inv))


@router.get("/{invoice_id}/payments")
def get_invoice_payments(invoice_id: int, db: Session = Depends(get_db)):
    rows = list_payments_for_invoice(db, invoice_id)
    return ok([PaymentOut.from_payment(p) for p in rows])
