# FILE: clinic_billing/api/routes_payments.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from clinic_billing.api.deps import get_db
from clinic_billing.api.response import ok
from clinic_billing.api.streaming import csv_response
from clinic_billing.models.billing import PaymentMethod, PaymentStatus
from clinic_billing.schemas.billing import PaymentCreate, PaymentOut
from clinic_billing.services import payment_service as svc
from clinic_billing.services.billing_stats import payment_statistics
from clinic_billing.services.ledger_export import iter_payments_csv

router = APIRouter()


def payment_filters(
        search: Optional[str] = Query(None),
        payment_method: Optional[PaymentMethod] = Query(None),
        status: Optional[PaymentStatus] = Query(None),
        patient_id: Optional[int] = Query(None),
        invoice_id: Optional[int] = Query(None),
        payment_date_from: Optional[date] = Query(None),
        payment_date_to: Optional[date] = Query(None),
        sort_by: str = Query("created_at"),
        sort_order: str = Query("desc", pattern="^(asc|desc)$"),
) -> svc.PaymentFilters:
    return svc.PaymentFilters(
        search=search,
        payment_method=payment_method,
        status=status,
        patient_id=patient_id,
        invoice_id=invoice_id,
        payment_date_from=payment_date_from,
        payment_date_to=payment_date_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.post("")
def create_payment(payload: PaymentCreate, db: Session = Depends(get_db)):
    pay = svc.apply_payment(db, payload)
    return ok(PaymentOut.from_payment(pay), status_code=201)


@router.get("")
def list_payments(
        f: svc.PaymentFilters = Depends(payment_filters),
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=200),
        db: Session = Depends(get_db),
):
    rows, meta = svc.list_payments(db, f, page, limit)
    return ok([PaymentOut.from_payment(p) for p in rows], meta=meta)


@router.get("/export/csv")
def export_payments_csv(
        f: svc.PaymentFilters = Depends(payment_filters),
        db: Session = Depends(get_db),
) -> StreamingResponse:
    return csv_response(iter_payments_csv(db, f), "payments")


@router.get("/statistics")
def get_payment_statistics(db: Session = Depends(get_db)):
    return ok(payment_statistics(db))


@router.get("/{payment_id}")
def get_payment(payment_id: int, db: Session = Depends(get_db)):
    return ok(PaymentOut.from_payment(svc.get_payment(db, payment_id)))
