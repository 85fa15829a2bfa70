# FILE: clinic_billing/api/routes_receivables.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from clinic_billing.api.deps import get_db
from clinic_billing.api.response import ok
from clinic_billing.api.streaming import csv_response
from clinic_billing.schemas.receivables import ReceivableOut, ReceivablePriority
from clinic_billing.services.ledger_export import iter_receivables_csv
from clinic_billing.services.receivables import (
    ReceivableFilters,
    list_receivables,
    receivables_statistics,
)

router = APIRouter()


def receivable_filters(
        search: Optional[str] = Query(None),
        days_overdue_min: Optional[int] = Query(None, ge=0),
        days_overdue_max: Optional[int] = Query(None, ge=0),
        priority: Optional[ReceivablePriority] = Query(None),
        invoice_date_from: Optional[date] = Query(None),
        invoice_date_to: Optional[date] = Query(None),
        sort_by: str = Query("created_at"),
        sort_order: str = Query("desc", pattern="^(asc|desc)$"),
) -> ReceivableFilters:
    return ReceivableFilters(
        search=search,
        days_overdue_min=days_overdue_min,
        days_overdue_max=days_overdue_max,
        priority=priority,
        invoice_date_from=invoice_date_from,
        invoice_date_to=invoice_date_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("")
def get_accounts_receivable(
        f: ReceivableFilters = Depends(receivable_filters),
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=200),
        db: Session = Depends(get_db),
):
    rows, meta = list_receivables(db, f, page, limit)
    return ok([ReceivableOut.model_validate(r) for r in rows], meta=meta)


@router.get("/export/csv")
def export_accounts_receivable_csv(
        f: ReceivableFilters = Depends(receivable_filters),
        db: Session = Depends(get_db),
) -> StreamingResponse:
    return csv_response(iter_receivables_csv(db, f), "accounts_receivable")


@router.get("/statistics")
def get_accounts_receivable_statistics(db: Session = Depends(get_db)):
    return ok(receivables_statistics(db))
