# FILE: clinic_billing/api/routes_payment_plans.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clinic_billing.api.deps import get_db
from clinic_billing.api.response import ok
from clinic_billing.schemas.payment_plan import (
    PayInstallmentIn,
    PaymentInstallmentOut,
    PaymentPlanCreate,
    PaymentPlanOut,
    PaymentPlanUpdate,
)
from clinic_billing.services import payment_plan_service as svc

router = APIRouter()


@router.post("")
def create_payment_plan(payload: PaymentPlanCreate,
                        db: Session = Depends(get_db)):
    plan = svc.create_plan(db, payload)
    return ok(PaymentPlanOut.from_plan(plan), status_code=201)


@router.get("")
def list_payment_plans(treatment_id: Optional[int] = Query(None),
                       db: Session = Depends(get_db)):
    plans = svc.list_plans(db, treatment_id)
    return ok([PaymentPlanOut.from_plan(p) for p in plans])


@router.get("/{plan_id}")
def get_payment_plan(plan_id: int, db: Session = Depends(get_db)):
    return ok(PaymentPlanOut.from_plan(svc.get_plan(db, plan_id)))


@router.get("/{plan_id}/summary")
def get_payment_plan_summary(plan_id: int, db: Session = Depends(get_db)):
    return ok(svc.get_summary(db, plan_id))


@router.patch("/{plan_id}")
def update_payment_plan(plan_id: int,
                        payload: PaymentPlanUpdate,
                        db: Session = Depends(get_db)):
    plan = svc.update_plan(db, plan_id, payload)
    return ok(PaymentPlanOut.from_plan(plan))


@router.patch("/{plan_id}/installments/{installment_id}/pay")
def pay_installment(plan_id: int,
                    installment_id: int,
                    payload: PayInstallmentIn,
                    db: Session = Depends(get_db)):
    inst = svc.mark_installment_paid(db, plan_id, installment_id, payload)
    return ok(PaymentInstallmentOut.model_validate(inst))


@router.delete("/{plan_id}")
def delete_payment_plan(plan_id: int, db: Session = Depends(get_db)):
    svc.delete_plan(db, plan_id)
    return ok({"id": plan_id, "deleted": True})
