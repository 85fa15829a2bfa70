# FILE: clinic_billing/services/payment_plan_service.py
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from clinic_billing.core.config import settings
from clinic_billing.core.errors import InvalidArgument, InvalidState, NotFound
from clinic_billing.models.payment_plan import PaymentInstallment, PaymentPlan
from clinic_billing.schemas.payment_plan import (
    PayInstallmentIn,
    PaymentPlanCreate,
    PaymentPlanUpdate,
    PaymentSummaryOut,
)
from clinic_billing.services.billing_math import (
    ZERO,
    add_months,
    fmt_money,
    money2,
)
from clinic_billing.services.directory import get_treatment
from clinic_billing.utils.timezone import utcnow

logger = logging.getLogger(__name__)

SCHEDULE_FIELDS = (
    "number_of_installments",
    "installment_amount",
    "initial_payment",
    "start_date",
)


def _plan_query(db: Session):
    return db.query(PaymentPlan).options(
        joinedload(PaymentPlan.treatment),
        selectinload(PaymentPlan.installments),
    )


def _check_plan_amount(price, initial, amount, count: int) -> None:
    plan_total = money2(initial) + money2(amount) * int(count)
    price = money2(price)
    if abs(plan_total - price) > settings.PLAN_AMOUNT_TOLERANCE:
        raise InvalidArgument(
            f"Plan total ({fmt_money(plan_total)}) does not match the "
            f"treatment price ({fmt_money(price)})",
            details={
                "plan_total": fmt_money(plan_total),
                "treatment_price": fmt_money(price),
            },
        )


def _schedule(amount, count: int,
              start: datetime) -> List[PaymentInstallment]:
    """Installment k (1-based) falls due k calendar months after `start`."""
    return [
        PaymentInstallment(
            installment_number=k,
            amount=money2(amount),
            due_date=add_months(start, k),
            is_paid=False,
        ) for k in range(1, int(count) + 1)
    ]


def _paid_count(db: Session, plan_id: int) -> int:
    return (db.query(PaymentInstallment).filter(
        PaymentInstallment.payment_plan_id == plan_id,
        PaymentInstallment.is_paid.is_(True),
    ).count())


def _lock_plan(db: Session, plan_id: int) -> PaymentPlan:
    """Row lock on the plan. Every write to its installments takes it first."""
    plan = (db.query(PaymentPlan).filter(
        PaymentPlan.id == int(plan_id)).with_for_update().first())
    if not plan:
        raise NotFound("Payment plan not found")
    return plan


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_plan(db: Session, plan_id: int) -> PaymentPlan:
    plan = _plan_query(db).filter(PaymentPlan.id == int(plan_id)).first()
    if not plan:
        raise NotFound("Payment plan not found")
    return plan


def list_plans(db: Session,
               treatment_id: Optional[int] = None) -> List[PaymentPlan]:
    q = _plan_query(db)
    if treatment_id:
        q = q.filter(PaymentPlan.treatment_id == int(treatment_id))
    return q.order_by(PaymentPlan.created_at.desc(),
                      PaymentPlan.id.desc()).all()


def get_summary(db: Session, plan_id: int) -> PaymentSummaryOut:
    """
    The initial payment counts as collected up front, so it is part of both
    the plan total and the paid amount.
    """
    plan = get_plan(db, plan_id)
    installments = plan.installments

    paid_rows = [i for i in installments if i.is_paid]
    initial = money2(plan.initial_payment)
    total = initial + sum((money2(i.amount) for i in installments), ZERO)
    paid = initial + sum((money2(i.amount) for i in paid_rows), ZERO)

    pct = ZERO
    if total > 0:
        pct = money2(paid / total * Decimal("100"))

    return PaymentSummaryOut(
        total_installments=len(installments),
        paid_installments=len(paid_rows),
        pending_installments=len(installments) - len(paid_rows),
        total_amount=money2(total),
        paid_amount=money2(paid),
        pending_amount=money2(total - paid),
        paid_percentage=pct,
    )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def create_plan(db: Session, data: PaymentPlanCreate) -> PaymentPlan:
    treatment = get_treatment(db, data.treatment_id)

    exists = (db.query(PaymentPlan.id).filter(
        PaymentPlan.treatment_id == treatment.id).first())
    if exists:
        raise InvalidState("Treatment already has a payment plan")

    initial = money2(data.initial_payment or 0)
    _check_plan_amount(treatment.price, initial, data.installment_amount,
                       data.number_of_installments)

    start = data.start_date or utcnow()
    plan = PaymentPlan(
        treatment_id=treatment.id,
        number_of_installments=data.number_of_installments,
        installment_amount=money2(data.installment_amount),
        initial_payment=initial,
        start_date=start,
    )
    plan.installments = _schedule(data.installment_amount,
                                  data.number_of_installments, start)
    db.add(plan)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Duplicate payment plan for treatment %s",
                       treatment.id)
        raise InvalidState("Treatment already has a payment plan")

    logger.info("Payment plan %s created for treatment %s (%s x %s)",
                plan.id, treatment.id, data.number_of_installments,
                fmt_money(data.installment_amount))
    return get_plan(db, plan.id)


def update_plan(db: Session, plan_id: int,
                data: PaymentPlanUpdate) -> PaymentPlan:
    """
    Any change to count, amount, initial payment or `start_date` rebuilds the
    whole schedule from `start_date` (or now), so due dates always follow the
    stored start.
    """
    _lock_plan(db, plan_id)
    plan = get_plan(db, plan_id)

    if _paid_count(db, plan.id) > 0:
        db.rollback()
        raise InvalidState(
            "A payment plan with paid installments cannot be modified")

    patch = {k: v for k, v in data.model_dump(exclude_unset=True).items()
             if v is not None}

    if not any(k in patch for k in SCHEDULE_FIELDS):
        db.commit()
        return get_plan(db, plan.id)

    count = patch.get("number_of_installments", plan.number_of_installments)
    amount = money2(patch.get("installment_amount", plan.installment_amount))
    initial = money2(patch.get("initial_payment", plan.initial_payment))

    treatment = get_treatment(db, plan.treatment_id)
    _check_plan_amount(treatment.price, initial, amount, count)

    start = patch.get("start_date") or utcnow()

    # old rows must be gone before the (plan, number) pairs are reused
    plan.installments.clear()
    db.flush()

    plan.number_of_installments = count
    plan.installment_amount = amount
    plan.initial_payment = initial
    plan.start_date = start
    plan.installments.extend(_schedule(amount, count, start))

    db.commit()
    logger.info("Payment plan %s rescheduled (%s x %s)", plan.id, count,
                fmt_money(amount))
    return get_plan(db, plan.id)


def delete_plan(db: Session, plan_id: int) -> None:
    _lock_plan(db, plan_id)
    plan = get_plan(db, plan_id)

    if _paid_count(db, plan.id) > 0:
        db.rollback()
        raise InvalidState(
            "A payment plan with paid installments cannot be deleted")

    plan.installments.clear()
    db.flush()
    db.delete(plan)
    db.commit()
    logger.info("Payment plan %s deleted", plan_id)


def mark_installment_paid(db: Session, plan_id: int, installment_id: int,
                          data: PayInstallmentIn) -> PaymentInstallment:
    """
    is_paid only ever flips False -> True. The write is guarded on
    `is_paid = False`, so a second concurrent call matches no row.
    """
    plan = _lock_plan(db, plan_id)

    inst = (db.query(PaymentInstallment).filter(
        PaymentInstallment.id == int(installment_id),
        PaymentInstallment.payment_plan_id == plan.id,
    ).first())
    if not inst:
        db.rollback()
        raise NotFound("Installment not found")
    if inst.is_paid:
        db.rollback()
        raise InvalidState("Installment is already paid")

    now = utcnow()
    res = db.execute(
        update(PaymentInstallment).where(
            PaymentInstallment.id == inst.id,
            PaymentInstallment.is_paid.is_(False),
        ).values(
            is_paid=True,
            paid_date=data.payment_date or now,
            payment_method=(data.payment_method.value
                            if data.payment_method else None),
            updated_at=now,
        ).execution_options(synchronize_session=False))

    if res.rowcount != 1:
        db.rollback()
        raise InvalidState("Installment is already paid")

    db.commit()
    db.refresh(inst)
    logger.info("Installment %s of plan %s paid", inst.installment_number,
                plan.id)
    return inst
