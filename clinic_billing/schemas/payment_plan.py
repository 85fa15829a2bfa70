# FILE: clinic_billing/schemas/payment_plan.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clinic_billing.models.billing import PaymentMethod
from clinic_billing.models.payment_plan import PaymentPlan
from clinic_billing.schemas.common import Money
from clinic_billing.utils.timezone import naive_utc


class PaymentPlanCreate(BaseModel):
    treatment_id: int
    number_of_installments: int = Field(ge=1)
    installment_amount: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    initial_payment: Decimal = Field(default=Decimal("0"),
                                     ge=0,
                                     max_digits=12,
                                     decimal_places=2)
    start_date: Optional[datetime] = None

    @field_validator("start_date")
    @classmethod
    def _start(cls, v):
        return naive_utc(v)


class PaymentPlanUpdate(BaseModel):
    number_of_installments: Optional[int] = Field(default=None, ge=1)
    installment_amount: Optional[Decimal] = Field(default=None,
                                                  ge=0,
                                                  max_digits=12,
                                                  decimal_places=2)
    initial_payment: Optional[Decimal] = Field(default=None,
                                               ge=0,
                                               max_digits=12,
                                               decimal_places=2)
    start_date: Optional[datetime] = None

    @field_validator("start_date")
    @classmethod
    def _start(cls, v):
        return naive_utc(v)


class PayInstallmentIn(BaseModel):
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None

    @field_validator("payment_date")
    @classmethod
    def _paid(cls, v):
        return naive_utc(v)


class PaymentInstallmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    installment_number: int
    amount: Money
    due_date: datetime
    paid_date: Optional[datetime] = None
    is_paid: bool
    payment_method: Optional[PaymentMethod] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class TreatmentMiniOut(BaseModel):
    id: int
    name: str = ""


class PaymentPlanOut(BaseModel):
    id: int
    treatment_id: int
    treatment: TreatmentMiniOut
    number_of_installments: int
    installment_amount: Money
    initial_payment: Money
    start_date: datetime
    created_at: datetime
    updated_at: Optional[datetime] = None
    installments: List[PaymentInstallmentOut] = []

    @classmethod
    def from_plan(cls, plan: PaymentPlan) -> "PaymentPlanOut":
        t = plan.treatment
        return cls(
            id=plan.id,
            treatment_id=plan.treatment_id,
            treatment=TreatmentMiniOut(id=plan.treatment_id,
                                       name=getattr(t, "name", "") or ""),
            number_of_installments=plan.number_of_installments,
            installment_amount=plan.installment_amount,
            initial_payment=plan.initial_payment,
            start_date=plan.start_date,
            created_at=plan.created_at,
            updated_at=plan.updated_at,
            installments=[
                PaymentInstallmentOut.model_validate(i)
                for i in plan.installments
            ],
        )


class PaymentSummaryOut(BaseModel):
    total_installments: int
    paid_installments: int
    pending_installments: int
    total_amount: Money
    paid_amount: Money
    pending_amount: Money
    paid_percentage: Money
